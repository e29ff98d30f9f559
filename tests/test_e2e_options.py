from kubedns.e2e_options import default_options


def test_default_options_keeps_directories():
    options = default_options("/repo", "/tmp/work")
    assert options.base_dir == "/repo"
    assert options.work_dir == "/tmp/work"


def test_default_options_images():
    options = default_options("/repo", "/tmp/work")
    assert options.etcd_image == "quay.io/coreos/etcd:v3.0.14"
    assert options.hyperkube_image == "k8s.gcr.io/hyperkube:v1.5.1"
    assert options.dnsmasq_image == "k8s.gcr.io/k8s-dns-dnsmasq-amd64:1.14.5"


def test_default_options_tools_and_network():
    options = default_options("/repo", "/tmp/work")
    assert options.prefix == "xxx"
    assert options.docker == "docker"
    assert options.kubectl == "kubectl"
    assert options.cluster_ip_range == "10.0.0.0/24"


def test_default_options_are_independent():
    first = default_options("/a", "/b")
    second = default_options("/a", "/b")
    first.prefix = "changed"
    assert second.prefix == "xxx"