"""Options for running the end-to-end tests."""

from __future__ import annotations

from dataclasses import dataclass

ETCD_IMAGE = "quay.io/coreos/etcd:v3.0.14"
HYPERKUBE_IMAGE = "k8s.gcr.io/hyperkube:v1.5.1"
DNSMASQ_IMAGE = "k8s.gcr.io/k8s-dns-dnsmasq-amd64:1.14.5"


@dataclass
class Options:
    """Settings of an end-to-end run; defaults are those the tests use."""

    base_dir: str
    work_dir: str
    prefix: str = "xxx"
    docker: str = "docker"
    kubectl: str = "kubectl"
    etcd_image: str = ETCD_IMAGE
    hyperkube_image: str = HYPERKUBE_IMAGE
    cluster_ip_range: str = "10.0.0.0/24"
    dnsmasq_image: str = DNSMASQ_IMAGE


def default_options(base_dir: str, work_dir: str) -> Options:
    """Options for an end-to-end run rooted at base_dir, writing to work_dir."""
    return Options(base_dir=base_dir, work_dir=work_dir)