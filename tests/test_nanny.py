import socket
import sys
import threading
import time
from unittest import mock

import dns.message
import dns.rdatatype
import dns.rrset
import pytest

from kubedns.nanny import Nanny, NannyError, extract_dnsmasq_args, munge_server

KUBEDNS_SERVER = "127.0.0.1:10053"

MOCK_DNSMASQ = """
import sys
import time

flag = sys.argv[1] if len(sys.argv) > 1 else ""
print("mock dnsmasq", flag)
if flag == "--exitWithSuccess":
    sys.exit(0)
if flag == "--exitWithError":
    sys.exit(1)
if flag == "--sleepThenError":
    time.sleep(0.2)
    sys.exit(1)
if flag == "--runForever":
    while True:
        time.sleep(1)
"""


@pytest.mark.parametrize(
    "args, dnsmasq_args, other_args",
    [
        ([], [], []),
        (["a"], [], ["a"]),
        (["a", "--"], [], ["a"]),
        (["a", "--", "b"], ["b"], ["a"]),
        (["--", "b"], ["b"], []),
        (["a", "b", "--", "c", "d"], ["c", "d"], ["a", "b"]),
    ],
)
def test_extract_dnsmasq_args(args, dnsmasq_args, other_args):
    assert extract_dnsmasq_args(args) == (dnsmasq_args, other_args)


def test_extract_does_not_mutate_input():
    args = ["a", "--", "b"]
    extract_dnsmasq_args(args)
    assert args == ["a", "--", "b"]


@pytest.mark.parametrize(
    "server, expected",
    [
        ("2.2.2.2:10053", "2.2.2.2#10053"),
        ("3.3.3.3", "3.3.3.3"),
        ("2001:db8:1::1", "2001:db8:1::1"),
        ("[2001:db8:2::2]", "[2001:db8:2::2]"),
        ("[2001:db8:3::3]:53", "[2001:db8:3::3]#53"),
    ],
)
def test_munge_server(server, expected):
    assert munge_server(server) == expected


def fake_getaddrinfo(host, port, *args, **kwargs):
    if host == "google-public-dns-a.google.com":
        return [(socket.AF_INET, socket.SOCK_DGRAM, 17, "", ("8.8.8.8", 0))]
    raise socket.gaierror(socket.EAI_NONAME, "not found")


def test_config_empty():
    nanny = Nanny("dnsmasq")
    nanny.configure(["--abc"], {}, [], KUBEDNS_SERVER)
    assert nanny.args == ["--abc"]


@mock.patch("socket.getaddrinfo", side_effect=fake_getaddrinfo)
def test_config_stub_domains(_getaddrinfo):
    nanny = Nanny("dnsmasq")
    nanny.configure(
        ["--abc"],
        {
            "acme.local": ["1.1.1.1"],
            "widget.local": ["2.2.2.2:10053", "3.3.3.3"],
            "google.local": ["google-public-dns-a.google.com"],
        },
        [],
        KUBEDNS_SERVER,
    )
    assert sorted(nanny.args) == [
        "--abc",
        "--server",
        "--server",
        "--server",
        "--server",
        "/acme.local/1.1.1.1",
        "/google.local/8.8.8.8",
        "/widget.local/2.2.2.2#10053",
        "/widget.local/3.3.3.3",
    ]


def test_config_upstream_v4():
    nanny = Nanny("dnsmasq")
    nanny.configure(["--abc"], {}, ["2.2.2.2:10053", "3.3.3.3"], KUBEDNS_SERVER)
    assert nanny.args == [
        "--abc",
        "--server",
        "2.2.2.2#10053",
        "--server",
        "3.3.3.3",
        "--no-resolv",
    ]


def test_config_upstream_v6():
    nanny = Nanny("dnsmasq")
    nanny.configure(
        ["--abc"],
        {},
        ["2001:db8:1::1", "[2001:db8:2::2]", "[2001:db8:3::3]:53"],
        KUBEDNS_SERVER,
    )
    assert nanny.args == [
        "--abc",
        "--server",
        "2001:db8:1::1",
        "--server",
        "[2001:db8:2::2]",
        "--server",
        "[2001:db8:3::3]#53",
        "--no-resolv",
    ]


@pytest.fixture
def kubedns_server():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(0.05)
    stop = threading.Event()

    def serve():
        while not stop.is_set():
            try:
                data, remote = sock.recvfrom(4096)
            except socket.timeout:
                continue
            except OSError:
                return
            query = dns.message.from_wire(data)
            response = dns.message.make_response(query)
            question = query.question[0]
            if question.rdtype == dns.rdatatype.A:
                response.answer.append(
                    dns.rrset.from_text(question.name, 30, "IN", "A", "10.0.0.5")
                )
            sock.sendto(response.to_wire(), remote)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield f"127.0.0.1:{sock.getsockname()[1]}"
    stop.set()
    thread.join()
    sock.close()


def test_cluster_local_resolved_through_kubedns(kubedns_server):
    nanny = Nanny("dnsmasq")
    nanny.configure(
        ["--abc"],
        {"cluster.local": ["kube-dns.svc.cluster.local"]},
        [],
        kubedns_server,
    )
    assert nanny.args == ["--abc", "--server", "/cluster.local/10.0.0.5"]


@pytest.fixture
def mock_dnsmasq(tmp_path):
    script = tmp_path / "mock_dnsmasq.py"
    script.write_text(MOCK_DNSMASQ)
    return str(script)


def started_nanny(script, flag):
    nanny = Nanny(sys.executable)
    nanny.configure([script, flag], {}, [], KUBEDNS_SERVER)
    nanny.start()
    return nanny


def test_exit_with_success(mock_dnsmasq):
    assert started_nanny(mock_dnsmasq, "--exitWithSuccess").wait() == 0


def test_exit_with_error(mock_dnsmasq):
    nanny = started_nanny(mock_dnsmasq, "--exitWithError")
    with pytest.raises(NannyError):
        nanny.wait()


def test_sleep_then_error(mock_dnsmasq):
    nanny = started_nanny(mock_dnsmasq, "--sleepThenError")
    with pytest.raises(NannyError):
        nanny.wait()


def test_kill_running(mock_dnsmasq):
    nanny = started_nanny(mock_dnsmasq, "--runForever")
    time.sleep(0.25)
    nanny.kill()
    with pytest.raises(NannyError, match="not running"):
        nanny.kill()


def test_kill_without_start():
    with pytest.raises(NannyError):
        Nanny("dnsmasq").kill()


def test_start_missing_executable(tmp_path):
    nanny = Nanny(str(tmp_path / "no-such-dnsmasq"))
    nanny.configure([], {}, [], KUBEDNS_SERVER)
    with pytest.raises(NannyError):
        nanny.start()