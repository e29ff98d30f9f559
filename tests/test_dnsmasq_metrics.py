import socket
import threading

import dns.flags
import dns.message
import dns.rdataclass
import dns.rdatatype
import dns.rrset
import pytest

from kubedns.dnsmasq_metrics import ALL_METRICS, MetricName, MetricsClient, MetricsError

EXPECTED = {
    MetricName.CACHE_HITS: 10,
    MetricName.CACHE_MISSES: 20,
    MetricName.CACHE_EVICTIONS: 30,
    MetricName.CACHE_INSERTIONS: 40,
    MetricName.CACHE_SIZE: 50,
}

SUFFIX = ".bind."


class UDPServer:
    def __init__(self, handler):
        self.handler = handler
        self.queries = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.05)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                data, remote = self.sock.recvfrom(4096)
            except socket.timeout:
                continue
            except OSError:
                return
            query = dns.message.from_wire(data)
            self.queries.append(query)
            reply = self.handler(query)
            if reply is not None:
                self.sock.sendto(reply, remote)

    def close(self):
        self._stop.set()
        self._thread.join()
        self.sock.close()


@pytest.fixture
def serve():
    servers = []

    def start(handler):
        server = UDPServer(handler)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


def answer_with(query, *values):
    response = dns.message.make_response(query)
    qname = query.question[0].name
    response.answer.append(dns.rrset.from_text(qname, 100, "CH", "TXT", *values))
    return response.to_wire()


def valid_response(query):
    name = query.question[0].name.to_text()
    metric = MetricName(name[: -len(SUFFIX)])
    return answer_with(query, str(EXPECTED[metric]))


def test_client_ok(serve):
    server = serve(valid_response)
    client = MetricsClient("127.0.0.1", server.port)
    assert client.get_metrics() == EXPECTED


def test_queries_are_chaos_txt_in_metric_order(serve):
    server = serve(valid_response)
    MetricsClient("127.0.0.1", server.port).get_metrics()
    names = [q.question[0].name.to_text() for q in server.queries]
    assert names == [f"{m.value}.bind." for m in ALL_METRICS]
    assert names == [
        "hits.bind.",
        "misses.bind.",
        "evictions.bind.",
        "insertions.bind.",
        "cachesize.bind.",
    ]
    for query in server.queries:
        question = query.question[0]
        assert question.rdtype == dns.rdatatype.TXT
        assert question.rdclass == dns.rdataclass.CH
        assert query.flags & dns.flags.RD


def test_client_fail_on_junk(serve):
    server = serve(lambda query: b"junk")
    client = MetricsClient("127.0.0.1", server.port, timeout=1.0)
    with pytest.raises(MetricsError):
        client.get_metrics()


def test_client_timeout(serve):
    server = serve(lambda query: None)
    client = MetricsClient("127.0.0.1", server.port, timeout=0.3)
    with pytest.raises(MetricsError):
        client.get_metrics()


def test_non_numeric_value(serve):
    server = serve(lambda query: answer_with(query, "abc"))
    with pytest.raises(MetricsError, match="invalid value"):
        MetricsClient("127.0.0.1", server.port).get_metrics()


def test_too_many_answers(serve):
    server = serve(lambda query: answer_with(query, "1", "2"))
    with pytest.raises(MetricsError, match="invalid number of Answer records"):
        MetricsClient("127.0.0.1", server.port).get_metrics()


def test_too_many_txt_strings(serve):
    server = serve(lambda query: answer_with(query, '"1" "2"'))
    with pytest.raises(MetricsError, match="invalid number of TXT records"):
        MetricsClient("127.0.0.1", server.port).get_metrics()


def test_no_answers(serve):
    server = serve(lambda query: dns.message.make_response(query).to_wire())
    with pytest.raises(MetricsError, match="invalid number of Answer records"):
        MetricsClient("127.0.0.1", server.port).get_metrics()