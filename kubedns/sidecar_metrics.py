"""Counters, histograms, dnsmasq cache counters and the HTTP endpoint serving them."""

from __future__ import annotations

import bisect
import datetime
import logging
import math
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Union
from urllib.parse import urlsplit

from kubedns.dnsmasq_metrics import MetricName
from kubedns.sidecar_options import Options

logger = logging.getLogger(__name__)

Handler = Callable[[], "tuple[int, str, bytes]"]

_METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
_TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
_DNSMASQ_SUBSYSTEM = "dnsmasq"

_DNSMASQ_COUNTERS: dict[MetricName, tuple[str, str]] = {
    MetricName.CACHE_HITS: ("hits", "Number of DNS cache hits (from start of process)"),
    MetricName.CACHE_MISSES: (
        "misses",
        "Number of DNS cache misses (from start of process)",
    ),
    MetricName.CACHE_EVICTIONS: (
        "evictions",
        "Counter of DNS cache evictions (from start of process)",
    ),
    MetricName.CACHE_INSERTIONS: (
        "insertions",
        "Counter of DNS cache insertions (from start of process)",
    ),
    MetricName.CACHE_SIZE: ("max_size", "Maximum size of the DNS cache"),
}


def _fq_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return count bucket bounds, the first at start, each factor times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    value = float(start)
    for _ in range(count):
        buckets.append(value)
        value *= factor
    return buckets


class Counter:
    """A monotonically increasing value."""

    kind = "counter"

    def __init__(
        self, name: str, help_text: str, namespace: str = "", subsystem: str = ""
    ) -> None:
        self.name = _fq_name(namespace, subsystem, name)
        self.help = help_text
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def add(self, value: float) -> None:
        """Increase the counter; raises ValueError for a negative amount."""
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += value

    def _samples(self) -> Iterator[tuple[str, str, float]]:
        yield self.name, "", self.value


class Histogram:
    """Counts observations into buckets by upper bound."""

    kind = "histogram"

    def __init__(
        self,
        name: str,
        help_text: str,
        buckets: Sequence[float],
        namespace: str = "",
        subsystem: str = "",
    ) -> None:
        bounds = sorted(float(bound) for bound in buckets if not math.isinf(bound))
        if len(set(bounds)) != len(bounds):
            raise ValueError("histogram buckets must be unique")
        self.name = _fq_name(namespace, subsystem, name)
        self.help = help_text
        self.buckets = tuple(bounds)
        self._bucket_counts = [0] * len(bounds)
        self._count = 0
        self._sum = 0.0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def observe(self, value: float) -> None:
        """Record one observation."""
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            if index < len(self._bucket_counts):
                self._bucket_counts[index] += 1
            self._count += 1
            self._sum += value

    def _samples(self) -> Iterator[tuple[str, str, float]]:
        with self._lock:
            counts = list(self._bucket_counts)
            total, total_sum = self._count, self._sum
        cumulative = 0
        for bound, count in zip(self.buckets, counts):
            cumulative += count
            yield f"{self.name}_bucket", f'{{le="{_format_float(bound)}"}}', cumulative
        yield f"{self.name}_bucket", '{le="+Inf"}', total
        yield f"{self.name}_sum", "", total_sum
        yield f"{self.name}_count", "", total


Metric = Union[Counter, Histogram]


class Registry:
    """A set of uniquely named metrics rendered in the text exposition format."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: Metric) -> Metric:
        """Add a metric; raises ValueError if its name is already taken."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {metric.name}"
                )
            self._metrics[metric.name] = metric
        return metric

    def render(self) -> str:
        """All metrics, sorted by name, in the text exposition format."""
        with self._lock:
            metrics = [self._metrics[name] for name in sorted(self._metrics)]
        lines = []
        for metric in metrics:
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(
                f"{name}{labels} {_format_float(value)}"
                for name, labels, value in metric._samples()
            )
        return "\n".join(lines) + "\n" if lines else ""


class DnsmasqCounters:
    """Counters mirroring dnsmasq's cache statistics, plus an error counter."""

    def __init__(self, namespace: str, registry: Registry | None = None) -> None:
        self.registry = registry if registry is not None else Registry()
        self.counters: dict[MetricName, Counter] = {}
        for metric, (name, help_text) in _DNSMASQ_COUNTERS.items():
            counter = Counter(name, help_text, namespace, _DNSMASQ_SUBSYSTEM)
            self.registry.register(counter)
            self.counters[metric] = counter
        self.errors = Counter(
            "errors",
            "Number of errors that have occurred getting metrics",
            namespace,
            _DNSMASQ_SUBSYSTEM,
        )
        self.registry.register(self.errors)
        self.cache: dict[MetricName, float] = {}

    def export(self, metrics: Mapping[MetricName, int]) -> None:
        """Advance each counter to the newly reported value.

        Counters only grow, so the delta from the previously seen value is
        added, and only when the new value is larger.
        """
        for key, value in metrics.items():
            previous = self.cache.get(key, 0.0)
            new_value = float(value)
            self.cache[key] = max(new_value, 0.0)
            if new_value > previous:
                self.counters[key].add(new_value - previous)


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], handlers: dict[str, Handler]) -> None:
        self.handlers = handlers
        super().__init__(address, _RequestHandler)


class _RequestHandler(BaseHTTPRequestHandler):
    server: _HTTPServer

    def do_GET(self) -> None:  # noqa: N802
        handler = self.server.handlers.get(urlsplit(self.path).path)
        if handler is None:
            status, content_type, body = 404, _TEXT_CONTENT_TYPE, b"404 page not found\n"
        else:
            try:
                status, content_type, body = handler()
            except Exception as exc:  # a failing handler must not kill the server
                logger.error("Handler for %s failed: %s", self.path, exc)
                status, content_type = 500, _TEXT_CONTENT_TYPE
                body = f"Error: {exc}".encode()
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    do_POST = do_GET

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def _serve_healthz() -> tuple[int, str, bytes]:
    now = datetime.datetime.now().astimezone()
    return 200, _TEXT_CONTENT_TYPE, f"ok ({now})\n".encode()


class MetricsServer:
    """HTTP endpoint serving the metrics, /healthz and any added handlers."""

    def __init__(self, options: Options, registry: Registry | None = None) -> None:
        self.options = options
        self.registry = registry if registry is not None else Registry()
        self._handlers: dict[str, Handler] = {}
        self._httpd: _HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self.add_handler(options.prometheus_path, self._serve_metrics)
        self.add_handler("/healthz", _serve_healthz)

    def _serve_metrics(self) -> tuple[int, str, bytes]:
        return 200, _METRICS_CONTENT_TYPE, self.registry.render().encode()

    def add_handler(self, path: str, handler: Handler) -> None:
        """Serve path with handler, a callable returning (status, content type, body)."""
        self._handlers[path] = handler

    @property
    def address(self) -> tuple[str, int]:
        """Host and port the running server listens on."""
        if self._httpd is None:
            raise RuntimeError("metrics server is not running")
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        """Listen and serve in a background thread; raises OSError if binding fails."""
        if self._httpd is not None:
            raise RuntimeError("metrics server already started")
        httpd = _HTTPServer(
            (self.options.prometheus_addr, self.options.prometheus_port), self._handlers
        )
        thread = threading.Thread(
            target=httpd.serve_forever, name="metrics-server", daemon=True
        )
        thread.start()
        self._httpd, self._thread = httpd, thread

    def stop(self) -> None:
        """Stop serving; does nothing if the server is not running."""
        httpd, thread = self._httpd, self._thread
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        if thread is not None:
            thread.join()
        self._httpd = self._thread = None