"""Periodic DNS probes reporting health and latency."""

from __future__ import annotations

import abc
import json
import logging
import random
import threading
import time

import dns.exception
import dns.message
import dns.query
import dns.rdataclass

from kubedns.sidecar_metrics import (
    Counter,
    Histogram,
    MetricsServer,
    Registry,
    exponential_buckets,
)
from kubedns.sidecar_options import DNSProbeOption, Options

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0
_PROBE_SUBSYSTEM = "probe"


class LoopDelayer(abc.ABC):
    """Timing of the probe loop; durations are in seconds."""

    @abc.abstractmethod
    def start(self, interval: float) -> None:
        """Start the delay loop; may sleep."""

    @abc.abstractmethod
    def sleep(self, latency: float) -> None:
        """Sleep out the interval, less the latency of the loop body."""


class DefaultLoopDelayer(LoopDelayer):
    """Staggers the first probe randomly, then keeps a fixed interval."""

    def __init__(self) -> None:
        self.interval = 0.0

    def start(self, interval: float) -> None:
        self.interval = interval
        # Stagger the start so probes are not all sent at the same moment.
        if interval > 0:
            time.sleep(random.random() * interval)

    def sleep(self, latency: float) -> None:
        remaining = self.interval - latency
        if remaining > 0:
            logger.debug("Sleeping %s", remaining)
            time.sleep(remaining)


def _split_server(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"address {address}: missing port in address")
    return host.strip("[]"), int(port)


class DNSProbe:
    """Resolves a name periodically and keeps the latest result."""

    def __init__(self, option: DNSProbeOption, delayer: LoopDelayer | None = None) -> None:
        self.option = option
        self.delayer = delayer
        self.timeout = DEFAULT_TIMEOUT
        self.last_resolve_latency = 0.0
        self.last_error: Exception | None = None
        self.latency_histogram: Histogram | None = None
        self.error_count: Counter | None = None
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self, options: Options, server: MetricsServer | None = None) -> None:
        """Register the health handler and metrics, then probe in the background."""
        logger.info("Starting dnsProbe %s", self.option)
        with self._lock:
            self.last_error = RuntimeError("waiting for first probe")

        registry = Registry()
        if server is not None:
            server.add_handler(f"/healthcheck/{self.option.label}", self.health)
            registry = server.registry
        self._register_metrics(options, registry)

        if self.delayer is None:
            logger.debug("Using DefaultLoopDelayer")
            self.delayer = DefaultLoopDelayer()

        self._thread = threading.Thread(
            target=self._loop, name=f"dnsprobe-{self.option.label}", daemon=True
        )
        self._thread.start()

    def _register_metrics(self, options: Options, registry: Registry) -> None:
        label = self.option.label
        histogram = Histogram(
            f"{label}_latency_ms",
            f"Latency of the DNS probe request {label}",
            exponential_buckets(0.25, 2, 16),  # from 0.25ms to 8 seconds
            options.prometheus_namespace,
            _PROBE_SUBSYSTEM,
        )
        registry.register(histogram)
        errors = Counter(
            f"{label}_errors",
            f"Count of errors in name resolution of {label}",
            options.prometheus_namespace,
            _PROBE_SUBSYSTEM,
        )
        registry.register(errors)
        self.latency_histogram, self.error_count = histogram, errors

    def _loop(self) -> None:
        delayer = self.delayer if self.delayer is not None else DefaultLoopDelayer()
        delayer.start(self.option.interval)
        while True:
            latency = self.probe_once()
            delayer.sleep(latency)

    def probe_once(self) -> float:
        """Send one query, record the outcome and return the latency in seconds."""
        logger.debug("Sending DNS request @%s %s", self.option.server, self.option.name)
        error: Exception | None = None
        latency = 0.0
        try:
            host, port = _split_server(self.option.server)
            query = self.make_query()
            started = time.monotonic()
            response = dns.query.udp(query, host, port=port, timeout=self.timeout)
            latency = time.monotonic() - started
        except (dns.exception.DNSException, OSError, ValueError) as exc:
            error = exc
        else:
            if not any(len(rrset) for rrset in response.answer):
                error = RuntimeError(
                    f"no RRs for domain {json.dumps(self.option.name)}"
                )
        logger.debug("Got response, err=%s after %s", error, latency)
        self.update(error, latency)
        return latency

    def update(self, error: Exception | None, latency: float) -> None:
        """Record a probe result; latency is in seconds."""
        with self._lock:
            if error is None:
                self.last_resolve_latency = latency
                self.last_error = None
                if self.latency_histogram is not None:
                    self.latency_histogram.observe(latency * 1000)
            else:
                logger.debug("DNS resolution error for %s: %s", self.option.label, error)
                self.last_resolve_latency = 0.0
                self.last_error = error
                if self.error_count is not None:
                    self.error_count.add(1)

    def make_query(self) -> dns.message.Message:
        """A recursive IN-class query for the probed name and type."""
        return dns.message.make_query(
            self.option.name, self.option.qtype, dns.rdataclass.IN
        )

    def health(self) -> tuple[int, str, bytes]:
        """HTTP status, content type and JSON body describing the last probe."""
        with self._lock:
            if self.last_error is None:
                status = 200
                payload = {
                    "IsOk": True,
                    "LatencySeconds": self.last_resolve_latency,
                    "Err": "",
                }
            else:
                status = 503
                payload = {"IsOk": False, "LatencySeconds": 0, "Err": str(self.last_error)}
        body = json.dumps(payload, separators=(",", ":")).encode()
        return status, "application/json", body