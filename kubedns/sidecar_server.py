"""The sidecar daemon: DNS probes plus dnsmasq cache metrics."""

from __future__ import annotations

import logging
import time

from kubedns.dnsmasq_metrics import MetricName, MetricsClient, MetricsError
from kubedns.dnsprobe import DNSProbe
from kubedns.sidecar_metrics import DnsmasqCounters, MetricsServer, Registry
from kubedns.sidecar_options import Options

logger = logging.getLogger(__name__)


class SidecarServer:
    """Runs the configured probes and polls dnsmasq for its statistics."""

    def __init__(self, options: Options) -> None:
        self.options = options
        self.registry = Registry()
        self.metrics_server = MetricsServer(options, self.registry)
        self.counters = DnsmasqCounters(options.prometheus_namespace, self.registry)
        self.metrics_client = MetricsClient(options.dnsmasq_addr, options.dnsmasq_port)
        self.probes: list[DNSProbe] = []

    def poll_once(self) -> dict[MetricName, int] | None:
        """Fetch and export dnsmasq metrics once; None if fetching failed."""
        try:
            metrics = self.metrics_client.get_metrics()
        except MetricsError as exc:
            logger.warning("Error getting metrics from dnsmasq: %s", exc)
            self.counters.errors.add(1)
            return None
        logger.debug("DnsMasq metrics %s", metrics)
        self.counters.export(metrics)
        return metrics

    def run(self) -> None:
        """Start probes and the metrics endpoint, then poll dnsmasq forever."""
        logger.info("Starting server (options %s)", self.options)
        for probe_option in self.options.probes:
            probe = DNSProbe(probe_option, None)
            self.probes.append(probe)
            probe.start(self.options, self.metrics_server)

        self.metrics_server.start()
        try:
            while True:
                self.poll_once()
                time.sleep(self.options.dnsmasq_poll_interval_ms / 1000)
        finally:
            self.metrics_server.stop()