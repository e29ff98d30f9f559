"""Options for the sidecar daemon and its DNS probes."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DNSProbeOption:
    """A periodic DNS health check and latency probe.

    ``interval`` is in seconds; ``qtype`` is the DNS record type to query.
    """

    label: str
    server: str
    name: str
    interval: float
    qtype: int


@dataclass
class Options:
    """Settings of the sidecar daemon, with the daemon's defaults."""

    dnsmasq_port: int = 53
    dnsmasq_addr: str = "127.0.0.1"
    dnsmasq_poll_interval_ms: int = 5000

    probes: list[DNSProbeOption] = field(default_factory=list)

    prometheus_addr: str = "0.0.0.0"
    prometheus_port: int = 10054
    prometheus_path: str = "/metrics"
    prometheus_namespace: str = "kubedns"