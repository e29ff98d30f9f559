"""Client reading cache statistics from dnsmasq via CHAOS TXT queries."""

from __future__ import annotations

import logging
import re
from enum import Enum

import dns.exception
import dns.message
import dns.query
import dns.rdataclass
import dns.rdatatype

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")


class MetricName(str, Enum):
    """Metrics exported by dnsmasq through *.bind CHAOS records."""

    CACHE_HITS = "hits"
    CACHE_MISSES = "misses"
    CACHE_EVICTIONS = "evictions"
    CACHE_INSERTIONS = "insertions"
    CACHE_SIZE = "cachesize"


ALL_METRICS: tuple[MetricName, ...] = tuple(MetricName)


class MetricsError(Exception):
    """Raised when metrics cannot be obtained from dnsmasq."""


class MetricsClient:
    """Fetches raw metrics from dnsmasq (v2.76 or newer)."""

    def __init__(self, addr: str, port: int, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.addr = addr
        self.port = port
        self.timeout = timeout

    def get_metrics(self) -> dict[MetricName, int]:
        """Query every metric and return their values; raises MetricsError."""
        return {
            metric: self._get_single_metric(f"{metric.value}.bind.")
            for metric in ALL_METRICS
        }

    def _get_single_metric(self, name: str) -> int:
        query = dns.message.make_query(name, dns.rdatatype.TXT, dns.rdataclass.CH)
        try:
            response = dns.query.udp(
                query, self.addr, port=self.port, timeout=self.timeout
            )
        except (dns.exception.DNSException, OSError, ValueError) as exc:
            raise MetricsError(f"error querying {name}: {exc}") from exc

        records = [(rrset, rdata) for rrset in response.answer for rdata in rrset]
        if len(records) != 1:
            raise MetricsError(
                f"invalid number of Answer records for {name}: {len(records)}"
            )

        rrset, rdata = records[0]
        if rrset.rdtype != dns.rdatatype.TXT:
            raise MetricsError(f"missing TXT record for {name}")

        logger.debug("Got valid TXT response %s for %s", rrset, name)
        if len(rdata.strings) != 1:
            raise MetricsError(
                f"invalid number of TXT records for {name}: {len(rdata.strings)}"
            )

        text = rdata.strings[0].decode("ascii", errors="replace")
        if not _INT_RE.fullmatch(text):
            raise MetricsError(f"invalid value {text!r} for {name}")
        value = int(text)
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise MetricsError(f"value {text!r} out of range for {name}")
        return value