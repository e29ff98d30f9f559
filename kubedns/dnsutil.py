"""Helpers for building, hashing and validating DNS service records."""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ARPA_SUFFIX = ".in-addr.arpa."
PATH_PREFIX = "skydns"
CLUSTER_IP_NONE = "None"
DEFAULT_DNS_PORT = "53"

DEFAULT_PRIORITY = 10
DEFAULT_WEIGHT = 10
DEFAULT_TTL = 30

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_PORT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(eq=False)
class Service:
    """A DNS service record as stored in the record tree."""

    host: str = ""
    port: int = 0
    priority: int = 0
    weight: int = 0
    text: str = ""
    mail: bool = False
    ttl: int = 0
    target_strip: int = 0
    group: str = ""
    key: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON form of the record; empty fields and the key are left out."""
        fields = (
            ("host", self.host),
            ("port", self.port),
            ("priority", self.priority),
            ("weight", self.weight),
            ("text", self.text),
            ("mail", self.mail),
            ("ttl", self.ttl),
            ("targetstrip", self.target_strip),
            ("group", self.group),
        )
        return {name: value for name, value in fields if value}

    def describe(self) -> str:
        """Positional text form of every field, used as the hash input."""
        parts = (
            self.host,
            str(self.port),
            str(self.priority),
            str(self.weight),
            self.text,
            "true" if self.mail else "false",
            str(self.ttl),
            str(self.target_strip),
            self.group,
            self.key,
        )
        return "&{" + " ".join(parts) + "}"


def extract_ip(reverse_name: str) -> str | None:
    """Turn a PTR reverse lookup name into an IP address, or None."""
    if not reverse_name.endswith(ARPA_SUFFIX):
        return None
    search = reverse_name[: -len(ARPA_SUFFIX)]
    return ".".join(reverse_array(search.split(".")))


def reverse_array(arr: list[str]) -> list[str]:
    """Reverse the list in place and return it."""
    arr.reverse()
    return arr


def new_service_record(ip: str, port: int) -> Service:
    """Create a service record with the default priority, weight and TTL."""
    return Service(
        host=ip,
        port=port,
        priority=DEFAULT_PRIORITY,
        weight=DEFAULT_WEIGHT,
        ttl=DEFAULT_TTL,
    )


def _fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


def hash_service_record(record: Service) -> str:
    """FNV-1a 32-bit hash of the record's text form, in lower-case hex."""
    return format(_fnv1a_32(record.describe().encode("utf-8")), "x")


def get_sky_msg(ip: str, port: int) -> tuple[Service, str]:
    """Build a record and return it with the hex encoding of its hash."""
    record = new_service_record(ip, port)
    digest = hash_service_record(record)
    logger.debug("Constructed new DNS record: %s, hash:%s", record.describe(), digest)
    return record, digest.encode("utf-8").hex()


def service_path(fqdn: str) -> str:
    """Storage path for a name: labels reversed under the path prefix."""
    labels = [label for label in fqdn.split(".") if label]
    labels.reverse()
    return "/" + "/".join([PATH_PREFIX, *labels])


def _parse_ip(text: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    if "%" in text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"address {hostport}: missing ']' in address")
        rest = hostport[end + 1 :]
        if not rest:
            raise ValueError(f"address {hostport}: missing port in address")
        if not rest.startswith(":"):
            raise ValueError(f"address {hostport}: missing port in address")
        host, port = hostport[1:end], rest[1:]
        if ":" in port:
            raise ValueError(f"address {hostport}: too many colons in address")
    else:
        colon = hostport.rfind(":")
        if colon < 0:
            raise ValueError(f"address {hostport}: missing port in address")
        host, port = hostport[:colon], hostport[colon + 1 :]
        if ":" in host:
            raise ValueError(f"address {hostport}: too many colons in address")
    if any(bracket in host or bracket in port for bracket in "[]"):
        raise ValueError(f"address {hostport}: unexpected bracket in address")
    return host, port


def validate_nameserver_ip_and_port(name_server: str) -> tuple[str, str]:
    """Split a nameserver address into IP and port, defaulting the port to 53.

    Raises ValueError if the address, IP or port is malformed.
    """
    ip = _parse_ip(name_server)
    if ip is not None:
        return str(ip), DEFAULT_DNS_PORT

    host, port = _split_host_port(name_server)
    if _parse_ip(host) is None:
        raise ValueError(f"bad IP address: {host!r}")
    if not _PORT_RE.fullmatch(port) or not 1 <= int(port) <= 65535:
        raise ValueError(f"bad port number: {port!r}")
    return host, port


def is_service_ip_set(cluster_ip: str) -> bool:
    """True if a service's cluster IP is set (neither empty nor "None")."""
    return cluster_ip not in (CLUSTER_IP_NONE, "")