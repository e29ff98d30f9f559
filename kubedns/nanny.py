"""Runs a dnsmasq process and builds its command line from configuration."""

from __future__ import annotations

import ipaddress
import logging
import socket
import subprocess
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import IO

import dns.exception
import dns.name
import dns.resolver

logger = logging.getLogger(__name__)

_LOOKUP_TIMEOUT = 5.0
_CLUSTER_SUFFIX = "cluster.local"


class NannyError(Exception):
    """Raised when the dnsmasq process cannot be managed as requested."""


def extract_dnsmasq_args(cmdline_args: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split a command line at "--".

    Returns (dnsmasq_args, other_args): the arguments after "--" and those
    before it. Without "--" every argument belongs to other_args.
    """
    args = list(cmdline_args)
    if "--" in args:
        index = args.index("--")
        return args[index + 1 :], args[:index]
    return [], args


def munge_server(server: str) -> str:
    """Replace the port separator ':' with '#', as dnsmasq expects."""
    colon = server.rfind(":")
    if colon == -1:
        return server
    bracket = server.find("]")
    is_v4 = server.count(":") == 1
    is_bracketed_v6 = bracket != -1
    if is_v4 or (is_bracketed_v6 and colon > bracket):
        return server[:colon] + "#" + server[colon + 1 :]
    return server


def _is_ip(text: str) -> bool:
    if "%" in text:
        return False
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def _split_server(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        return address.strip("[]"), 53
    return host.strip("[]"), int(port)


def _lookup_via(server: str, kubedns_server: str) -> str | None:
    host, port = _split_server(kubedns_server)
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [host]
    resolver.port = port
    resolver.lifetime = _LOOKUP_TIMEOUT
    qname = dns.name.from_text(server)
    last_error: Exception | None = None
    for rdtype in ("A", "AAAA"):
        try:
            answer = resolver.resolve(qname, rdtype, search=False)
        except dns.exception.DNSException as exc:
            last_error = exc
            continue
        for rdata in answer:
            return rdata.address
    if last_error is not None and not isinstance(
        last_error, (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN)
    ):
        logger.error("Error looking up IP for name %r: %s", server, last_error)
        return None
    logger.error("Name %r does not resolve to any IPs", server)
    return None


def _lookup_system(server: str) -> str | None:
    try:
        infos = socket.getaddrinfo(server, None)
    except (OSError, UnicodeError) as exc:
        logger.error("Error looking up IP for name %r: %s", server, exc)
        return None
    if not infos:
        logger.error("Name %r does not resolve to any IPs", server)
        return None
    return str(infos[0][4][0])


def _resolve_server(server: str, kubedns_server: str) -> str:
    if _is_ip(server):
        return server
    if server.endswith(_CLUSTER_SUFFIX):
        resolved = _lookup_via(server, kubedns_server)
    else:
        resolved = _lookup_system(server)
    return resolved if resolved is not None else server


class Nanny:
    """Owns one dnsmasq process and its arguments."""

    def __init__(self, exec_path: str) -> None:
        self.exec_path = exec_path
        self.args: list[str] = []
        self._process: subprocess.Popen[bytes] | None = None

    def configure(
        self,
        args: Iterable[str],
        stub_domains: Mapping[str, Sequence[str]],
        upstream_nameservers: Sequence[str],
        kubedns_server: str,
    ) -> None:
        """Build the dnsmasq arguments; must be called before start().

        Non-IP stub servers are resolved: names under cluster.local through
        kubedns_server, others through the system resolver.
        """
        self.args = list(args)

        for domain, servers in stub_domains.items():
            for server in servers:
                resolved = munge_server(_resolve_server(server, kubedns_server))
                self.args += ["--server", f"/{domain}/{resolved}"]

        for server in upstream_nameservers:
            self.args += ["--server", munge_server(server)]

        # Explicit upstreams mean /etc/resolv.conf is not consulted.
        if upstream_nameservers:
            self.args.append("--no-resolv")

    def start(self) -> None:
        """Start dnsmasq, logging its stdout and stderr in the background."""
        logger.info("Starting dnsmasq %s", self.args)
        try:
            process = subprocess.Popen(
                [self.exec_path, *self.args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise NannyError(f"could not start {self.exec_path}: {exc}") from exc
        self._process = process

        for name, stream in (("stderr", process.stderr), ("stdout", process.stdout)):
            threading.Thread(
                target=_pump_output, args=(name, stream), daemon=True
            ).start()

    def wait(self) -> int:
        """Wait for dnsmasq to exit; returns 0, raises NannyError on failure."""
        process = self._process
        if process is None:
            raise NannyError("Process is not running")
        code = process.wait()
        if code != 0:
            raise NannyError(f"dnsmasq exited with status {code}")
        return code

    def kill(self) -> None:
        """Kill the running dnsmasq; raises NannyError if none is running."""
        logger.info("Killing dnsmasq")
        process = self._process
        if process is None:
            raise NannyError("Process is not running")
        try:
            process.kill()
        except OSError as exc:
            logger.error("Error killing dnsmasq: %s", exc)
            raise NannyError(f"error killing dnsmasq: {exc}") from exc
        process.wait()
        self._process = None


def _pump_output(name: str, stream: IO[bytes] | None) -> None:
    if stream is None:
        return
    try:
        for line in iter(stream.readline, b""):
            logger.debug("%s", line.decode(errors="replace").rstrip("\n"))
    except (OSError, ValueError) as exc:
        logger.error("Error reading from %s: %s", name, exc)
        return
    logger.warning("Got EOF from %s", name)