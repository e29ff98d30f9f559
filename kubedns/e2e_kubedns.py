"""Control of a kube-dns process during end-to-end tests."""

from __future__ import annotations

import signal
import socket
import subprocess
import threading
import time
from collections.abc import Callable

import dns.message
import dns.query
import dns.rdataclass

from kubedns.e2e_framework import get_framework
from kubedns.e2e_logger import LOG

DNS_HOST = "127.0.0.1"
DNS_PORT = 10053
HEALTH_PORT = 8081
EVENTUALLY_TIMEOUT = 1.0
_EVENTUALLY_INTERVAL = 0.01
_QUERY_TIMEOUT = 2.0
_INTERRUPT_GRACE = 0.2


def _eventually(check: Callable[[], None], timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            check()
            return
        except OSError as exc:
            if time.monotonic() >= deadline:
                raise TimeoutError(f"condition not met within {timeout}s: {exc}") from exc
        time.sleep(_EVENTUALLY_INTERVAL)


class KubeDNS:
    """A kube-dns daemon started through the global framework."""

    def __init__(self) -> None:
        self.name = ""
        self.dns_host = DNS_HOST
        self.dns_port = DNS_PORT
        self.health_port = HEALTH_PORT
        self.eventually_timeout = EVENTUALLY_TIMEOUT
        self.query_timeout = _QUERY_TIMEOUT
        self.is_running = False
        self._process: subprocess.Popen[bytes] | None = None

    def _connect(self, port: int) -> Callable[[], None]:
        def check() -> None:
            with socket.create_connection((self.dns_host, port), timeout=1.0):
                pass

        return check

    def start(self, name: str, *args: str) -> None:
        """Start kube-dns under name with extra args and wait until it listens."""
        self.name = name
        fr = get_framework()
        binary = fr.path("bin/amd64/kube-dns")
        argv = [
            *args,
            "--logtostderr",
            "--dns-port",
            str(self.dns_port),
            "--kubecfg-file",
            fr.path("test/e2e/cluster/config"),
        ]
        try:
            process = fr.run_in_background(name, binary, *argv)
        except OSError as exc:
            LOG.fatal(exc)
        self._process = process
        self.is_running = True

        def watch() -> None:
            process.wait()
            self.is_running = False

        threading.Thread(target=watch, name=f"watch-{name}", daemon=True).start()

        _eventually(self._connect(self.dns_port), self.eventually_timeout)
        _eventually(self._connect(self.health_port), self.eventually_timeout)
        LOG.log("kube-dns started")

    def stop(self) -> None:
        """Interrupt kube-dns so it flushes its logs, then kill it."""
        LOG.log("Stopping kube-dns")
        process = self._process
        if not self.is_running or process is None:
            raise RuntimeError("kube-dns is not running")
        process.send_signal(signal.SIGINT)
        time.sleep(_INTERRUPT_GRACE)
        process.kill()

    def query(self, name: str, qtype: int) -> list[str]:
        """Ask the DNS server for name and type; returns the answers as text."""
        query = dns.message.make_query(name, qtype, dns.rdataclass.IN, flags=0)
        response = dns.query.udp(
            query, self.dns_host, port=self.dns_port, timeout=self.query_timeout
        )
        return [
            line
            for rrset in response.answer
            for line in rrset.to_text().splitlines()
        ]