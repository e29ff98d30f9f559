"""Test harness driving the dnsmasq nanny through its configuration files."""

from __future__ import annotations

import os
import time

GLOBAL_TIMEOUT = 10.0
_POLL_INTERVAL = 1.0


class Harness:
    """Writes nanny configuration under tmp_dir and reads the mock's arguments."""

    def __init__(self, tmp_dir: str, nanny_exec: str, mock_dnsmasq: str) -> None:
        self.tmp_dir = tmp_dir
        self.nanny_exec = nanny_exec
        self.mock_dnsmasq = mock_dnsmasq
        self.timeout = GLOBAL_TIMEOUT
        self.poll_interval = _POLL_INTERVAL

    @property
    def config_dir(self) -> str:
        return self.tmp_dir + "/config"

    def setup(self) -> None:
        """Create the configuration directory; raises if it already exists."""
        os.mkdir(self.config_dir, 0o755)

    def _write_or_remove(self, key: str, value: str) -> None:
        filename = f"{self.config_dir}/{key}"
        if value:
            with open(filename, "w", encoding="utf-8") as config_file:
                config_file.write(value)
            return
        try:
            os.remove(filename)
        except FileNotFoundError:
            pass

    def configure(self, stub_domains: str, upstream_nameservers: str) -> None:
        """Write each setting to its file, removing the file for an empty value."""
        self._write_or_remove("stubDomains", stub_domains)
        self._write_or_remove("upstreamNameservers", upstream_nameservers)

    def read_output(self) -> list[str]:
        """Non-empty lines of the mock's argument log; empty if it cannot be read."""
        try:
            with open(self.tmp_dir + "/args.txt", encoding="utf-8") as output:
                text = output.read()
        except OSError:
            return []
        return [line for line in text.split("\n") if line]

    def wait_for_args(self, line: str) -> None:
        """Wait until line is the last one logged; raises TimeoutError otherwise."""
        deadline = time.monotonic() + self.timeout
        while time.monotonic() <= deadline:
            lines = self.read_output()
            if lines and lines[-1] == line:
                return
            time.sleep(self.poll_interval)
        raise TimeoutError(f"timeout waiting for line '{line}'")