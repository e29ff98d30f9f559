"""A thin shim over the docker command line; errors end the run."""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Sequence

from kubedns.e2e_logger import LOG

_START_POLL_INTERVAL = 0.1


def _decode(output: bytes | None) -> str:
    return (output or b"").decode(errors="replace")


class Docker:
    """Runs docker commands against one daemon, optionally managing the daemon."""

    def __init__(
        self,
        docker_exec: str = "docker",
        manage_daemon: bool = False,
        base_dir: str = "/",
        cidr: str = "10.123.0.0/24",
        bridge: str = "docker0",
        socket: str = "unix:///var/run/docker.sock",
    ) -> None:
        self.docker_exec = docker_exec
        self.manage_daemon = manage_daemon
        self.base_dir = base_dir
        self.cidr = cidr
        self.bridge = bridge
        self.socket = socket
        self._process: subprocess.Popen[bytes] | None = None

    def start(self) -> None:
        """Start the daemon if it is managed here and wait until it answers."""
        if not self.manage_daemon:
            return

        exec_dir = self.base_dir + "/var/lib/docker"
        graph_dir = self.base_dir + "/var/run/docker"
        for directory in (exec_dir, graph_dir):
            try:
                os.makedirs(directory, mode=0o755, exist_ok=True)
            except OSError as exc:
                LOG.fatal(exc)

        pidfile = self.base_dir + "/pid"
        self.socket = "unix://" + self.base_dir + "/var/run/docker.sock"

        self._ensure_bridge()

        args = [
            self.docker_exec,
            "daemon",
            f"--bridge={self.bridge}",
            f"--exec-root={exec_dir}",
            f"--graph={graph_dir}",
            f"--host={self.socket}",
            f"--pidfile={pidfile}",
        ]
        LOG.log(f"Starting Docker {args}")
        try:
            self._process = subprocess.Popen(["sudo", *args])
        except OSError as exc:
            LOG.fatal(exc)

        self._wait_for_start()

    def stop(self) -> None:
        """Stop the daemon if it is managed here."""
        if not self.manage_daemon:
            return
        process = self._process
        if process is None:
            LOG.fatal("Docker daemon is not running")

        # The daemon runs as root, so it has to be killed through sudo.
        try:
            subprocess.run(["sudo", "kill", str(process.pid)], check=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            LOG.fatal(exc)
        try:
            status = process.wait()
        except OSError as exc:
            LOG.log(f"Wait for docker returned {exc}")
            status = None
        LOG.log(f"Docker exited with {status}")
        self._process = None

    def pull(self, *args: str) -> None:
        """Pull each of the given images."""
        for image in args:
            self._run_command(["-H", self.socket, "pull", image])

    def run(self, *args: str) -> str:
        """Call "docker run" with args and return the new container's id."""
        argv = ["-H", self.socket, "run", *args]
        LOG.log(f"docker run {argv}")
        try:
            result = subprocess.run(
                [self.docker_exec, *argv],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            LOG.fatal(f"docker returned exit code {exc}")
        output = _decode(result.stdout)
        LOG.log_with_prefix("docker", output)
        if result.returncode != 0:
            LOG.log_with_prefix("docker", output)
            LOG.fatal(f"docker returned exit code {result.returncode}")
        return output.strip()

    def remove(self, tag: str) -> None:
        """Force-remove the container named by tag."""
        self._run_command(["-H", self.socket, "rm", "-f", tag])

    def kill(self, tag: str) -> None:
        """Kill the container named by tag."""
        self._run_command(["-H", self.socket, "kill", tag])

    def list(self, filter: str) -> list[str]:  # noqa: A002
        """Ids of running containers matching filter; all of them if filter is ""."""
        argv = ["-H", self.socket, "ps", "-q"]
        if filter:
            argv += ["--filter", filter]
        LOG.log(f"docker {argv}")
        try:
            result = subprocess.run(
                [self.docker_exec, *argv], stdout=subprocess.PIPE, check=True
            )
        except (subprocess.CalledProcessError, OSError) as exc:
            LOG.fatal(f"Error getting containers: {exc}")
        lines = (line.strip() for line in _decode(result.stdout).split("\n"))
        return [line for line in lines if line]

    def _run_command(self, args: Sequence[str]) -> None:
        LOG.log(f"docker {list(args)}")
        try:
            result = subprocess.run(
                [self.docker_exec, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            LOG.fatal(exc)
        if result.returncode != 0:
            LOG.log_with_prefix("docker", _decode(result.stdout))
            LOG.fatal(f"docker exited with status {result.returncode}")

    def _ensure_bridge(self) -> None:
        try:
            exists = (
                subprocess.run(
                    ["ip", "link", "show", self.bridge],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                ).returncode
                == 0
            )
        except OSError:
            exists = False
        if exists:
            LOG.log(f"Bridge device {self.bridge} exists")
            return

        LOG.log(f"Creating bridge device {self.bridge} ({self.cidr})")
        for command in (
            ["sudo", "brctl", "addbr", self.bridge],
            ["sudo", "ip", "addr", "add", self.cidr, "dev", self.bridge],
            ["sudo", "ip", "link", "set", "dev", self.bridge, "up"],
        ):
            try:
                subprocess.run(command, check=True)
            except (subprocess.CalledProcessError, OSError) as exc:
                LOG.fatal(exc)

    def _wait_for_start(self) -> None:
        while True:
            try:
                result = subprocess.run(
                    [self.docker_exec, "-H", self.socket, "info"],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                )
            except OSError:
                pass
            else:
                if result.returncode == 0:
                    return
            time.sleep(_START_POLL_INTERVAL)