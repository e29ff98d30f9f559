"""The framework shared by the end-to-end tests."""

from __future__ import annotations

import os
import subprocess
import sys

from kubedns.e2e_cluster import Cluster
from kubedns.e2e_docker import Docker
from kubedns.e2e_logger import LOG
from kubedns.e2e_options import Options, default_options
from kubedns.e2e_util import can_sudo, keep_sudo_active

_framework: Framework | None = None


class Framework:
    """Holds the options, docker, cluster and background processes of a run."""

    def __init__(self, options: Options, docker: Docker, cluster: Cluster) -> None:
        self.options = options
        self.docker = docker
        self.cluster = cluster
        self.processes: dict[str, subprocess.Popen[bytes]] = {}
        self.failed = False

    def set_up(self) -> None:
        """Bring up the cluster."""
        self.cluster.set_up()

    def tear_down(self) -> None:
        """Tear down the cluster; after a failure, dump the process logs to stderr."""
        self.cluster.tear_down()
        if not self.failed:
            return
        for name in self.processes:
            LOG.log(f"Failure detected, dumping logs for '{name}'")
            for stream, path in (
                ("stdout", self.stdout_logfile(name)),
                ("stderr", self.stderr_logfile(name)),
            ):
                LOG.log(f"==== {name} {stream} ====")
                try:
                    with open(path, encoding="utf-8", errors="replace") as log_file:
                        sys.stderr.write(log_file.read())
                except OSError as exc:
                    LOG.fatal(f"Could not open {path}: {exc}")

    def path(self, relative: str) -> str:
        """Absolute path of a path relative to the repository."""
        return os.path.abspath(self.options.base_dir + "/" + relative)

    def stdout_logfile(self, name: str) -> str:
        """File receiving the stdout of the named background process."""
        return f"{self.options.work_dir}/logs/{name}.out"

    def stderr_logfile(self, name: str) -> str:
        """File receiving the stderr of the named background process."""
        return f"{self.options.work_dir}/logs/{name}.err"

    def run_in_background(self, name: str, binary: str, *args: str) -> subprocess.Popen[bytes]:
        """Start binary with args, sending its output to the named log files."""
        LOG.log(f"Starting {name} ({binary} {list(args)})")
        if name in self.processes:
            LOG.fatal(f"Cannot run more than one process with the same name: {name}")

        try:
            stdout = open(self.stdout_logfile(name), "wb")
        except OSError as exc:
            LOG.fatal(f"Could not create {self.stdout_logfile(name)}: {exc}")
        with stdout:
            try:
                stderr = open(self.stderr_logfile(name), "wb")
            except OSError as exc:
                LOG.fatal(f"Could not create {self.stderr_logfile(name)}: {exc}")
            with stderr:
                process = subprocess.Popen([binary, *args], stdout=stdout, stderr=stderr)

        self.processes[name] = process
        return process


def init_framework(base_dir: str, work_dir: str) -> Framework:
    """Create the global framework; sudo must work without a password."""
    global _framework
    LOG.log(f"Creating framework (baseDir={base_dir}, workDir={work_dir})")

    if not can_sudo():
        LOG.fatal(
            "e2e test requires `sudo` to be active. "
            "Run `sudo -v` before running the e2e test."
        )
    keep_sudo_active()

    options = default_options(base_dir, work_dir)
    docker = Docker()
    framework = Framework(options, docker, Cluster(options, docker))

    try:
        os.makedirs(work_dir + "/logs", mode=0o755, exist_ok=True)
    except OSError as exc:
        LOG.fatal(f"Could not mkdir {work_dir}: {exc}")

    _framework = framework
    return framework


def get_framework() -> Framework:
    """The global framework; fatal if init_framework has not been called."""
    if _framework is None:
        LOG.fatal("InitFramework must be called before use")
    return _framework