"""A mock Kubernetes cluster made of docker containers, for end-to-end tests."""

from __future__ import annotations

import os
import subprocess
import time
import urllib.error
import urllib.request
from dataclasses import dataclass

from kubedns.e2e_docker import Docker
from kubedns.e2e_logger import LOG
from kubedns.e2e_options import Options
from kubedns.e2e_util import make_shared_mount, umount

STARTUP_TIMEOUT = 10.0
API_SERVER_URL = "http://localhost:8080"
_POLL_INTERVAL = 1.0


@dataclass
class _Containers:
    etcd: str = ""
    api: str = ""
    kubelet: str = ""


def _sudo(*args: str) -> None:
    subprocess.run(
        ["sudo", *args],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=True,
    )


class Cluster:
    """etcd, an API server and a kubelet, each running in a container."""

    def __init__(self, options: Options, docker: Docker) -> None:
        self.options = options
        self.docker = docker
        self.containers = _Containers()
        self.startup_timeout = STARTUP_TIMEOUT
        self.api_server_url = API_SERVER_URL
        self.poll_interval = _POLL_INTERVAL
        self._resolve_dirs()

    def _resolve_dirs(self) -> None:
        self.manifest_dir = os.path.abspath(
            f"{self.options.base_dir}/test/e2e/cluster/manifests"
        )
        self.var_lib_docker = os.path.abspath("/var/lib/docker")
        self.var_run = os.path.abspath("/var/run")
        self.var_lib_kubelet = os.path.abspath("/var/lib/kubelet")

    def set_up(self) -> None:
        """Pull the images, start every component and wait for the API server."""
        LOG.log("SetUp")
        self._resolve_dirs()
        self.docker.pull(self.options.etcd_image, self.options.hyperkube_image)

        self.start_etcd()
        self.start_api_server()
        self.start_kubelet()

        self.wait_for_api_server()

    def tear_down(self) -> None:
        """Stop the kubelet, the API server and etcd."""
        LOG.log("Teardown")
        self.stop_kubelet()
        self.stop_api_server()
        self.stop_etcd()

    def start_etcd(self) -> None:
        """Run etcd on the host network."""
        LOG.log("Starting etcd")
        self.containers.etcd = self.docker.run("-d", "--net=host", self.options.etcd_image)

    def stop_etcd(self) -> None:
        """Kill the etcd container if it is running."""
        if not self.containers.etcd:
            return
        LOG.log("Stopping etcd")
        self.docker.kill(self.containers.etcd)
        self.containers.etcd = ""

    def start_api_server(self) -> None:
        """Run the API server against the local etcd."""
        LOG.log("Starting API server")
        self.containers.api = self.docker.run(
            "-d",
            f"--volume={self.options.base_dir}:/src:ro",
            f"--volume={self.options.work_dir}:/data:rw",
            "--net=host",
            "--pid=host",
            self.options.hyperkube_image,
            "/hyperkube",
            "apiserver",
            "--insecure-bind-address=0.0.0.0",
            "--service-cluster-ip-range=10.0.0.1/24",
            "--etcd_servers=http://127.0.0.1:2379",
            "--v=2",
        )

    def stop_api_server(self) -> None:
        """Kill the API server container if it is running."""
        if not self.containers.api:
            return
        LOG.log("Stopping API server")
        self.docker.kill(self.containers.api)
        self.containers.api = ""

    def wait_for_api_server(self) -> None:
        """Poll the API server until it answers; fatal after the startup timeout."""
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            try:
                with urllib.request.urlopen(self.api_server_url, timeout=1.0):
                    pass
            except urllib.error.HTTPError:
                LOG.log("API server started")
                return
            except (urllib.error.URLError, OSError):
                LOG.log("Waiting for API server to start")
                time.sleep(self.poll_interval)
            else:
                LOG.log("API server started")
                return
        LOG.fatal("API server failed to start")

    def start_kubelet(self) -> None:
        """Prepare the kubelet directory as a shared mount and run the kubelet."""
        LOG.log("Starting Kubelet")
        try:
            _sudo("mkdir", "-p", self.var_lib_kubelet)
        except (subprocess.CalledProcessError, OSError) as exc:
            LOG.fatal(f"Could not create {self.var_lib_kubelet}: {exc}")
        make_shared_mount(self.var_lib_kubelet)

        args = [
            "-d",
            "--volume=/:/rootfs:ro",  # used by the nsenter mounter
            "--volume=/sys:/sys:ro",
            "--volume=/dev:/dev",
            f"--volume={self.options.base_dir}:/src:ro",
            f"--volume={self.options.work_dir}:/data:rw",
            f"--volume={self.manifest_dir}:/etc/kubernetes/manifests-e2e:ro",
            f"--volume={self.var_lib_docker}:/var/lib/docker:rw",
            f"--volume={self.var_run}:/var/run:rw",
            f"--volume={self.var_lib_kubelet}:/var/lib/kubelet:shared",
            "--net=host",
            "--pid=host",
            "--privileged=true",
            self.options.hyperkube_image,
            "/hyperkube",
            "kubelet",
            "--v=4",
            "--containerized",
            "--hostname-override=0.0.0.0",
            "--address=0.0.0.0",
            "--cluster_dns=10.0.0.10",
            "--cluster_domain=cluster.local",
            "--api-servers=http://localhost:8080",
            "--config=/etc/kubernetes/manifests-e2e",
        ]
        self.containers.kubelet = self.docker.run(*args)

    def stop_kubelet(self) -> None:
        """Kill the kubelet and its containers, then clean up its directory."""
        if not self.containers.kubelet:
            return
        LOG.log("Stopping Kubelet")
        self.docker.kill(self.containers.kubelet)
        self.containers.kubelet = ""

        for tag in self.docker.list("name=k8s_*"):
            self.docker.kill(tag)

        umount(self.var_lib_kubelet)
        try:
            _sudo("rm", "-rf", self.var_lib_kubelet)
        except (subprocess.CalledProcessError, OSError) as exc:
            LOG.fatal(f"Could not remove kubelet dir {self.var_lib_kubelet}: {exc}")