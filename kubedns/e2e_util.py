"""Helpers for sudo and mounts used by the end-to-end tests."""

from __future__ import annotations

import subprocess
import threading
import time

from kubedns.e2e_logger import LOG

STANDARD_TIMEOUT = 10.0
SUDO_REFRESH_INTERVAL = 10.0


def _sudo(*args: str) -> None:
    subprocess.run(
        ["sudo", *args],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=True,
    )


def can_sudo() -> bool:
    """True if sudo can run without asking for a password."""
    try:
        _sudo("-nv")
    except (subprocess.CalledProcessError, OSError):
        return False
    return True


def _refresh_sudo() -> None:
    try:
        _sudo("-nv")
    except (subprocess.CalledProcessError, OSError) as exc:
        LOG.fatal(f"Unable to keep sudo active: {exc}")
    time.sleep(SUDO_REFRESH_INTERVAL)


def keep_sudo_active() -> threading.Thread:
    """Refresh the sudo timestamp in a background thread and return the thread."""
    thread = threading.Thread(target=_refresh_sudo, name="keep-sudo", daemon=True)
    thread.start()
    return thread


def make_shared_mount(path: str) -> None:
    """Bind-mount path onto itself and make it recursively shared."""
    try:
        _sudo("mount", "--bind", path, path)
    except (subprocess.CalledProcessError, OSError) as exc:
        LOG.fatal(f"Error bind mounting {path}: {exc}")
    try:
        _sudo("mount", "--make-rshared", path)
    except (subprocess.CalledProcessError, OSError) as exc:
        LOG.fatal(f"Error mount --make-rshared {path}: {exc}")


def umount(path: str) -> None:
    """Unmount path."""
    try:
        _sudo("umount", path)
    except (subprocess.CalledProcessError, OSError) as exc:
        LOG.fatal(f"Error umount {path}: {exc}")