"""Where the process runs decides a few defaults (database host, .env loading)."""

import os
from pathlib import Path

_CGROUP_MARKERS = ("docker", "containerd", "kubepods")


def running_in_docker() -> bool:
    flag = os.getenv("IN_DOCKER")
    if flag:
        return flag.strip().lower() in ("1", "true", "yes")
    if Path("/.dockerenv").exists():
        return True
    try:
        cgroup = Path("/proc/1/cgroup").read_text()
    except OSError:
        return False
    return any(marker in cgroup for marker in _CGROUP_MARKERS)


def default_db_host() -> str:
    # compose service name inside a container
    return "db" if running_in_docker() else "127.0.0.1"
