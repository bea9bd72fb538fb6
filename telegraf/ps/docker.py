"""Container statistics read from the cgroup file system."""

from __future__ import annotations

import dataclasses
import json
import os
import re
import shutil
import subprocess
from dataclasses import dataclass

from telegraf.ps.common import read_lines
from telegraf.ps.cpu import CPUTimesStat

CPUACCT_BASE = "/sys/fs/cgroup/cpuacct/docker"
MEMORY_BASE = "/sys/fs/cgroup/memory/docker"

_UINT = re.compile(r"[0-9]+")


class DockerNotAvailable(Exception):
    """Raised when the docker command cannot be found."""

    def __init__(self, message: str = "docker not available") -> None:
        super().__init__(message)


@dataclass
class CgroupMemStat:
    """Memory statistics of a control group."""

    container_id: str = ""
    cache: int = 0
    rss: int = 0
    rss_huge: int = 0
    mapped_file: int = 0
    pgpgin: int = 0
    pgpgout: int = 0
    pgfault: int = 0
    pgmajfault: int = 0
    inactive_anon: int = 0
    active_anon: int = 0
    inactive_file: int = 0
    active_file: int = 0
    unevictable: int = 0
    hierarchical_memory_limit: int = 0
    total_cache: int = 0
    total_rss: int = 0
    total_rss_huge: int = 0
    total_mapped_file: int = 0
    total_pgpgin: int = 0
    total_pgpgout: int = 0
    total_pgfault: int = 0
    total_pgmajfault: int = 0
    total_inactive_anon: int = 0
    total_active_anon: int = 0
    total_inactive_file: int = 0
    total_active_file: int = 0
    total_unevictable: int = 0

    def __str__(self) -> str:
        text = json.dumps(dataclasses.asdict(self), separators=(",", ":"), ensure_ascii=False)
        return text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


_MEM_COUNTERS = frozenset(f.name for f in dataclasses.fields(CgroupMemStat)) - {"container_id"}


def get_docker_id_list() -> list[str]:
    """Return the full IDs of the running containers."""
    docker = shutil.which("docker")
    if docker is None:
        raise DockerNotAvailable()
    completed = subprocess.run(
        [docker, "ps", "-q", "--no-trunc"],
        capture_output=True,
        text=True,
        check=True,
    )
    return [line for line in completed.stdout.split("\n") if line]


def cgroup_cpu(containerid: str, base: str = "") -> CPUTimesStat:
    """Return the CPU times of a control group; an empty id means all groups."""
    path = os.path.join(base or CPUACCT_BASE, containerid, "cpuacct.stat")
    lines = read_lines(path)
    stat = CPUTimesStat(cpu=containerid or "all")
    for line in lines:
        fields = line.split(" ")
        if len(fields) < 2 or fields[0] not in ("user", "system"):
            continue
        try:
            value = float(fields[1])
        except ValueError:
            continue
        if fields[0] == "user":
            stat.user = value
        else:
            stat.system = value
    return stat


def cgroup_cpu_docker(containerid: str) -> CPUTimesStat:
    """Return the CPU times of a docker container."""
    return cgroup_cpu(containerid, CPUACCT_BASE)


def cgroup_mem(containerid: str, base: str = "") -> CgroupMemStat:
    """Return the memory statistics of a control group; an empty id means all groups."""
    path = os.path.join(base or MEMORY_BASE, containerid, "memory.stat")
    lines = read_lines(path)
    values: dict[str, int] = {}
    for line in lines:
        fields = line.split(" ")
        if len(fields) < 2 or not _UINT.fullmatch(fields[1]):
            continue
        value = int(fields[1])
        if value >= 1 << 64:
            continue
        if fields[0] in _MEM_COUNTERS:
            values[fields[0]] = value
    return CgroupMemStat(container_id=containerid or "all", **values)


def cgroup_mem_docker(containerid: str) -> CgroupMemStat:
    """Return the memory statistics of a docker container."""
    return cgroup_mem(containerid, MEMORY_BASE)