"""Plugins reporting CPU, disk and container statistics of the local host."""

from __future__ import annotations

import http.client
import json
import socket
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

from telegraf.plugins import registry
from telegraf.plugins.registry import Accumulator, Plugin
from telegraf.ps.common import NotImplementedYet
from telegraf.ps.cpu import CPUTimesStat, cpu_times
from telegraf.ps.disk import (
    DiskIOCountersStat,
    DiskUsageStat,
    disk_io_counters,
    disk_partitions,
    disk_usage,
)
from telegraf.ps.docker import CgroupMemStat, cgroup_cpu_docker, cgroup_mem_docker

DOCKER_SOCKET = "/var/run/docker.sock"
_DOCKER_TIMEOUT = 10.0


@dataclass
class DockerContainerStat:
    """CPU and memory statistics of one running container."""

    id: str
    name: str
    command: str
    cpu: CPUTimesStat
    mem: CgroupMemStat


class PS(ABC):
    """Source of the host statistics the plugins report."""

    @abstractmethod
    def cpu_times(self) -> list[CPUTimesStat]:
        """Return the CPU times of every CPU."""

    @abstractmethod
    def disk_usage(self) -> list[DiskUsageStat]:
        """Return the usage of every mounted file system."""

    @abstractmethod
    def disk_io(self) -> Mapping[str, DiskIOCountersStat]:
        """Return the I/O counters of every block device."""

    @abstractmethod
    def docker_stat(self) -> list[DockerContainerStat]:
        """Return statistics of every running container."""


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, path: str, timeout: float) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self._socket_path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


class SystemPS(PS):
    """Reads statistics from the running system."""

    def __init__(self, docker_socket: str = DOCKER_SOCKET) -> None:
        self.docker_socket = docker_socket

    def cpu_times(self) -> list[CPUTimesStat]:
        return cpu_times(True)

    def disk_usage(self) -> list[DiskUsageStat]:
        return [disk_usage(p.mountpoint) for p in disk_partitions(True)]

    def disk_io(self) -> Mapping[str, DiskIOCountersStat]:
        try:
            return disk_io_counters()
        except NotImplementedYet:
            return {}

    def _list_containers(self) -> list[dict] | None:
        conn = _UnixHTTPConnection(self.docker_socket, _DOCKER_TIMEOUT)
        try:
            conn.request("GET", "/containers/json")
            response = conn.getresponse()
            body = response.read()
        except OSError:
            return None
        finally:
            conn.close()
        if response.status != 200:
            raise RuntimeError(
                f"docker API returned status {response.status}: "
                f"{body.decode('utf-8', 'replace').strip()}"
            )
        return json.loads(body)

    def docker_stat(self) -> list[DockerContainerStat]:
        containers = self._list_containers()
        if containers is None:
            return []
        stats = []
        for cont in containers:
            cid = cont.get("Id", "")
            stats.append(
                DockerContainerStat(
                    id=cid,
                    name=" ".join(cont.get("Names") or []),
                    command=cont.get("Command", ""),
                    cpu=cgroup_cpu_docker(cid),
                    mem=cgroup_mem_docker(cid),
                )
            )
        return stats


def _add(acc: Accumulator, name: str, value: float, tags: Mapping[str, str] | None) -> None:
    """Add a value unless it is negative, which marks it as unavailable."""
    if value >= 0:
        acc.add(name, value, tags)


def _cpu_fields(cts: CPUTimesStat) -> list[tuple[str, float]]:
    return [
        ("user", cts.user),
        ("system", cts.system),
        ("idle", cts.idle),
        ("nice", cts.nice),
        ("iowait", cts.iowait),
        ("irq", cts.irq),
        ("softirq", cts.softirq),
        ("steal", cts.steal),
        ("guest", cts.guest),
        ("guestNice", cts.guest_nice),
        ("stolen", cts.stolen),
    ]


class _SystemPlugin(Plugin):
    def __init__(self, ps: PS | None = None) -> None:
        self.ps = ps if ps is not None else SystemPS()

    def sample_config(self) -> str:
        return ""


class CPUStats(_SystemPlugin):
    """Reports CPU usage."""

    def description(self) -> str:
        return "Read metrics about cpu usage"

    def sample_config(self) -> str:
        return ""

    def gather(self, acc: Accumulator) -> None:
        try:
            times = self.ps.cpu_times()
        except Exception as err:
            raise RuntimeError(f"error getting CPU info: {err}") from err
        for cts in times:
            tags = {"cpu": cts.cpu}
            for name, value in _cpu_fields(cts):
                _add(acc, name, value, tags)


class DiskStats(_SystemPlugin):
    """Reports disk usage by mount point."""

    def description(self) -> str:
        return "Read metrics about disk usage by mount point"

    def sample_config(self) -> str:
        return ""

    def gather(self, acc: Accumulator) -> None:
        try:
            disks = self.ps.disk_usage()
        except Exception as err:
            raise RuntimeError(f"error getting disk usage info: {err}") from err
        for du in disks:
            tags = {"path": du.path}
            acc.add("total", du.total, tags)
            acc.add("free", du.free, tags)
            acc.add("used", du.total - du.free, tags)
            acc.add("inodes_total", du.inodes_total, tags)
            acc.add("inodes_free", du.inodes_free, tags)
            acc.add("inodes_used", du.inodes_total - du.inodes_free, tags)


class DiskIOStats(_SystemPlugin):
    """Reports disk I/O by device."""

    def description(self) -> str:
        return "Read metrics about disk IO by device"

    def sample_config(self) -> str:
        return ""

    def gather(self, acc: Accumulator) -> None:
        try:
            diskio = self.ps.disk_io()
        except Exception as err:
            raise RuntimeError(f"error getting disk io info: {err}") from err
        for io in diskio.values():
            tags = {"name": io.name, "serial": io.serial_number}
            acc.add("reads", io.read_count, tags)
            acc.add("writes", io.write_count, tags)
            acc.add("read_bytes", io.read_bytes, tags)
            acc.add("write_bytes", io.write_bytes, tags)
            acc.add("read_time", io.read_time, tags)
            acc.add("write_time", io.write_time, tags)
            acc.add("io_time", io.io_time, tags)


_MEM_MEASUREMENTS = [
    ("cache", "cache"),
    ("rss", "rss"),
    ("rss_huge", "rss_huge"),
    ("mapped_file", "mapped_file"),
    ("swap_in", "pgpgin"),
    ("swap_out", "pgpgout"),
    ("page_fault", "pgfault"),
    ("page_major_fault", "pgmajfault"),
    ("inactive_anon", "inactive_anon"),
    ("active_anon", "active_anon"),
    ("inactive_file", "inactive_file"),
    ("active_file", "active_file"),
    ("unevictable", "unevictable"),
    ("memory_limit", "hierarchical_memory_limit"),
    ("total_cache", "total_cache"),
    ("total_rss", "total_rss"),
    ("total_rss_huge", "total_rss_huge"),
    ("total_mapped_file", "total_mapped_file"),
    ("total_swap_in", "total_pgpgin"),
    ("total_swap_out", "total_pgpgout"),
    ("total_page_fault", "total_pgfault"),
    ("total_page_major_fault", "total_pgmajfault"),
    ("total_inactive_anon", "total_inactive_anon"),
    ("total_active_anon", "total_active_anon"),
    ("total_inactive_file", "total_inactive_file"),
    ("total_active_file", "total_active_file"),
    ("total_unevictable", "total_unevictable"),
]


class DockerStats(_SystemPlugin):
    """Reports CPU and memory of docker containers."""

    def description(self) -> str:
        return "Read metrics about docker containers"

    def sample_config(self) -> str:
        return ""

    def gather(self, acc: Accumulator) -> None:
        try:
            containers = self.ps.docker_stat()
        except Exception as err:
            raise RuntimeError(f"error getting docker info: {err}") from err
        for cont in containers:
            tags = {"id": cont.id, "name": cont.name, "command": cont.command}
            for name, value in _cpu_fields(cont.cpu):
                acc.add(name, value, tags)
            for name, attr in _MEM_MEASUREMENTS:
                acc.add(name, getattr(cont.mem, attr), tags)


registry.add("cpu", CPUStats)
registry.add("disk", DiskStats)
registry.add("io", DiskIOStats)
registry.add("docker", DockerStats)