import os
import tempfile

import pytest

from telegraf.accumulator import BatchPoints
from telegraf.plugins import registry
from telegraf.plugins.system import (
    PS,
    CPUStats,
    DiskIOStats,
    DiskStats,
    DockerContainerStat,
    DockerStats,
    SystemPS,
)
from telegraf.ps.cpu import CPUTimesStat
from telegraf.ps.disk import DiskIOCountersStat, DiskUsageStat
from telegraf.ps.docker import CgroupMemStat


class FakePS(PS):
    def __init__(self, cpus=(), disks=(), io=None, containers=(), error=None):
        self.cpus = list(cpus)
        self.disks = list(disks)
        self.io = io or {}
        self.containers = list(containers)
        self.error = error

    def _check(self):
        if self.error is not None:
            raise self.error

    def cpu_times(self):
        self._check()
        return self.cpus

    def disk_usage(self):
        self._check()
        return self.disks

    def disk_io(self):
        self._check()
        return self.io

    def docker_stat(self):
        self._check()
        return self.containers


def _values(acc):
    return {p.measurement: p.fields["value"] for p in acc.points}


def test_cpu_stats_reports_times_with_cpu_tag():
    stat = CPUTimesStat(cpu="cpu0", user=100.1, system=200.1, idle=300.1)
    acc = BatchPoints()
    CPUStats(FakePS(cpus=[stat])).gather(acc)
    values = _values(acc)
    assert values["user"] == 100.1
    assert values["system"] == 200.1
    assert values["idle"] == 300.1
    assert all(p.tags == {"cpu": "cpu0"} for p in acc.points)
    assert len(acc.points) == 11


def test_cpu_stats_skips_negative_values():
    stat = CPUTimesStat(cpu="cpu-total", user=1.5, iowait=-1, steal=-1, stolen=-1)
    acc = BatchPoints()
    CPUStats(FakePS(cpus=[stat])).gather(acc)
    names = {p.measurement for p in acc.points}
    assert "iowait" not in names
    assert "steal" not in names
    assert "stolen" not in names
    assert "guestNice" in names
    assert _values(acc)["user"] == 1.5


def test_cpu_stats_wraps_errors():
    with pytest.raises(RuntimeError, match="^error getting CPU info: boom"):
        CPUStats(FakePS(error=OSError("boom"))).gather(BatchPoints())


def test_disk_stats_reports_usage():
    du = DiskUsageStat(path="/", total=1000, free=400, inodes_total=50, inodes_free=20)
    acc = BatchPoints()
    DiskStats(FakePS(disks=[du])).gather(acc)
    values = _values(acc)
    assert values["total"] == 1000
    assert values["free"] == 400
    assert values["used"] + values["free"] == values["total"]
    assert values["inodes_used"] + values["inodes_free"] == values["inodes_total"]
    assert all(p.tags == {"path": "/"} for p in acc.points)


def test_disk_stats_wraps_errors():
    with pytest.raises(RuntimeError, match="^error getting disk usage info"):
        DiskStats(FakePS(error=ValueError("bad"))).gather(BatchPoints())


def test_disk_io_stats_reports_counters():
    io = DiskIOCountersStat(
        name="sd01", read_count=100, write_count=200, read_bytes=300,
        write_bytes=400, serial_number="SERIAL",
    )
    acc = BatchPoints()
    DiskIOStats(FakePS(io={"sd01": io})).gather(acc)
    values = _values(acc)
    assert values == {
        "reads": 100,
        "writes": 200,
        "read_bytes": 300,
        "write_bytes": 400,
        "read_time": 0,
        "write_time": 0,
        "io_time": 0,
    }
    assert all(p.tags == {"name": "sd01", "serial": "SERIAL"} for p in acc.points)


def test_disk_io_stats_wraps_errors():
    with pytest.raises(RuntimeError, match="^error getting disk io info"):
        DiskIOStats(FakePS(error=OSError("x"))).gather(BatchPoints())


def test_docker_stats_reports_cpu_and_memory():
    cont = DockerContainerStat(
        id="abc",
        name="/web",
        command="run",
        cpu=CPUTimesStat(cpu="abc", user=5.0, system=7.0),
        mem=CgroupMemStat(container_id="abc", cache=11, pgpgin=13,
                          hierarchical_memory_limit=17, total_unevictable=19),
    )
    acc = BatchPoints()
    DockerStats(FakePS(containers=[cont])).gather(acc)
    values = _values(acc)
    assert values["user"] == 5.0
    assert values["system"] == 7.0
    assert values["cache"] == 11
    assert values["swap_in"] == 13
    assert values["memory_limit"] == 17
    assert values["total_unevictable"] == 19
    assert all(
        p.tags == {"id": "abc", "name": "/web", "command": "run"} for p in acc.points
    )


def test_docker_stats_wraps_errors():
    with pytest.raises(RuntimeError, match="^error getting docker info"):
        DockerStats(FakePS(error=OSError("x"))).gather(BatchPoints())


def test_plugin_prefix_applies():
    acc = BatchPoints(prefix="cpu_")
    CPUStats(FakePS(cpus=[CPUTimesStat(cpu="cpu0", user=1.0)])).gather(acc)
    assert "cpu_user" in {p.measurement for p in acc.points}


def test_descriptions_and_sample_configs():
    ps = FakePS()
    assert CPUStats(ps).description() == "Read metrics about cpu usage"
    assert DiskStats(ps).description() == "Read metrics about disk usage by mount point"
    assert DiskIOStats(ps).description() == "Read metrics about disk IO by device"
    assert DockerStats(ps).description() == "Read metrics about docker containers"
    assert all(p.sample_config() == "" for p in
               (CPUStats(ps), DiskStats(ps), DiskIOStats(ps), DockerStats(ps)))


@pytest.mark.parametrize(
    "name, description",
    [
        ("cpu", "Read metrics about cpu usage"),
        ("disk", "Read metrics about disk usage by mount point"),
        ("io", "Read metrics about disk IO by device"),
        ("docker", "Read metrics about docker containers"),
    ],
)
def test_plugins_registered(name, description):
    plugin = registry.PLUGINS[name]()
    assert plugin.description() == description
    assert plugin.ps.docker_socket == "/var/run/docker.sock"


def test_docker_stat_without_daemon_is_empty():
    with tempfile.TemporaryDirectory() as tmp:
        ps = SystemPS(docker_socket=os.path.join(tmp, "missing.sock"))
        assert ps.docker_stat() == []


def test_default_ps_is_system():
    assert isinstance(CPUStats().ps, SystemPS)
    assert CPUStats().ps.docker_socket == "/var/run/docker.sock"