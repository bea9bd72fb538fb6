"""CPU time, information and utilisation readers."""

from __future__ import annotations

import dataclasses
import itertools
import json
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any

from telegraf.ps.common import read_lines

PROC_STAT = "/proc/stat"
PROC_CPUINFO = "/proc/cpuinfo"


def _clock_ticks() -> int:
    try:
        ticks = os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return 100
    return ticks if ticks > 0 else 100


CLK_TCK = _clock_ticks()


def _go_json_float(value: float) -> Any:
    if value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


def _go_json(data: dict[str, Any]) -> str:
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


@dataclass
class CPUTimesStat:
    """Seconds a CPU has spent in each state."""

    cpu: str = ""
    user: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    nice: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0
    guest: float = 0.0
    guest_nice: float = 0.0
    stolen: float = 0.0

    def __str__(self) -> str:
        numbers = [
            ("user", self.user),
            ("system", self.system),
            ("idle", self.idle),
            ("nice", self.nice),
            ("iowait", self.iowait),
            ("irq", self.irq),
            ("softirq", self.softirq),
            ("steal", self.steal),
            ("guest", self.guest),
            ("guest_nice", self.guest_nice),
            ("stolen", self.stolen),
        ]
        parts = [f'"cpu":"{self.cpu}"']
        parts.extend(f'"{name}":{value:.1f}' for name, value in numbers)
        return "{" + ",".join(parts) + "}"

    def _totals(self) -> tuple[float, float]:
        busy = (
            self.user + self.system + self.nice + self.iowait + self.irq
            + self.softirq + self.steal + self.guest + self.guest_nice + self.stolen
        )
        return busy + self.idle, busy


@dataclass
class CPUInfoStat:
    """Static description of a processor."""

    cpu: int = 0
    vendor_id: str = ""
    family: str = ""
    model: str = ""
    stepping: int = 0
    physical_id: str = ""
    core_id: str = ""
    cores: int = 0
    model_name: str = ""
    mhz: float = 0.0
    cache_size: int = 0
    flags: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return _go_json(
            {
                "cpu": self.cpu,
                "vendor_id": self.vendor_id,
                "family": self.family,
                "model": self.model,
                "stepping": self.stepping,
                "physical_id": self.physical_id,
                "core_id": self.core_id,
                "cores": self.cores,
                "model_name": self.model_name,
                "mhz": _go_json_float(float(self.mhz)),
                "cache_size": self.cache_size,
                "flags": list(self.flags),
            }
        )


_INTEGER = re.compile(r"[+-]?[0-9]+")


def _parse_int(value: str) -> int:
    if not _INTEGER.fullmatch(value):
        raise ValueError(f"invalid integer: {value!r}")
    return int(value)


def cpu_counts(logical: bool) -> int:
    """Return the number of CPUs."""
    return os.cpu_count() or 1


def parse_stat_line(line: str) -> CPUTimesStat:
    """Parse one ``cpu`` line of the kernel's stat file."""
    fields = line.split()
    if not fields or not fields[0].startswith("cpu"):
        raise ValueError("not contain cpu")
    if len(fields) < 9:
        raise ValueError(f"too few fields in stat line: {line!r}")

    name = "cpu-total" if fields[0] == "cpu" else fields[0]
    tick = float(CLK_TCK)
    user, nice, system, idle, iowait, irq, softirq, stolen = (
        float(f) / tick for f in fields[1:9]
    )
    stat = CPUTimesStat(
        cpu=name,
        user=user,
        nice=nice,
        system=system,
        idle=idle,
        iowait=iowait,
        irq=irq,
        softirq=softirq,
        stolen=stolen,
    )
    if len(fields) > 9:
        stat.steal = float(fields[9])
    if len(fields) > 10:
        stat.guest = float(fields[10])
    if len(fields) > 11:
        stat.guest_nice = float(fields[11])
    return stat


def cpu_times(percpu: bool) -> list[CPUTimesStat]:
    """Return the total CPU times, or one entry per CPU when ``percpu``."""
    lines = read_lines(PROC_STAT)
    if percpu:
        candidates = list(itertools.takewhile(lambda l: l.startswith("cpu"), lines[1:]))
    else:
        candidates = lines[:1]

    result = []
    for line in candidates:
        try:
            result.append(parse_stat_line(line))
        except ValueError:
            continue
    return result


def cpu_info() -> list[CPUInfoStat]:
    """Return a description of every processor listed in the cpuinfo file."""
    try:
        lines = read_lines(PROC_CPUINFO)
    except OSError:
        return []

    result: list[CPUInfoStat] = []
    info = CPUInfoStat()
    for line in lines:
        parts = line.split(":")
        if len(parts) < 2:
            if info.vendor_id:
                result.append(dataclasses.replace(info, flags=list(info.flags)))
            continue
        key, value = parts[0].strip(), parts[1].strip()
        match key:
            case "processor":
                info = CPUInfoStat(cpu=_parse_int(value))
            case "vendor_id":
                info.vendor_id = value
            case "cpu family":
                info.family = value
            case "model":
                info.model = value
            case "model name":
                info.model_name = value
            case "stepping":
                info.stepping = _parse_int(value)
            case "cpu MHz":
                info.mhz = float(value)
            case "cache size":
                info.cache_size = _parse_int(value.replace(" KB", "", 1))
            case "physical id":
                info.physical_id = value
            case "core id":
                info.core_id = value
            case "cpu cores":
                info.cores = _parse_int(value)
            case "flags":
                info.flags = value.split(",")
    return result


def _snapshot(percpu: bool) -> list[CPUTimesStat]:
    try:
        return cpu_times(percpu)
    except OSError:
        return []


_last_times: dict[bool, list[CPUTimesStat]] = {
    False: _snapshot(False),
    True: _snapshot(True),
}


def _busy_percent(before: CPUTimesStat, after: CPUTimesStat) -> float:
    before_all, before_busy = before._totals()
    after_all, after_busy = after._totals()
    if after_busy <= before_busy:
        return 0.0
    if after_all <= before_all:
        return 1.0
    return (after_busy - before_busy) / (after_all - before_all) * 100


def cpu_percent(interval: float, percpu: bool) -> list[float]:
    """Return busy percentages since the last call, or over ``interval`` seconds."""
    current = cpu_times(percpu)
    if interval > 0:
        _last_times[percpu] = current
        time.sleep(interval)
        current = cpu_times(percpu)

    previous = _last_times[percpu]
    if not previous or not current:
        raise ValueError("no cpu times available")
    if percpu:
        if len(previous) < len(current):
            raise ValueError("cpu count changed between samples")
        percents = [_busy_percent(p, c) for p, c in zip(previous, current)]
    else:
        percents = [_busy_percent(previous[0], current[0])]
        percents.extend(0.0 for _ in current[1:])
    _last_times[percpu] = current
    return percents