"""Disk usage, partition and I/O counter readers."""

from __future__ import annotations

import dataclasses
import json
import math
import os
import re
import subprocess
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from telegraf.ps.common import read_lines

SECTOR_SIZE = 512
MTAB = "/etc/mtab"
PROC_DISKSTATS = "/proc/diskstats"
UDEVADM = "/sbin/udevadm"

_UINT = re.compile(r"[0-9]+")
_EXPONENT = re.compile(r"e([+-])0(\d)")


def _parse_uint(text: str) -> int:
    if not _UINT.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value >= 1 << 64:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _json_float(value: float) -> str:
    if not math.isfinite(value):
        raise ValueError("unsupported float value")
    magnitude = abs(value)
    if magnitude != 0 and (magnitude < 1e-6 or magnitude >= 1e21):
        return _EXPONENT.sub(r"e\1\2", repr(value))
    return format(Decimal(repr(value)).normalize(), "f")


def _json_scalar(value: Any) -> str:
    if isinstance(value, float):
        return _json_float(value)
    text = json.dumps(value, ensure_ascii=False)
    return text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def _to_json(obj: Any) -> str:
    """Render a flat dataclass as compact JSON; empty if a float is not finite."""
    try:
        parts = [
            f"{json.dumps(f.name)}:{_json_scalar(getattr(obj, f.name))}"
            for f in dataclasses.fields(obj)
        ]
    except ValueError:
        return ""
    return "{" + ",".join(parts) + "}"


def _percent(part: int, whole: int) -> float:
    if whole == 0:
        return math.nan if part == 0 else math.inf
    return part / whole * 100.0


@dataclass
class DiskUsageStat:
    """Space and inode usage of a mounted file system."""

    path: str = ""
    total: int = 0
    free: int = 0
    used: int = 0
    used_percent: float = 0.0
    inodes_total: int = 0
    inodes_used: int = 0
    inodes_free: int = 0
    inodes_used_percent: float = 0.0

    def __str__(self) -> str:
        return _to_json(self)


@dataclass
class DiskPartitionStat:
    """A mounted partition."""

    device: str = ""
    mountpoint: str = ""
    fstype: str = ""
    opts: str = ""

    def __str__(self) -> str:
        return _to_json(self)


@dataclass
class DiskIOCountersStat:
    """Cumulative I/O counters of a block device."""

    read_count: int = 0
    write_count: int = 0
    read_bytes: int = 0
    write_bytes: int = 0
    read_time: int = 0
    write_time: int = 0
    name: str = ""
    io_time: int = 0
    serial_number: str = ""

    def __str__(self) -> str:
        return _to_json(self)


def disk_usage(path: str) -> DiskUsageStat:
    """Return the usage of the file system holding ``path``."""
    stat = os.statvfs(path)
    bsize = stat.f_bsize
    total = stat.f_blocks * bsize
    free = stat.f_bfree * bsize
    inodes_total = stat.f_files
    inodes_free = stat.f_ffree
    used = total - free
    inodes_used = inodes_total - inodes_free
    return DiskUsageStat(
        path=path,
        total=total,
        free=free,
        used=used,
        used_percent=_percent(used, total),
        inodes_total=inodes_total,
        inodes_used=inodes_used,
        inodes_free=inodes_free,
        inodes_used_percent=_percent(inodes_used, inodes_total),
    )


def disk_partitions(all_partitions: bool = False, mtab: str = MTAB) -> list[DiskPartitionStat]:
    """Return every partition listed in the mount table.

    ``all_partitions`` is accepted for interface compatibility; every
    entry of the table is always returned.
    """
    result = []
    for line in read_lines(mtab):
        fields = line.split()
        if len(fields) < 4:
            raise ValueError(f"malformed mount table line: {line!r}")
        result.append(
            DiskPartitionStat(
                device=fields[0],
                mountpoint=fields[1],
                fstype=fields[2],
                opts=fields[3],
            )
        )
    return result


def disk_io_counters(filename: str = PROC_DISKSTATS) -> dict[str, DiskIOCountersStat]:
    """Return I/O counters keyed by device name, leaving out idle devices."""
    result: dict[str, DiskIOCountersStat] = {}
    empty = DiskIOCountersStat()
    for line in read_lines(filename):
        fields = line.split()
        if len(fields) < 13:
            raise ValueError(f"malformed diskstats line: {line!r}")
        name = fields[2]
        counters = DiskIOCountersStat(
            read_count=_parse_uint(fields[3]),
            read_bytes=_parse_uint(fields[5]) * SECTOR_SIZE,
            read_time=_parse_uint(fields[6]),
            write_count=_parse_uint(fields[7]),
            write_bytes=_parse_uint(fields[9]) * SECTOR_SIZE,
            write_time=_parse_uint(fields[10]),
            io_time=_parse_uint(fields[12]),
        )
        if counters == empty:
            continue
        result[name] = dataclasses.replace(
            counters, name=name, serial_number=get_disk_serial_number(name)
        )
    return result


def get_disk_serial_number(name: str) -> str:
    """Return the device's ID_SERIAL property, or an empty string."""
    try:
        completed = subprocess.run(
            [UDEVADM, "info", "--query=property", f"--name={name}"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    for line in completed.stdout.split("\n"):
        values = line.split("=")
        if len(values) < 2 or values[0] != "ID_SERIAL":
            continue
        return values[1]
    return ""