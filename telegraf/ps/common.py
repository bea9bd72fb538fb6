"""Helpers shared by the system statistics readers."""

from __future__ import annotations

import itertools
import os
import re
from collections.abc import Iterable


class NotImplementedYet(Exception):
    """Raised where a statistic is not available on this platform."""

    def __init__(self, message: str = "not implemented yet") -> None:
        super().__init__(message)


def read_lines(filename: str | os.PathLike) -> list[str]:
    """Return every newline-terminated line of a file, without the newline."""
    return read_lines_offset_n(filename, 0, -1)


def read_lines_offset_n(filename: str | os.PathLike, offset: int, n: int) -> list[str]:
    """Return up to ``n`` lines starting at line ``offset``; all lines if ``n`` < 0.

    A final line without a terminating newline is not returned.
    """
    if offset < 0:
        raise ValueError("offset must not be negative")
    with open(filename, "rb") as handle:
        complete = (line for line in handle if line.endswith(b"\n"))
        stop = None if n < 0 else offset + n
        return [
            line.decode("utf-8", "replace").strip("\n")
            for line in itertools.islice(complete, offset, stop)
        ]


def int_to_string(orig: Iterable[int]) -> str:
    """Decode a NUL-terminated sequence of signed bytes."""
    data = bytes(o & 0xFF for o in itertools.takewhile(lambda o: o != 0, orig))
    return data.decode("utf-8", "replace")


def byte_to_string(orig: bytes | Iterable[int]) -> str:
    """Decode bytes, skipping leading NULs and stopping at the next NUL."""
    data = bytes(orig)
    stripped = data.lstrip(b"\0")
    if not stripped:
        return data.decode("utf-8", "replace")
    end = stripped.find(b"\0")
    if end != -1:
        stripped = stripped[:end]
    return stripped.decode("utf-8", "replace")


_INTEGER = re.compile(r"[+-]?[0-9]+")


def _clamped_int(val: str, bits: int) -> int:
    if not _INTEGER.fullmatch(val):
        return 0
    limit = 1 << (bits - 1)
    return max(-limit, min(limit - 1, int(val)))


def _must_parse_int32(val: str) -> int:
    """Parse a 32-bit integer, giving 0 on bad input."""
    return _clamped_int(val, 32)


def _must_parse_uint64(val: str) -> int:
    """Parse a 64-bit integer as unsigned, giving 0 on bad input."""
    return _clamped_int(val, 64) & 0xFFFF_FFFF_FFFF_FFFF


def _must_parse_float64(val: str) -> float:
    """Parse a float, giving 0.0 on bad input."""
    try:
        return float(val)
    except ValueError:
        return 0.0


def string_contains(target: Iterable[str], src: str) -> bool:
    """Tell whether any entry, stripped of whitespace, equals ``src``."""
    return any(t.strip() == src for t in target)


def path_exists(filename: str | os.PathLike) -> bool:
    """Tell whether the path can be stat'ed."""
    try:
        os.stat(filename)
    except (OSError, ValueError):
        return False
    return True