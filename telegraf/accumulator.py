"""Collects the points plugins produce into a batch."""

from __future__ import annotations

import math
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from telegraf.plugins.registry import Accumulator


class MeasurementFilter(Protocol):
    """Decides whether a measurement may pass."""

    def should_pass(self, measurement: str) -> bool: ...


@dataclass
class Point:
    """A single measurement with its tags and fields."""

    measurement: str
    tags: Mapping[str, str] | None
    fields: Mapping[str, Any]
    time: datetime | None = None


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    number = Decimal(repr(value)).normalize()
    exponent = number.adjusted()
    if -4 <= exponent < 21:
        return format(number, "f")
    sign, numerals, _ = number.as_tuple()
    mantissa = str(numerals[0])
    if len(numerals) > 1:
        mantissa += "." + "".join(str(d) for d in numerals[1:])
    exp_sign = "+" if exponent >= 0 else "-"
    return f"{'-' if sign else ''}{mantissa}e{exp_sign}{abs(exponent):02d}"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    return str(value)


def _format_tags(tags: Mapping[str, str] | None) -> str:
    return " ".join(sorted(f'{k}="{v}"' for k, v in (tags or {}).items()))


@dataclass
class BatchPoints(Accumulator):
    """An accumulator that stores points for a single write."""

    debug: bool = False
    prefix: str = ""
    config: MeasurementFilter | None = None
    points: list[Point] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    time: datetime | None = None
    database: str = ""
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def _accepted_name(self, measurement: str) -> str | None:
        name = self.prefix + measurement
        if self.config is not None and not self.config.should_pass(name):
            return None
        return name

    def add(self, measurement: str, value: Any, tags: Mapping[str, str] | None) -> None:
        """Add a point with a single field named ``value``."""
        with self._lock:
            name = self._accepted_name(measurement)
            if name is None:
                return
            if self.debug:
                print(f"> [{_format_tags(tags)}] {name} value={_format_value(value)}")
            self.points.append(Point(measurement=name, tags=tags, fields={"value": value}))

    def add_values_with_time(
        self,
        measurement: str,
        values: Mapping[str, Any],
        tags: Mapping[str, str] | None,
        timestamp: datetime,
    ) -> None:
        """Add a point with several fields at the given time."""
        with self._lock:
            name = self._accepted_name(measurement)
            if name is None:
                return
            if self.debug:
                rendered = " ".join(
                    sorted(f"{k}={_format_value(v)}" for k, v in values.items())
                )
                print(f"> [{_format_tags(tags)}] {name} {rendered}")
            self.points.append(
                Point(measurement=name, tags=tags, fields=values, time=timestamp)
            )