"""Plugin reading line-protocol metrics from a Kafka topic."""

from __future__ import annotations

import queue
import re
import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from telegraf.plugins import registry
from telegraf.plugins.registry import Accumulator, Plugin

SAMPLE_CONFIG = """
# topic to consume
topic = "topic_with_metrics"

# the name of the consumer group
consumerGroupName = "telegraf_metrics_consumers"

# an array of Zookeeper connection strings
zookeeperPeers = ["localhost:2181"]

# Batch size of points sent to InfluxDB
batchSize = 1000"""

BATCH_TIMEOUT = 0.5
EMIT_TIMEOUT = 1.0
QUEUE_SIZE = 200
_POLL_INTERVAL = 0.05

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INTEGER_FIELD = re.compile(r"[+-]?[0-9]+i")
_FLOAT_FIELD = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
_TIMESTAMP = re.compile(r"[+-]?[0-9]+")
_UNESCAPE = re.compile(r'\\([,= "\\])')
_TRUE = frozenset({"t", "T", "true", "True", "TRUE"})
_FALSE = frozenset({"f", "F", "false", "False", "FALSE"})


class ConsumerGroup(Protocol):
    """A joined consumer group delivering messages with a ``value`` in bytes."""

    messages: queue.Queue

    def commit_upto(self, message: Any) -> None: ...

    def close(self) -> None: ...


@dataclass
class ParsedPoint:
    """A point read from line protocol."""

    name: str
    tags: dict[str, str]
    fields: dict[str, Any]
    timestamp_ns: int

    @property
    def time(self) -> datetime:
        """The timestamp in UTC, at microsecond precision."""
        return _EPOCH + timedelta(microseconds=self.timestamp_ns // 1000)


def _split(text: str, sep: str, quotes: bool = False, maxsplit: int = -1) -> list[str]:
    """Split on ``sep`` where it is neither escaped nor, optionally, quoted."""
    parts: list[str] = []
    start = 0
    in_quote = False
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if quotes and ch == '"':
            in_quote = not in_quote
        elif ch == sep and not in_quote and (maxsplit < 0 or len(parts) < maxsplit):
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def _unescape(text: str) -> str:
    return _UNESCAPE.sub(r"\1", text)


def _parse_field_value(text: str) -> Any:
    if text.startswith('"'):
        if len(text) < 2 or not text.endswith('"'):
            raise ValueError(f"unterminated string field value: {text!r}")
        return text[1:-1].replace('\\"', '"')
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    if _INTEGER_FIELD.fullmatch(text):
        return int(text[:-1])
    if _FLOAT_FIELD.fullmatch(text):
        return float(text)
    raise ValueError(f"invalid field value: {text!r}")


def _parse_line(line: str) -> ParsedPoint:
    key, *rest = _split(line, " ", maxsplit=1)
    sections = [p for p in _split(rest[0], " ", quotes=True) if p] if rest else []
    if not sections:
        raise ValueError(f"missing fields: {line!r}")
    if len(sections) > 2:
        raise ValueError(f"too many sections: {line!r}")

    measurement, *tag_parts = _split(key, ",")
    if not measurement:
        raise ValueError(f"missing measurement: {line!r}")
    tags: dict[str, str] = {}
    for part in tag_parts:
        pair = _split(part, "=")
        if len(pair) != 2 or not pair[0] or not pair[1]:
            raise ValueError(f"invalid tag {part!r}: {line!r}")
        tags[_unescape(pair[0])] = _unescape(pair[1])

    fields: dict[str, Any] = {}
    for part in _split(sections[0], ",", quotes=True):
        pair = _split(part, "=", quotes=True, maxsplit=1)
        if len(pair) != 2 or not pair[0] or not pair[1]:
            raise ValueError(f"invalid field {part!r}: {line!r}")
        fields[_unescape(pair[0])] = _parse_field_value(pair[1])

    if len(sections) == 2:
        if not _TIMESTAMP.fullmatch(sections[1]):
            raise ValueError(f"invalid timestamp {sections[1]!r}: {line!r}")
        timestamp_ns = int(sections[1])
    else:
        timestamp_ns = time.time_ns()

    return ParsedPoint(_unescape(measurement), tags, fields, timestamp_ns)


def parse_points(data: bytes | str) -> list[ParsedPoint]:
    """Parse newline-separated line-protocol points; blank and ``#`` lines are skipped."""
    text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
    points = []
    for raw in text.split("\n"):
        line = raw.lstrip().rstrip("\r")
        if not line or line.startswith("#"):
            continue
        points.append(_parse_line(line))
    return points


def emit_metrics(
    acc: Accumulator, metric_queue: queue.Queue, timeout: float = EMIT_TIMEOUT
) -> None:
    """Move batches from the queue into the accumulator until ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return
        try:
            batch = metric_queue.get(timeout=remaining)
        except queue.Empty:
            return
        for point in parse_points(batch):
            acc.add_values_with_time(point.name, point.fields, point.tags, point.time)


def read_from_kafka(
    messages: queue.Queue,
    metric_queue: queue.Queue,
    max_batch_size: int,
    ack: Callable[[Any], Any],
    halt: threading.Event,
) -> None:
    """Join message values into newline-separated batches.

    A batch is handed on when it reaches ``max_batch_size`` messages, when
    the batch timeout passes, or when ``halt`` is set; the last message of
    each batch is then acknowledged.
    """
    batch = bytearray()
    count = 0
    last: Any = None
    deadline = time.monotonic() + BATCH_TIMEOUT

    while True:
        if halt.is_set():
            if count:
                metric_queue.put(bytes(batch))
                ack(last)
            return

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            if count:
                metric_queue.put(bytes(batch))
                batch = bytearray()
                count = 0
                ack(last)
            deadline = time.monotonic() + BATCH_TIMEOUT
            continue

        try:
            last = messages.get(timeout=min(remaining, _POLL_INTERVAL))
        except queue.Empty:
            continue

        if count:
            batch += b"\n"
        batch += last.value
        count += 1

        if count == max_batch_size:
            metric_queue.put(bytes(batch))
            batch = bytearray()
            count = 0
            ack(last)


@dataclass
class Kafka(Plugin):
    """Reads line-protocol metrics from a Kafka topic through a consumer group.

    ``join`` is called with the group name, the list of topics and the
    Zookeeper peers, and returns the joined consumer group.
    """

    consumer_group_name: str = ""
    topic: str = ""
    zookeeper_peers: list[str] = field(default_factory=list)
    batch_size: int = 0
    consumer: ConsumerGroup | None = None
    join: Callable[[str, list[str], list[str]], ConsumerGroup] | None = field(
        default=None, repr=False, compare=False
    )
    _metric_queue: queue.Queue = field(
        default_factory=lambda: queue.Queue(QUEUE_SIZE), init=False, repr=False, compare=False
    )
    _halt: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False, compare=False
    )
    _reader: threading.Thread | None = field(default=None, init=False, repr=False, compare=False)

    def sample_config(self) -> str:
        return SAMPLE_CONFIG

    def description(self) -> str:
        return "read metrics from a Kafka topic"

    def gather(self, acc: Accumulator) -> None:
        """Join the consumer group on first use, then emit what has arrived."""
        if self.consumer is None:
            if self.join is None:
                raise RuntimeError("no way to join a Kafka consumer group is configured")
            self.consumer = self.join(self.consumer_group_name, [self.topic], self.zookeeper_peers)
            self._reader = threading.Thread(
                target=read_from_kafka,
                args=(
                    self.consumer.messages,
                    self._metric_queue,
                    self.batch_size,
                    self.consumer.commit_upto,
                    self._halt,
                ),
                daemon=True,
            )
            self._reader.start()
            self._install_interrupt_handler(acc)

        emit_metrics(acc, self._metric_queue)

    def _install_interrupt_handler(self, acc: Accumulator) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        previous = signal.getsignal(signal.SIGINT)

        def handler(signum, frame):
            signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)
            self._shutdown(acc)
            if callable(previous):
                previous(signum, frame)
            elif previous == signal.SIG_DFL:
                raise KeyboardInterrupt

        signal.signal(signal.SIGINT, handler)

    def _shutdown(self, acc: Accumulator) -> None:
        self._halt.set()
        if self._reader is not None:
            self._reader.join(timeout=BATCH_TIMEOUT * 2)
        emit_metrics(acc, self._metric_queue)
        if self.consumer is not None:
            self.consumer.close()


registry.add("kafka", Kafka)