import queue
import threading
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from telegraf.accumulator import BatchPoints
from telegraf.plugins.kafka_consumer import (
    Kafka,
    emit_metrics,
    parse_points,
    read_from_kafka,
)

TEST_MSG = "cpu_load_short,direction=in,host=server01,region=us-west value=23422.0 1422568543702900257"
EXPECTED_TIME = datetime(2015, 1, 29, 21, 55, 43, 702900, tzinfo=timezone.utc)


def message(value):
    return SimpleNamespace(value=value.encode())


def filled_queue(count):
    q = queue.Queue()
    for _ in range(count):
        q.put(message(TEST_MSG))
    return q


def reader_setup():
    halt = threading.Event()
    metric_queue = queue.Queue(maxsize=1)
    acked = []

    def ack(msg):
        acked.append(msg.value)
        halt.set()

    return halt, metric_queue, ack, acked


def test_read_from_kafka_batches_on_batch_size():
    halt, metric_queue, ack, acked = reader_setup()
    read_from_kafka(filled_queue(10), metric_queue, 10, ack, halt)
    batch = metric_queue.get_nowait()
    assert batch == "\n".join([TEST_MSG] * 10).encode()
    assert acked == [TEST_MSG.encode()]
    assert metric_queue.empty()


def test_read_from_kafka_batches_on_timeout():
    halt, metric_queue, ack, acked = reader_setup()
    read_from_kafka(filled_queue(3), metric_queue, 10, ack, halt)
    batch = metric_queue.get_nowait()
    assert batch == "\n".join([TEST_MSG] * 3).encode()
    assert acked == [TEST_MSG.encode()]
    assert metric_queue.empty()


def test_read_from_kafka_flushes_on_halt():
    halt = threading.Event()
    metric_queue = queue.Queue()
    acked = []
    messages = filled_queue(2)

    def ack(msg):
        acked.append(msg)

    def stop_when_drained():
        while not messages.empty():
            pass
        halt.set()

    stopper = threading.Thread(target=stop_when_drained)
    stopper.start()
    read_from_kafka(messages, metric_queue, 0, ack, halt)
    stopper.join()

    collected = []
    while not metric_queue.empty():
        collected.append(metric_queue.get())
    assert b"\n".join(collected) == "\n".join([TEST_MSG] * 2).encode()
    assert len(acked) == len(collected)


def test_emit_metrics_sends_metrics_to_acc():
    acc = BatchPoints()
    metric_queue = queue.Queue()
    metric_queue.put(TEST_MSG.encode())

    emit_metrics(acc, metric_queue, timeout=0.2)

    assert len(acc.points) == 1
    point = acc.points[0]
    assert point.measurement == "cpu_load_short"
    assert point.fields == {"value": 23422.0}
    assert point.tags == {"host": "server01", "direction": "in", "region": "us-west"}
    assert point.time == EXPECTED_TIME


def test_emit_metrics_times_out():
    acc = BatchPoints()
    emit_metrics(acc, queue.Queue(), timeout=0.1)
    assert acc.points == []


def test_emit_metrics_raises_on_bad_batch():
    metric_queue = queue.Queue()
    metric_queue.put(b"cpu")
    with pytest.raises(ValueError):
        emit_metrics(BatchPoints(), metric_queue, timeout=0.2)


def test_parse_points_timestamp():
    (point,) = parse_points(TEST_MSG.encode())
    assert point.timestamp_ns == 1422568543702900257
    assert point.time == EXPECTED_TIME


def test_parse_points_field_types():
    (point,) = parse_points('m,t=a count=3i,ratio=0.5,ok=true,msg="hello world" 10')
    assert point.fields == {"count": 3, "ratio": 0.5, "ok": True, "msg": "hello world"}
    assert point.tags == {"t": "a"}
    assert point.timestamp_ns == 10


def test_parse_points_escapes():
    (point,) = parse_points(r"disk\ io,path=/var\,log value=1 5")
    assert point.name == "disk io"
    assert point.tags == {"path": "/var,log"}


def test_parse_points_skips_blank_and_comment_lines():
    points = parse_points("# comment\n\na value=1 1\nb value=2 2\n")
    assert [p.name for p in points] == ["a", "b"]


@pytest.mark.parametrize(
    "line",
    ["cpu", "cpu,host value=1", "cpu value=abc", "cpu value=1 notatime", 'cpu value="open'],
)
def test_parse_points_rejects_bad_lines(line):
    with pytest.raises(ValueError):
        parse_points(line)


class FakeConsumer:
    def __init__(self, values):
        self.messages = queue.Queue()
        for value in values:
            self.messages.put(message(value))
        self.committed = []
        self.closed = False

    def commit_upto(self, msg):
        self.committed.append(msg.value)

    def close(self):
        self.closed = True


def test_gather_without_join_raises():
    with pytest.raises(RuntimeError):
        Kafka(topic="metrics").gather(BatchPoints())


def test_gather_reads_from_joined_consumer():
    consumer = FakeConsumer([TEST_MSG])
    joins = []

    def join(group, topics, peers):
        joins.append((group, topics, peers))
        return consumer

    plugin = Kafka(
        consumer_group_name="telegraf_test_consumers",
        topic="telegraf_test_topic",
        zookeeper_peers=["localhost:2181"],
        join=join,
    )
    acc = BatchPoints()
    plugin.gather(acc)

    assert joins == [("telegraf_test_consumers", ["telegraf_test_topic"], ["localhost:2181"])]
    assert len(acc.points) == 1
    assert acc.points[0].measurement == "cpu_load_short"
    assert acc.points[0].fields == {"value": 23422.0}
    assert consumer.committed == [TEST_MSG.encode()]

    plugin.gather(acc)
    assert len(joins) == 1
    assert len(acc.points) == 1


def test_description_and_sample_config():
    plugin = Kafka()
    assert plugin.description() == "read metrics from a Kafka topic"
    assert "batchSize = 1000" in plugin.sample_config()