import threading
from datetime import datetime, timezone

from telegraf.accumulator import BatchPoints, Point


class PrefixFilter:
    def __init__(self, allowed_prefix):
        self.allowed_prefix = allowed_prefix
        self.seen = []

    def should_pass(self, measurement):
        self.seen.append(measurement)
        return measurement.startswith(self.allowed_prefix)


def test_add_prefixes_measurement_and_wraps_value():
    acc = BatchPoints(prefix="cpu_")
    tags = {"cpu": "cpu0"}
    acc.add("user", 12, tags)
    assert acc.points == [Point(measurement="cpu_user", tags=tags, fields={"value": 12})]


def test_add_without_prefix_keeps_name():
    acc = BatchPoints()
    acc.add("queries", 3, None)
    assert [p.measurement for p in acc.points] == ["queries"]
    assert acc.points[0].time is None


def test_config_filters_on_prefixed_name():
    config = PrefixFilter("mem_")
    acc = BatchPoints(prefix="cpu_", config=config)
    acc.add("user", 1, None)
    assert acc.points == []
    assert config.seen == ["cpu_user"]


def test_config_lets_matching_points_pass():
    acc = BatchPoints(prefix="mem_", config=PrefixFilter("mem_"))
    acc.add("total", 7, None)
    assert [p.measurement for p in acc.points] == ["mem_total"]


def test_add_values_with_time_stores_fields_and_time():
    stamp = datetime.fromtimestamp(1422568543, tz=timezone.utc)
    acc = BatchPoints()
    values = {"value": 23422.0}
    tags = {"host": "server01", "region": "us-west"}
    acc.add_values_with_time("cpu_load_short", values, tags, stamp)
    point = acc.points[0]
    assert point.measurement == "cpu_load_short"
    assert point.fields == values
    assert point.tags == tags
    assert point.time == stamp


def test_add_values_with_time_respects_filter():
    acc = BatchPoints(config=PrefixFilter("disk"))
    acc.add_values_with_time("cpu", {"a": 1}, None, datetime.now(timezone.utc))
    assert acc.points == []


def test_debug_output_for_add(capsys):
    acc = BatchPoints(debug=True, prefix="cpu_")
    acc.add("user", 5, {"b": "2", "a": "1"})
    assert capsys.readouterr().out == '> [a="1" b="2"] cpu_user value=5\n'


def test_debug_output_without_tags(capsys):
    acc = BatchPoints(debug=True)
    acc.add("uptime", 238, None)
    assert capsys.readouterr().out == "> [] uptime value=238\n"


def test_debug_output_formats_integral_float_and_bool(capsys):
    acc = BatchPoints(debug=True)
    acc.add("load", 23422.0, None)
    acc.add("up", True, None)
    assert capsys.readouterr().out.splitlines() == [
        "> [] load value=23422",
        "> [] up value=true",
    ]


def test_debug_output_for_values_sorted(capsys):
    acc = BatchPoints(debug=True)
    acc.add_values_with_time(
        "cpu_load_short",
        {"value": 0.81, "count": 2},
        {"host": "server01"},
        datetime.now(timezone.utc),
    )
    out = capsys.readouterr().out
    assert out == '> [host="server01"] cpu_load_short count=2 value=0.81\n'


def test_no_output_without_debug(capsys):
    acc = BatchPoints()
    acc.add("x", 1, {"k": "v"})
    assert capsys.readouterr().out == ""
    assert len(acc.points) == 1


def test_concurrent_adds_keep_every_point():
    acc = BatchPoints()
    threads_count, per_thread = 8, 100

    def work():
        for i in range(per_thread):
            acc.add("m", i, None)

    threads = [threading.Thread(target=work) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(acc.points) == threads_count * per_thread