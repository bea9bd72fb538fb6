# telegraf

A library of metric-gathering plugins. Each plugin collects measurements from
a source and reports them to an accumulator. The accumulator keeps them as
points, ready to be written to a time-series database.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Concepts

- `telegraf.plugins.registry.Plugin` is the abstract interface every plugin
  implements: `sample_config()`, `description()` and `gather(acc)`. `gather`
  raises when the source cannot be read.
- `telegraf.plugins.registry.Accumulator` is the abstract interface plugins
  report to: `add(measurement, value, tags)` and
  `add_values_with_time(measurement, values, tags, timestamp)`.
- `telegraf.plugins.registry.add(name, creator)` registers a plugin factory in
  the `PLUGINS` dictionary. Importing a plugin module registers its plugins
  under these names: `cpu`, `disk`, `io` and `docker` from
  `telegraf.plugins.system`, `memcached`, `redis` from
  `telegraf.plugins.redis_stats`, `mysql` and `kafka` from
  `telegraf.plugins.kafka_consumer`.
- `telegraf.accumulator.BatchPoints` is a thread-safe accumulator that collects
  `Point` objects (`measurement`, `tags`, `fields`, `time`) in its `points`
  list.
  - `prefix` is put in front of every measurement name.
  - `config` is an optional filter: an object with a
    `should_pass(measurement)` method. A point is dropped when the method
    returns false.
  - When `debug` is true, each point is printed as it arrives.
  - `add` stores its value in a single field named `value`.

## Plugins

- `telegraf.plugins.system` has `CPUStats`, `DiskStats`, `DiskIOStats` and
  `DockerStats`. They get their figures from a `PS` object. The default is
  `SystemPS`, which reads:
  - `/proc/stat` for CPU times;
  - `/etc/mtab` and `statvfs` for disk usage;
  - `/proc/diskstats` and `udevadm` for disk I/O;
  - the docker socket (`/var/run/docker.sock`) and the cgroup file system for
    containers.

  You can pass another `PS` implementation to any of these plugins.
- `telegraf.plugins.memcached.Memcached(servers=[...])` sends `stats` to each
  server and reports `get_hits`, `get_misses`, `evictions`, `limit_maxbytes`
  and `bytes`. The default port is 11211.
- `telegraf.plugins.redis_stats.Redis(servers=[...])` sends `info` to each
  server and reports the fields listed in `TRACKING`. A server is given as a
  `redis://` URL, which may carry a password, or as a plain `host:port`.
  Replies that break the protocol raise `RedisProtocolError`.
- `telegraf.plugins.mysql.Mysql(servers=[...])` runs `SHOW GLOBAL STATUS`
  through `pymysql`. A server is given as a
  `[user[:password]@][net[(addr)]]/[db][?tls=...]` string.
- `telegraf.plugins.kafka_consumer` provides:
  - `parse_points`, a line-protocol parser returning `ParsedPoint` objects;
  - `read_from_kafka`, which joins message values into batches;
  - `emit_metrics`, which feeds the batches to an accumulator.

  The `Kafka` plugin uses these to consume a topic.

## Example

```python
from telegraf.accumulator import BatchPoints
from telegraf.plugins.system import CPUStats

acc = BatchPoints(prefix="cpu_")
CPUStats().gather(acc)
for point in acc.points:
    print(point.measurement, point.tags, point.fields)
```

The readers in `telegraf.ps` also work on their own:

- `telegraf.ps.cpu` has `cpu_times`, `cpu_info`, `cpu_percent` and
  `parse_stat_line`.
- `telegraf.ps.disk` has `disk_usage`, `disk_partitions` and
  `disk_io_counters`.
- `telegraf.ps.docker` has `cgroup_cpu`, `cgroup_mem` and
  `get_docker_id_list`.
- `telegraf.ps.common` has file and string helpers.

## What this package does not do

- There is no command-line agent. Nothing loads a configuration file, runs
  plugins on an interval or writes points to a database. You call `gather`
  yourself and decide what to do with `BatchPoints.points`.
- There is no Kafka client. To use the `Kafka` plugin, give it a `join`
  callable. The callable must return a consumer group that has a `messages`
  queue, `commit_upto(message)` and `close()`.
- There are no plugins for memory, swap, network interfaces or PostgreSQL.