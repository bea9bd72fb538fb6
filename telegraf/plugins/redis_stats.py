"""Plugin reading statistics from redis servers."""

from __future__ import annotations

import re
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import BinaryIO
from urllib.parse import unquote, urlsplit

from telegraf.plugins import registry
from telegraf.plugins.registry import Accumulator, Plugin

DEFAULT_PORT = "6379"

SAMPLE_CONFIG = """
# An array of URI to gather stats about. Specify an ip or hostname
# with optional port add password. ie redis://localhost, redis://10.10.3.33:18832,
# 10.0.0.1:10000, etc.
#
# If no servers are specified, then localhost is used as the host."""
SAMPLE_CONFIG += '\nservers = ["localhost"]'

TRACKING = {
    "uptime_in_seconds": "uptime",
    "connected_clients": "clients",
    "used_memory": "used_memory",
    "used_memory_rss": "used_memory_rss",
    "used_memory_peak": "used_memory_peak",
    "used_memory_lua": "used_memory_lua",
    "rdb_changes_since_last_save": "rdb_changes_since_last_save",
    "total_connections_received": "total_connections_received",
    "total_commands_processed": "total_commands_processed",
    "instantaneous_ops_per_sec": "instantaneous_ops_per_sec",
    "sync_full": "sync_full",
    "sync_partial_ok": "sync_partial_ok",
    "sync_partial_err": "sync_partial_err",
    "expired_keys": "expired_keys",
    "evicted_keys": "evicted_keys",
    "keyspace_hits": "keyspace_hits",
    "keyspace_misses": "keyspace_misses",
    "pubsub_channels": "pubsub_channels",
    "pubsub_patterns": "pubsub_patterns",
    "latest_fork_usec": "latest_fork_usec",
    "connected_slaves": "connected_slaves",
    "master_repl_offset": "master_repl_offset",
    "repl_backlog_active": "repl_backlog_active",
    "repl_backlog_size": "repl_backlog_size",
    "repl_backlog_histlen": "repl_backlog_histlen",
    "mem_fragmentation_ratio": "mem_fragmentation_ratio",
    "used_cpu_sys": "used_cpu_sys",
    "used_cpu_user": "used_cpu_user",
    "used_cpu_sys_children": "used_cpu_sys_children",
    "used_cpu_user_children": "used_cpu_user_children",
}

_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*:")
_UINT = re.compile(r"[0-9]+")
_INT = re.compile(r"[+-]?[0-9]+")


class RedisProtocolError(Exception):
    """Raised when a server's reply does not follow the redis protocol."""

    def __init__(self, detail: str = "") -> None:
        message = "redis protocol error"
        super().__init__(f"{detail}: {message}" if detail else message)


@dataclass
class _ServerURL:
    scheme: str = ""
    userinfo: str = ""
    host: str = ""
    path: str = ""

    @property
    def password(self) -> str:
        _, sep, tail = self.userinfo.partition(":")
        return unquote(tail) if sep else ""

    def __str__(self) -> str:
        text = f"{self.scheme}:" if self.scheme else ""
        if self.scheme or self.host or self.userinfo:
            text += "//"
            if self.userinfo:
                text += self.userinfo + "@"
            text += self.host
        if self.path and not self.path.startswith("/") and self.host:
            text += "/"
        return text + self.path


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError without a port."""
    i = hostport.rfind(":")
    if i < 0:
        raise ValueError(f"missing port in address {hostport!r}")
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0 or end + 1 != i:
            raise ValueError(f"bad address {hostport!r}")
        host = hostport[1:end]
    else:
        host = hostport[:i]
        if ":" in host:
            raise ValueError(f"too many colons in address {hostport!r}")
    return host, hostport[i + 1 :]


def _parse_server(serv: str) -> _ServerURL:
    if not _SCHEME.match(serv):
        # A plain address such as "10.0.0.1:10000".
        return _ServerURL(scheme="tcp", host=serv)
    try:
        parts = urlsplit(serv)
    except ValueError as err:
        raise ValueError(f"Unable to parse to address '{serv}': {err}") from err
    userinfo, _, host = parts.netloc.rpartition("@")
    return _ServerURL(scheme=parts.scheme, userinfo=userinfo, host=host, path=parts.path)


def _parse_value(text: str) -> int | float:
    if _UINT.fullmatch(text) and int(text) < (1 << 64):
        return int(text)
    if "_" in text:
        raise ValueError(f"invalid number: {text!r}")
    return float(text)


def _read_line(reader: BinaryIO) -> bytes:
    line = reader.readline()
    if not line:
        raise EOFError("connection closed by redis server")
    return line


@dataclass
class Redis(Plugin):
    """Reads statistics from one or many redis servers."""

    servers: list[str] = field(default_factory=list)
    _connections: dict[str, tuple[socket.socket, BinaryIO]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def sample_config(self) -> str:
        return SAMPLE_CONFIG

    def description(self) -> str:
        return "Read metrics from one or many redis servers"

    def gather(self, acc: Accumulator) -> None:
        """Read the statistics of every configured server.

        With no servers configured the local default is tried and failures
        are ignored. Otherwise one of the errors met is raised.
        """
        if not self.servers:
            try:
                self._gather_server(_ServerURL(host=":" + DEFAULT_PORT), acc)
            except (OSError, EOFError, ValueError, RedisProtocolError):
                pass
            return

        urls = [_parse_server(serv) for serv in self.servers]
        with ThreadPoolExecutor(max_workers=len(urls)) as pool:
            futures = [pool.submit(self._gather_server, url, acc) for url in urls]
            errors = [f.exception() for f in futures]
        failures = [e for e in errors if e is not None]
        if failures:
            raise failures[-1]

    def _connect(self, addr: _ServerURL) -> tuple[socket.socket, BinaryIO]:
        with self._lock:
            cached = self._connections.get(addr.host)
        if cached is not None:
            return cached

        host, port = _split_host_port(addr.host)
        try:
            sock = socket.create_connection((host or "localhost", port or "0"))
        except OSError as err:
            raise ConnectionError(
                f"Unable to connect to redis server '{addr.host}': {err}"
            ) from err
        reader = sock.makefile("rb")
        try:
            if addr.password:
                sock.sendall(f"AUTH {addr.password}\n".encode())
                reply = _read_line(reader)
                if not reply.startswith(b"+"):
                    raise ConnectionError(reply.decode("utf-8", "replace").strip()[1:])
        except BaseException:
            reader.close()
            sock.close()
            raise

        with self._lock:
            self._connections[addr.host] = (sock, reader)
        return sock, reader

    def _drop(self, host: str) -> None:
        with self._lock:
            cached = self._connections.pop(host, None)
        if cached is not None:
            sock, reader = cached
            reader.close()
            sock.close()

    def _gather_server(self, addr: _ServerURL, acc: Accumulator) -> None:
        try:
            _split_host_port(addr.host)
        except ValueError:
            addr.host = f"{addr.host}:{DEFAULT_PORT}"

        sock, reader = self._connect(addr)
        try:
            sock.sendall(b"info\n")
            self._read_info(reader, addr, acc)
        except (OSError, EOFError):
            self._drop(addr.host)
            raise

    def _read_info(self, reader: BinaryIO, addr: _ServerURL, acc: Accumulator) -> None:
        header = _read_line(reader)
        if not header.startswith(b"$"):
            raise RedisProtocolError("bad line start")
        size_text = header.decode("utf-8", "replace").strip()[1:]
        if not _INT.fullmatch(size_text):
            raise RedisProtocolError(f"bad size string <<{size_text}>>")
        size = int(size_text)

        consumed = 0
        while consumed < size:
            raw = _read_line(reader)
            consumed += len(raw)
            if len(raw) == 1 or raw.startswith(b"#"):
                continue
            line = raw.decode("utf-8", "replace")
            name, sep, rest = line.partition(":")
            metric = TRACKING.get(name)
            if metric is None:
                continue
            if not sep:
                raise RedisProtocolError(f"missing value for {name}")
            acc.add(metric, _parse_value(rest.strip()), {"host": str(addr)})


registry.add("redis", Redis)