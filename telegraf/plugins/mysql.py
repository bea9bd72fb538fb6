"""Plugin reading global status counters from MySQL servers."""

from __future__ import annotations

import re
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

import pymysql

from telegraf.plugins import registry
from telegraf.plugins.registry import Accumulator, Plugin

SAMPLE_CONFIG = """
# specify servers via a url matching:
#  [username[:password]@][protocol[(address)]]/[?tls=[true|false|skip-verify]]
#  e.g. root:root@http://10.0.0.18/?tls=false
#
# If no servers are specified, then localhost is used as the host.
servers = ["localhost"]"""

STATUS_QUERY = "SHOW /*!50002 GLOBAL */ STATUS"

DEFAULT_PORT = 3306
DEFAULT_TCP_ADDRESS = f"127.0.0.1:{DEFAULT_PORT}"
DEFAULT_UNIX_SOCKET = "/tmp/mysql.sock"

# Status variable prefixes on the server and the names they are exported as.
MAPPINGS = (
    ("Bytes_", "bytes_"),
    ("Com_", "commands_"),
    ("Handler_", "handler_"),
    ("Innodb_", "innodb_"),
    ("Threads_", "threads_"),
)

_INT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "replace")
    return str(value)


def _lenient_int(text: str) -> int:
    """Parse an integer, giving 0 on bad input and clamping to 64 bits."""
    if not _INT.fullmatch(text):
        return 0
    return max(_INT64_MIN, min(_INT64_MAX, int(text)))


def _strict_int64(text: str) -> int:
    if not _INT.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _split_host_port(address: str) -> tuple[str, int]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {address!r}")
        host, rest = address[1:end], address[end + 1 :]
        if not rest:
            return host, DEFAULT_PORT
        if not rest.startswith(":"):
            raise ValueError(f"bad address {address!r}")
        port_text = rest[1:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            return address, DEFAULT_PORT
        if ":" in host:
            raise ValueError(f"too many colons in address {address!r}")
    if not port_text.isdigit():
        raise ValueError(f"bad port in address {address!r}")
    return host, int(port_text)


def _parse_dsn(dsn: str) -> dict[str, Any]:
    """Turn a ``[user[:password]@][net[(addr)]]/dbname[?params]`` string into connect arguments."""
    if not dsn:
        host, port = _split_host_port(DEFAULT_TCP_ADDRESS)
        return {"host": host, "port": port, "user": ""}

    slash = dsn.rfind("/")
    if slash < 0:
        raise ValueError("invalid DSN: missing the slash separating the database name")
    head, tail = dsn[:slash], dsn[slash + 1 :]
    dbname, _, query = tail.partition("?")

    credentials, _, address_part = head.rpartition("@")
    user, _, remainder = credentials.partition(":")

    if "(" in address_part:
        if not address_part.endswith(")"):
            raise ValueError("invalid DSN: network address not terminated (missing closing brace)")
        net, _, address = address_part[:-1].partition("(")
    else:
        net, address = address_part, ""
    net = net or "tcp"

    kwargs: dict[str, Any] = {"user": user}
    if remainder:
        kwargs["password"] = remainder
    if dbname:
        kwargs["database"] = dbname

    if net == "tcp":
        host, port = _split_host_port(address or DEFAULT_TCP_ADDRESS)
        kwargs["host"] = host or "127.0.0.1"
        kwargs["port"] = port
    elif net == "unix":
        kwargs["unix_socket"] = address or DEFAULT_UNIX_SOCKET
    else:
        raise ValueError(f"unknown network {net!r}")

    for key, value in parse_qsl(query, keep_blank_values=True):
        if key != "tls":
            continue
        if value in ("true", "skip-verify"):
            kwargs["ssl"] = {}
        elif value != "false":
            raise ValueError(f"invalid value for tls: {value!r}")
    return kwargs


def _connect(**kwargs: Any) -> Any:
    return pymysql.connect(**kwargs)


@dataclass
class Mysql(Plugin):
    """Reads status counters from one or many MySQL servers."""

    servers: list[str] = field(default_factory=list)
    connector: Callable[..., Any] = field(default=_connect, repr=False, compare=False)

    def sample_config(self) -> str:
        return SAMPLE_CONFIG

    def description(self) -> str:
        return "Read metrics from one or many mysql servers"

    def gather(self, acc: Accumulator) -> None:
        """Read the counters of every configured server.

        With no servers configured the local default is tried and any
        failure is ignored.
        """
        if not self.servers:
            try:
                self._gather_server("", acc)
            except (ValueError, OSError, pymysql.Error):
                pass
            return
        for serv in self.servers:
            self._gather_server(serv, acc)

    def _gather_server(self, serv: str, acc: Accumulator) -> None:
        if serv == "localhost":
            serv = ""

        # A server that cannot be reached or queried contributes nothing.
        try:
            conn = self.connector(**_parse_dsn(serv))
        except (ValueError, OSError, pymysql.Error):
            return

        with closing(conn):
            try:
                cursor = conn.cursor()
                cursor.execute(STATUS_QUERY)
                rows = cursor.fetchall()
            except (OSError, pymysql.Error):
                return

            for row in rows:
                if len(row) != 2:
                    raise ValueError(f"expected 2 columns in status row, got {len(row)}")
                name, raw = row
                name = _to_text(name)
                value = _to_text(raw)

                found = False
                for on_server, in_export in MAPPINGS:
                    if name.startswith(on_server):
                        acc.add(in_export + name[len(on_server) :], _lenient_int(value), None)
                        found = True
                if found:
                    continue

                if name == "Queries":
                    acc.add("queries", _strict_int64(value), None)
                elif name == "Slow_queries":
                    acc.add("slow_queries", _strict_int64(value), None)


registry.add("mysql", Mysql)