"""Plugin reading statistics from memcached servers."""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass, field

from telegraf.plugins import registry
from telegraf.plugins.registry import Accumulator, Plugin

DEFAULT_PORT = "11211"
DEFAULT_TIMEOUT = 5.0

SAMPLE_CONFIG = """
# An array of address to gather stats about. Specify an ip on hostname
# with optional port. ie localhost, 10.0.0.1:11211, etc.
#
# If no servers are specified, then localhost is used as the host.
servers = ["localhost"]"""

# The statistics that are reported.
SEND_AS_IS = ("get_hits", "get_misses", "evictions", "limit_maxbytes", "bytes")

_INT64 = re.compile(r"[+-]?[0-9]+")


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError without a port."""
    i = hostport.rfind(":")
    if i < 0:
        raise ValueError(f"missing port in address {hostport!r}")
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {hostport!r}")
        if end + 1 != i:
            raise ValueError(f"bad port in address {hostport!r}")
        host = hostport[1:end]
    else:
        host = hostport[:i]
        if ":" in host:
            raise ValueError(f"too many colons in address {hostport!r}")
    if "[" in host or "]" in host or "]" in hostport[i + 1 :]:
        raise ValueError(f"unexpected bracket in address {hostport!r}")
    return host, hostport[i + 1 :]


def _parse_int64(text: str) -> int | None:
    if not _INT64.fullmatch(text):
        return None
    value = int(text)
    if not -(1 << 63) <= value < (1 << 63):
        return None
    return value


def _read_line(reader) -> bytes:
    raw = reader.readline()
    if not raw:
        raise EOFError("connection closed before the end of the stats response")
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


def _parse_stat(line: bytes) -> tuple[str, str]:
    parts = line.decode("utf-8", "replace").split()
    if len(parts) != 3 or parts[0] != "STAT" or not line.startswith(b"STAT"):
        raise ValueError(f"unexpected line in stats response: {line!r}")
    return parts[1], parts[2]


@dataclass
class Memcached(Plugin):
    """Reads statistics from one or many memcached servers."""

    servers: list[str] = field(default_factory=list)

    def sample_config(self) -> str:
        return SAMPLE_CONFIG

    def description(self) -> str:
        return "Read metrics from one or many memcached servers"

    def gather(self, acc: Accumulator) -> None:
        """Read the statistics of every configured server."""
        if not self.servers:
            self._gather_server(":" + DEFAULT_PORT, acc)
            return
        for address in self.servers:
            self._gather_server(address, acc)

    def _gather_server(self, address: str, acc: Accumulator) -> None:
        try:
            _split_host_port(address)
        except ValueError:
            address = f"{address}:{DEFAULT_PORT}"
        host, port = _split_host_port(address)

        values: dict[str, str] = {}
        with socket.create_connection(
            (host or "localhost", port or "0"), timeout=DEFAULT_TIMEOUT
        ) as conn, conn.makefile("rb") as reader:
            conn.sendall(b"stats\r\n")
            while True:
                line = _read_line(reader)
                if line == b"END":
                    break
                name, value = _parse_stat(line)
                values[name] = value

        tags = {"server": address}
        for key in SEND_AS_IS:
            if key not in values:
                continue
            value = values[key]
            number = _parse_int64(value)
            acc.add(key, value if number is None else number, tags)


registry.add("memcached", Memcached)