"""Port allocation helpers for jmakactl.

Listening sockets are read from ``ss -lntH`` (iproute2). When ``ss`` is not
installed the kernel tables in ``/proc/net/tcp{,6}`` are parsed instead.
"""
from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .config import PortsConfig
from .errors import NotFoundError

PROC_TCP_TABLES = (Path("/proc/net/tcp"), Path("/proc/net/tcp6"))
_TCP_LISTEN_STATE = "0A"

Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]


def parse_ss_output(output: str) -> set[int]:
    """Return local ports from ``ss -lntH`` output."""
    ports: set[int] = set()
    for line in output.splitlines():
        columns = line.split()
        if len(columns) < 4:
            continue
        local = columns[3]
        port_text = local.rsplit(":", 1)[-1].strip("[]")
        if port_text.isdigit():
            ports.add(int(port_text))
    return ports


def parse_proc_tcp(text: str) -> set[int]:
    """Return listening ports from a ``/proc/net/tcp`` style table."""
    ports: set[int] = set()
    for line in text.splitlines()[1:]:
        columns = line.split()
        if len(columns) < 4 or columns[3] != _TCP_LISTEN_STATE:
            continue
        _, _, port_hex = columns[1].rpartition(":")
        try:
            ports.add(int(port_hex, 16))
        except ValueError:
            continue
    return ports


@dataclass(slots=True)
class PortAllocator:
    """Inspect listening TCP ports and propose a free one."""

    ports: PortsConfig = field(default_factory=PortsConfig)
    ss_bin: str = "ss"
    proc_tables: Iterable[Path] = PROC_TCP_TABLES
    runner: Runner | None = None

    def listening_ports(self) -> set[int]:
        """Return the set of TCP ports currently in LISTEN state."""
        if self.runner is not None or shutil.which(self.ss_bin) is not None:
            result = self._run([self.ss_bin, "-lntH"])
            if result.returncode == 0:
                return parse_ss_output(result.stdout or "")
        ports: set[int] = set()
        for table in self.proc_tables:
            try:
                ports |= parse_proc_tcp(table.read_text(encoding="utf-8"))
            except FileNotFoundError:
                continue
        return ports

    def is_in_use(self, port: int) -> bool:
        """Return True when *port* is bound by a listening socket."""
        return port in self.listening_ports()

    def suggest(self) -> int:
        """Return the first free port in the configured range."""
        used = self.listening_ports()
        for candidate in range(self.ports.range_start, self.ports.range_end + 1):
            if candidate not in used:
                return candidate
        raise NotFoundError(
            f"No free port in {self.ports.range_start}-{self.ports.range_end}; pick one manually."
        )

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        if self.runner is not None:
            return self.runner(command)
        return subprocess.run(  # noqa: S603 - fixed argument vector
            command,
            capture_output=True,
            text=True,
            check=False,
        )


__all__ = ["PortAllocator", "parse_proc_tcp", "parse_ss_output"]
