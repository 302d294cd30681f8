"""Tests for listening-port discovery and free-port suggestions."""
from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from jmakactl.config import PortsConfig
from jmakactl.errors import NotFoundError
from jmakactl.ports import PortAllocator, parse_proc_tcp, parse_ss_output

SS_OUTPUT = """\
LISTEN 0      511          0.0.0.0:80         0.0.0.0:*
LISTEN 0      4096   127.0.0.53%lo:53         0.0.0.0:*
LISTEN 0      511             [::]:443           [::]:*
LISTEN 0      512   [::ffff:127.0.0.1]:5000        *:*
LISTEN 0      512                *:5001            *:*
"""

PROC_TCP = """\
  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid
   0: 00000000:1388 00000000:0000 0A 00000000:00000000 00:00000000 00000000     0
   1: 0100007F:1389 0100007F:D2F0 01 00000000:00000000 00:00000000 00000000     0
"""


def _runner(stdout: str, returncode: int = 0):
    calls: list[list[str]] = []

    def run(command: list[str]) -> subprocess.CompletedProcess[str]:
        calls.append(command)
        return subprocess.CompletedProcess(command, returncode, stdout=stdout, stderr="")

    run.calls = calls  # type: ignore[attr-defined]
    return run


def test_parse_ss_output_handles_ipv4_ipv6_and_wildcards() -> None:
    """Every address form reported by ss yields its port."""
    assert parse_ss_output(SS_OUTPUT) == {53, 80, 443, 5000, 5001}


def test_parse_proc_tcp_keeps_listen_state_only() -> None:
    """Only sockets in state 0A (LISTEN) count."""
    assert parse_proc_tcp(PROC_TCP) == {5000}


def test_listening_ports_uses_ss_runner() -> None:
    """The allocator asks ss for listening sockets first."""
    runner = _runner(SS_OUTPUT)
    allocator = PortAllocator(runner=runner)

    assert allocator.listening_ports() == {53, 80, 443, 5000, 5001}
    assert runner.calls == [["ss", "-lntH"]]  # type: ignore[attr-defined]
    assert allocator.is_in_use(5000) is True
    assert allocator.is_in_use(5002) is False


def test_listening_ports_falls_back_to_proc(tmp_path: Path) -> None:
    """When ss fails the kernel tables are read instead."""
    table = tmp_path / "tcp"
    table.write_text(PROC_TCP, encoding="utf-8")
    allocator = PortAllocator(
        runner=_runner("", returncode=1),
        proc_tables=(table, tmp_path / "tcp6"),
    )

    assert allocator.listening_ports() == {5000}


def test_suggest_returns_first_free_port() -> None:
    """Suggestions skip ports already listening."""
    allocator = PortAllocator(ports=PortsConfig(5000, 5010), runner=_runner(SS_OUTPUT))

    assert allocator.suggest() == 5002


def test_suggest_raises_when_range_exhausted() -> None:
    """A fully used range is reported rather than silently widened."""
    allocator = PortAllocator(ports=PortsConfig(5000, 5001), runner=_runner(SS_OUTPUT))

    with pytest.raises(NotFoundError, match="5000-5001"):
        allocator.suggest()
