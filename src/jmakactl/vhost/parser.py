"""Line-oriented scanner for nginx virtual-host files.

This is not an nginx parser. It counts braces line by line, ignoring text
after ``#``, and recognises ``server {`` openers and single-line
``server_name``/``listen`` directives. Anything that would make the count
unreliable (a brace inside a quoted string, depth going negative, or a
non-zero final depth) is reported as :class:`ConfigUnparsableError`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import ConfigUnparsableError

SERVER_OPEN_RE = re.compile(r"^\s*server\s*\{")
SERVER_NAME_RE = re.compile(r"^\s*server_name\s+([^;]*);")
LISTEN_RE = re.compile(r"^\s*listen\s+([^;]*);")
SSL_ON_RE = re.compile(r"^\s*ssl\s+on\s*;")

FILE_ENCODING = "utf-8"
FILE_ERRORS = "surrogateescape"


class QuotedBraceError(ValueError):
    """Raised when a brace appears inside a quoted string."""


def read_text(path: Path) -> str:
    """Read *path* so that every byte survives a later :func:`encode_text`."""
    return path.read_bytes().decode(FILE_ENCODING, FILE_ERRORS)


def encode_text(text: str) -> bytes:
    """Inverse of :func:`read_text`."""
    return text.encode(FILE_ENCODING, FILE_ERRORS)


def strip_comment(line: str) -> str:
    """Return *line* without a trailing ``#`` comment (quotes respected)."""
    quote: str | None = None
    for index, char in enumerate(line):
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "#":
            return line[:index]
    return line


def brace_delta(line: str) -> int:
    """Return ``opens - closes`` for one line, ignoring comments."""
    delta = 0
    quote: str | None = None
    for char in strip_comment(line):
        if quote is not None:
            if char == quote:
                quote = None
            elif char in "{}":
                raise QuotedBraceError(line)
            continue
        if char in "'\"":
            quote = char
        elif char == "{":
            delta += 1
        elif char == "}":
            delta -= 1
    return delta


def server_name_tokens(line: str) -> list[str] | None:
    """Return the names declared by a single-line ``server_name`` directive."""
    match = SERVER_NAME_RE.match(strip_comment(line))
    if match is None:
        return None
    return match.group(1).split()


def declares_domain(line: str, domain: str) -> bool:
    """Return True when *line* is a ``server_name`` listing *domain* as a token."""
    tokens = server_name_tokens(line)
    return tokens is not None and domain in tokens


def check_balance(text: str, path: Path) -> None:
    """Raise :class:`ConfigUnparsableError` unless braces in *text* balance."""
    depth = 0
    for number, line in enumerate(text.splitlines(), start=1):
        try:
            depth += brace_delta(line)
        except QuotedBraceError:
            raise ConfigUnparsableError(path, "brace inside a quoted string", line=number) from None
        if depth < 0:
            raise ConfigUnparsableError(path, "unexpected '}'", line=number)
    if depth != 0:
        raise ConfigUnparsableError(path, f"{depth} unclosed '{{' at end of file")


@dataclass(slots=True)
class ServerBlock:
    """A ``server { ... }`` block found by :func:`scan_server_blocks`."""

    start_line: int
    end_line: int
    server_names: list[str] = field(default_factory=list)
    listens: list[str] = field(default_factory=list)
    ssl_on: bool = False

    def listens_tls(self) -> bool:
        """Return True when port 443 is served with TLS.

        TLS is either the ``ssl`` listen parameter or the older block-wide
        ``ssl on;`` directive.
        """
        return any(
            _listen_port(value) == "443" and (self.ssl_on or "ssl" in value.split())
            for value in self.listens
        )

    def listens_443(self) -> bool:
        """Return True when a ``listen`` directive uses port 443."""
        return any(_listen_port(value) == "443" for value in self.listens)


@dataclass(slots=True)
class VhostFile:
    """A scanned vhost file."""

    path: Path
    text: str
    server_blocks: list[ServerBlock]

    def declares(self, domain: str) -> bool:
        """Return True when any server block lists *domain* in ``server_name``."""
        return any(domain in block.server_names for block in self.server_blocks)

    def blocks_for(self, domain: str) -> list[ServerBlock]:
        """Return the server blocks that list *domain*."""
        return [block for block in self.server_blocks if domain in block.server_names]


def _listen_port(value: str) -> str:
    parts = value.split()
    address = parts[0] if parts else ""
    return address.rsplit(":", 1)[-1]


def scan_server_blocks(text: str, path: Path) -> list[ServerBlock]:
    """Return the top-level server blocks in *text*.

    Line numbers are 1-based. The text must already be balanced; see
    :func:`check_balance`.
    """
    blocks: list[ServerBlock] = []
    current: ServerBlock | None = None
    depth = 0
    for number, line in enumerate(text.splitlines(), start=1):
        try:
            delta = brace_delta(line)
        except QuotedBraceError:
            raise ConfigUnparsableError(path, "brace inside a quoted string", line=number) from None
        if current is None:
            if SERVER_OPEN_RE.match(line):
                current = ServerBlock(start_line=number, end_line=number)
                depth = delta
                if depth <= 0:
                    blocks.append(current)
                    current = None
            continue
        tokens = server_name_tokens(line)
        if tokens is not None:
            current.server_names.extend(tokens)
        listen = LISTEN_RE.match(strip_comment(line))
        if listen is not None:
            current.listens.append(listen.group(1).strip())
        elif SSL_ON_RE.match(strip_comment(line)):
            current.ssl_on = True
        depth += delta
        if depth <= 0:
            current.end_line = number
            blocks.append(current)
            current = None
    return blocks


def load_vhost(path: Path) -> VhostFile:
    """Read, balance-check and scan *path*."""
    text = read_text(path)
    check_balance(text, path)
    return VhostFile(path=path, text=text, server_blocks=scan_server_blocks(text, path))


__all__ = [
    "LISTEN_RE",
    "SERVER_NAME_RE",
    "SERVER_OPEN_RE",
    "ServerBlock",
    "VhostFile",
    "brace_delta",
    "check_balance",
    "declares_domain",
    "encode_text",
    "load_vhost",
    "read_text",
    "scan_server_blocks",
    "server_name_tokens",
    "strip_comment",
]
