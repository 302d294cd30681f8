"""Error taxonomy shared by jmakactl components.

Every failure that should stop an operation derives from :class:`JmakactlError`
so the CLI can report it uniformly. "Already present" is deliberately not an
error: idempotent no-ops are reported as outcomes by the callers.
"""
from __future__ import annotations

from pathlib import Path


class JmakactlError(RuntimeError):
    """Base class for operator-facing failures."""


class ValidationError(JmakactlError):
    """Raised when user input (name, port, prefix, domain) is invalid."""


class PreconditionError(JmakactlError):
    """Raised when the host does not satisfy a requirement (root, binaries)."""


class NotFoundError(JmakactlError):
    """Raised when a file, bundle, or domain match cannot be found."""


class DomainNotInFileError(NotFoundError):
    """Raised when a vhost file exists but no server block declares the domain."""

    def __init__(self, path: Path, domain: str) -> None:
        """Record the vhost path and domain that failed to match."""
        self.path = path
        self.domain = domain
        super().__init__(f"No server block in {path} declares server_name '{domain}'.")


class ConfigUnparsableError(JmakactlError):
    """Raised when a config file defeats the brace-counting scan."""

    def __init__(self, path: Path, reason: str, *, line: int | None = None) -> None:
        """Record where the scan gave up."""
        self.path = path
        self.reason = reason
        self.line = line
        location = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"Cannot safely edit {location}: {reason}")


class ExternalCommandError(JmakactlError):
    """Raised when an external tool (tar, nginx, systemctl) fails."""


__all__ = [
    "ConfigUnparsableError",
    "DomainNotInFileError",
    "ExternalCommandError",
    "JmakactlError",
    "NotFoundError",
    "PreconditionError",
    "ValidationError",
]
