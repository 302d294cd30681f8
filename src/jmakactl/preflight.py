"""Host checks run before mutating commands."""
from __future__ import annotations

import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .config import AppConfig
from .errors import PreconditionError

OS_RELEASE = Path("/etc/os-release")
MIN_UBUNTU_MAJOR = 24


@dataclass(slots=True)
class PlatformInfo:
    """Parsed ``/etc/os-release`` fields plus advisory warnings."""

    id: str | None = None
    version_id: str | None = None
    pretty_name: str | None = None
    warnings: list[str] = field(default_factory=list)


def require_root(config: AppConfig, *, euid: int | None = None) -> None:
    """Raise :class:`PreconditionError` unless running as root (when required)."""
    if not config.require_root:
        return
    effective = os.geteuid() if euid is None else euid
    if effective != 0:
        raise PreconditionError("This command must run as root; re-run it with sudo.")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines from an os-release file."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw]
        values[key.strip()] = parts[0] if parts else ""
    return values


def detect_platform(os_release: Path = OS_RELEASE) -> PlatformInfo:
    """Describe the host OS; non-Ubuntu or pre-24 hosts yield warnings only."""
    try:
        text = os_release.read_text(encoding="utf-8")
    except FileNotFoundError:
        return PlatformInfo(warnings=[f"Cannot detect OS ({os_release} not found)."])
    values = parse_os_release(text)
    info = PlatformInfo(
        id=values.get("ID"),
        version_id=values.get("VERSION_ID"),
        pretty_name=values.get("PRETTY_NAME"),
    )
    if info.id != "ubuntu":
        info.warnings.append("This tool is designed for Ubuntu 24+.")
    if info.version_id:
        major = info.version_id.split(".", 1)[0]
        if not major.isdigit() or int(major) < MIN_UBUNTU_MAJOR:
            info.warnings.append(
                f"VERSION_ID={info.version_id}; expected Ubuntu {MIN_UBUNTU_MAJOR}+. "
                "Proceeding anyway."
            )
    return info


def command_exists(command: str) -> bool:
    """Return True when *command* resolves to an executable."""
    path = Path(command)
    if path.is_absolute() or (path.parent and str(path.parent) not in {"", "."}):
        return path.exists() and os.access(path, os.X_OK)
    resolved = shutil.which(command)
    return resolved is not None and os.access(resolved, os.X_OK)


def require_command(command: str) -> None:
    """Raise :class:`PreconditionError` when *command* is unavailable."""
    if not command_exists(command):
        raise PreconditionError(f"Missing required command: {command}")


__all__ = [
    "PlatformInfo",
    "command_exists",
    "detect_platform",
    "parse_os_release",
    "require_command",
    "require_root",
]
