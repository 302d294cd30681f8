"""Instance identity: slugs, path prefixes, and the managed instance model."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import MAX_PORT, MIN_PORT
from .errors import ValidationError

SERVICE_PREFIX = "jmaka"
MAX_SLUG_LENGTH = 48

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_PREFIX_ALLOWED = re.compile(r"[A-Za-z0-9._~/-]+")
_DOMAIN_ALLOWED = re.compile(r"[a-z0-9.-]+")


class MountMode(str, Enum):
    """How a path prefix is presented to the upstream application."""

    BASE_PATH = "base-path"
    STRIP_PREFIX = "strip-prefix"


def slugify(name: str) -> str:
    """Return a filesystem and unit-name safe slug for *name*."""
    lowered = name.strip().lower()
    slug = _SLUG_INVALID.sub("-", lowered).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    if not slug:
        raise ValidationError(
            f"Instance name {name!r} must contain at least one letter or digit."
        )
    return slug


def normalize_path_prefix(value: str | None) -> str:
    """Return ``/`` or ``/segment/.../`` for a free-form prefix."""
    text = (value or "").strip()
    if not text:
        return "/"
    if not _PREFIX_ALLOWED.fullmatch(text):
        raise ValidationError(
            f"Path prefix {value!r} may only contain letters, digits, '.', '_', '~', '-' and '/'."
        )
    segments = [segment for segment in text.split("/") if segment]
    if any(segment in {".", ".."} for segment in segments):
        raise ValidationError(f"Path prefix {value!r} must not contain '.' or '..' segments.")
    if not segments:
        return "/"
    return "/" + "/".join(segments) + "/"


def validate_port(port: int) -> int:
    """Ensure *port* is an unprivileged TCP port."""
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValidationError(f"Port must be an integer. Got {port!r}.")
    if not MIN_PORT <= port <= MAX_PORT:
        raise ValidationError(
            f"Port {port} is outside {MIN_PORT}-{MAX_PORT}; use a free port such as 5000-5999."
        )
    return port


def validate_domain(value: str) -> str:
    """Validate and normalise a domain/FQDN."""
    normalised = value.strip().lower()
    if not normalised:
        raise ValidationError("Domain must be a non-empty string.")
    if len(normalised) > 255:
        raise ValidationError("Domain must be 255 characters or fewer.")
    if normalised.startswith(("-", ".")) or normalised.endswith(("-", ".")):
        raise ValidationError("Domain cannot start or end with a hyphen or dot.")
    if not _DOMAIN_ALLOWED.fullmatch(normalised):
        raise ValidationError("Domain may contain letters, numbers, dots, and hyphens.")
    return normalised


@dataclass(slots=True)
class ManagedInstance:
    """One installed application instance."""

    name: str
    port: int
    base_directory: Path
    path_prefix: str = "/"
    mount_mode: MountMode = MountMode.BASE_PATH
    domain: str | None = None
    extra: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Normalise fields and enforce the root-prefix invariant."""
        self.name = slugify(self.name)
        self.port = validate_port(self.port)
        self.base_directory = Path(self.base_directory)
        self.path_prefix = normalize_path_prefix(self.path_prefix)
        self.mount_mode = MountMode(self.mount_mode)
        if self.path_prefix == "/":
            self.mount_mode = MountMode.BASE_PATH
        if self.domain is not None:
            self.domain = validate_domain(self.domain)

    @property
    def service_name(self) -> str:
        """Return the systemd service name (without ``.service``)."""
        return f"{SERVICE_PREFIX}-{self.name}"

    @property
    def app_dir(self) -> Path:
        """Directory holding the read-only application bundle."""
        return self.base_directory / "app"

    @property
    def storage_dir(self) -> Path:
        """Directory holding data writable by the service user."""
        return self.base_directory / "storage"

    @property
    def base_path_env(self) -> str:
        """Value exported to the app as its base path (no trailing slash)."""
        if self.path_prefix == "/":
            return "/"
        if self.mount_mode is MountMode.STRIP_PREFIX:
            return "/"
        return self.path_prefix.rstrip("/")

    @property
    def listen_url(self) -> str:
        """Loopback URL the application binds to."""
        return f"http://127.0.0.1:{self.port}"

    def to_dict(self) -> dict[str, object]:
        """Return a registry-friendly mapping."""
        payload: dict[str, object] = {
            "name": self.name,
            "port": self.port,
            "base_directory": str(self.base_directory),
            "path_prefix": self.path_prefix,
            "mount_mode": self.mount_mode.value,
            "domain": self.domain,
        }
        payload.update(self.extra)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> ManagedInstance:
        """Rebuild an instance from a registry mapping."""
        known = {"name", "port", "base_directory", "path_prefix", "mount_mode", "domain"}
        port_value = payload.get("port")
        if isinstance(port_value, str) and port_value.strip().isdigit():
            port_value = int(port_value)
        domain_value = payload.get("domain")
        return cls(
            name=str(payload.get("name", "")),
            port=port_value,  # type: ignore[arg-type]
            base_directory=Path(str(payload.get("base_directory", ""))),
            path_prefix=str(payload.get("path_prefix") or "/"),
            mount_mode=MountMode(str(payload.get("mount_mode") or MountMode.BASE_PATH.value)),
            domain=str(domain_value) if domain_value else None,
            extra={key: value for key, value in payload.items() if key not in known},
        )


__all__ = [
    "ManagedInstance",
    "MountMode",
    "SERVICE_PREFIX",
    "normalize_path_prefix",
    "slugify",
    "validate_domain",
    "validate_port",
]
