"""Provider interfaces for jmakactl."""
from __future__ import annotations

from .nginx import NginxError, NginxProvider
from .systemd import SystemdError, SystemdProvider

__all__ = [
    "NginxError",
    "NginxProvider",
    "SystemdError",
    "SystemdProvider",
]
