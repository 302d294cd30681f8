"""Configuration loader for jmakactl.

Settings are layered, later layers winning:

1. Built-in defaults (:data:`DEFAULTS`).
2. ``/etc/jmakactl/config.yml``, or the file named by ``--config-file`` or
   ``JMAKACTL_CONFIG_FILE``.
3. ``JMAKACTL_*`` environment variables.
4. Explicit overrides passed by the caller.

A double underscore in an environment key descends into a section::

    export JMAKACTL_PORTS__RANGE_START=6000
    export JMAKACTL_NGINX__ROOT=/opt/nginx/conf

Environment values go through PyYAML's ``safe_load``, so ``false`` and
``6000`` arrive as a boolean and an integer. The result is a tree of frozen
dataclasses handed explicitly to every operation.
"""
from __future__ import annotations

import os
import pwd
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

ENV_PREFIX = "JMAKACTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

MIN_PORT = 1024
MAX_PORT = 65535


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class PortsConfig:
    """Range searched when proposing a free port."""

    range_start: int = 5000
    range_end: int = 5999

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"range_start": self.range_start, "range_end": self.range_end}


@dataclass(frozen=True)
class NginxConfig:
    """Locations and binaries used for nginx integration."""

    root: Path = Path("/etc/nginx")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    sites_available: Path = Path("/etc/nginx/sites-available")
    snippets_dir: Path = Path("/etc/nginx/snippets")
    backup_dir: Path | None = None
    config_extensions: tuple[str, ...] = (".conf",)
    nginx_bin: str = "nginx"
    client_max_body_size: str = "80m"

    @property
    def vhost_directories(self) -> tuple[Path, Path]:
        """Return vhost directories in locator priority order."""
        return (self.sites_enabled, self.sites_available)

    @property
    def fallback_backup_dir(self) -> Path:
        """Backups of files nginx loads by glob (sites-enabled) land here."""
        return self.root / "jmaka-backups"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "root": str(self.root),
            "sites_enabled": str(self.sites_enabled),
            "sites_available": str(self.sites_available),
            "snippets_dir": str(self.snippets_dir),
            "backup_dir": str(self.backup_dir) if self.backup_dir is not None else None,
            "config_extensions": list(self.config_extensions),
            "nginx_bin": self.nginx_bin,
            "client_max_body_size": self.client_max_body_size,
        }


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_dir": str(self.unit_dir),
            "systemctl_bin": self.systemctl_bin,
            "journalctl_bin": self.journalctl_bin,
        }


@dataclass(frozen=True)
class RuntimeConfig:
    """Location of the ASP.NET runtime and the application entry point."""

    dotnet_root: Path = Path("/opt/dotnet")
    entrypoint: str = "Jmaka.Api.dll"

    @property
    def dotnet_bin(self) -> Path:
        """Return the path of the ``dotnet`` host executable."""
        return self.dotnet_root / "dotnet"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"dotnet_root": str(self.dotnet_root), "entrypoint": self.entrypoint}


@dataclass(frozen=True)
class BackupConfig:
    """Where nginx configuration archives are stored."""

    root: Path
    index: Path

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"root": str(self.root), "index": str(self.index)}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for jmakactl."""

    config_file: Path
    base_root: Path
    default_bundle: Path
    service_user: str
    service_group: str
    service_home: Path
    state_dir: Path
    registry_dir: Path
    logs_dir: Path
    templates_dir: Path
    require_root: bool
    ports: PortsConfig
    nginx: NginxConfig
    systemd: SystemdConfig
    runtime: RuntimeConfig
    backups: BackupConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "base_root": str(self.base_root),
            "default_bundle": str(self.default_bundle),
            "service_user": self.service_user,
            "service_group": self.service_group,
            "service_home": str(self.service_home),
            "state_dir": str(self.state_dir),
            "registry_dir": str(self.registry_dir),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "require_root": self.require_root,
            "ports": self.ports.to_dict(),
            "nginx": self.nginx.to_dict(),
            "systemd": self.systemd.to_dict(),
            "runtime": self.runtime.to_dict(),
            "backups": self.backups.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/jmakactl/config.yml",
    "base_root": "/var/www/jmaka",
    "default_bundle": None,  # ~/jmaka.tar.gz of the invoking user
    "service_user": "jmaka",
    "service_group": None,  # same as service_user
    "service_home": "/var/lib/jmaka",
    "state_dir": "/var/lib/jmakactl",
    "registry_dir": None,  # <state_dir>/registry
    "logs_dir": "/var/log/jmakactl",
    "templates_dir": "/etc/jmakactl/templates",
    "require_root": True,
    "ports": {
        "range_start": 5000,
        "range_end": 5999,
    },
    "nginx": {
        "root": "/etc/nginx",
        "sites_enabled": None,
        "sites_available": None,
        "snippets_dir": None,
        "backup_dir": None,
        "config_extensions": [".conf"],
        "nginx_bin": "nginx",
        "client_max_body_size": "80m",
    },
    "systemd": {
        "unit_dir": "/etc/systemd/system",
        "systemctl_bin": "systemctl",
        "journalctl_bin": "journalctl",
    },
    "runtime": {
        "dotnet_root": "/opt/dotnet",
        "entrypoint": "Jmaka.Api.dll",
    },
    "backups": {
        "root": "/var/backups/jmakactl/nginx",
        "index": None,
    },
}

_SECTION_KEYS: dict[str, frozenset[str]] = {
    name: frozenset(value) for name, value in DEFAULTS.items() if isinstance(value, dict)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    environ = dict(os.environ if env is None else env)
    path = _config_path(config_file, environ)

    merged = _merge(DEFAULTS, _read_config_file(path))
    merged = _merge(merged, _env_layer(environ))
    if overrides:
        merged = _merge(merged, overrides)
    merged["config_file"] = str(path)

    return _build(_Section(merged), environ)


def invoking_user_home(env: Mapping[str, str]) -> Path:
    """Return the home directory of the user who invoked the tool.

    Under ``sudo`` this is the original user rather than root, so default
    paths such as the bundle location point where the operator downloaded it.
    """
    sudo_user = env.get("SUDO_USER", "").strip()
    if sudo_user:
        try:
            return Path(pwd.getpwnam(sudo_user).pw_dir)
        except KeyError:
            pass
    home = env.get("HOME", "").strip()
    if home:
        return Path(home)
    return Path("/root")


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------
def _config_path(explicit: str | os.PathLike[str] | None, environ: Mapping[str, str]) -> Path:
    if explicit:
        return Path(explicit)
    if environ.get(CONFIG_ENV_VAR):
        return Path(environ[CONFIG_ENV_VAR])
    return Path(str(DEFAULTS["config_file"]))


def _read_config_file(path: Path) -> Mapping[str, object]:
    if not path.is_file():
        return {}
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return data


def _env_layer(environ: Mapping[str, str]) -> dict[str, object]:
    layer: dict[str, object] = {}
    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX) or key in RESERVED_ENV_KEYS:
            continue
        parts = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not parts:
            continue
        node = layer
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ConfigError(f"{key} conflicts with another {ENV_PREFIX} variable.")
            node = child
        node[parts[-1]] = _parse_env_value(raw)
    return layer


def _parse_env_value(raw: str) -> object:
    text = raw.strip()
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def _merge(base: Mapping[str, object], layer: Mapping[str, object]) -> dict[str, object]:
    result = dict(base)
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"Configuration keys must be strings. Got {key!r}.")
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = _merge(current, value)
        else:
            result[key] = value
    return result


# ----------------------------------------------------------------------
# Typed reads
# ----------------------------------------------------------------------
class _Section:
    """Typed access to one mapping of the merged configuration."""

    def __init__(self, values: object, name: str = "") -> None:
        """Wrap *values*; *name* is the dotted prefix used in messages."""
        if values is None:
            values = {}
        if not isinstance(values, Mapping):
            raise ConfigError(
                f"Expected {name or 'configuration'} to be a mapping. "
                f"Got {type(values).__name__}."
            )
        self.values: Mapping[str, object] = values
        self.name = name

    def label(self, key: str) -> str:
        """Return the dotted name of *key*."""
        return f"{self.name}.{key}" if self.name else key

    def only(self, allowed: Iterable[str]) -> None:
        """Reject keys outside *allowed*."""
        permitted = set(allowed)
        unknown = sorted(str(key) for key in self.values if key not in permitted)
        if unknown:
            scope = f"{self.name} " if self.name else ""
            raise ConfigError(f"Unknown {scope}configuration keys: {', '.join(unknown)}.")

    def section(self, key: str) -> _Section:
        """Return the nested section *key* (empty when absent)."""
        return _Section(self.values.get(key), self.label(key))

    def path(self, key: str, default: Path | None = None) -> Path:
        value = self.values.get(key)
        if value is None or value == "":
            if default is None:
                raise ConfigError(f"{self.label(key)} must be a filesystem path.")
            return default
        if not isinstance(value, (str, Path)):
            raise ConfigError(f"Cannot convert {self.label(key)}={value!r} to a path.")
        return Path(value).expanduser()

    def optional_path(self, key: str) -> Path | None:
        value = self.values.get(key)
        if value is None or value == "":
            return None
        return self.path(key)

    def text(self, key: str, default: str) -> str:
        value = self.values.get(key)
        if value is None:
            return default
        if isinstance(value, (Mapping, list)):
            raise ConfigError(f"Expected {self.label(key)} to be a string. Got {value!r}.")
        return str(value).strip()

    def integer(self, key: str, default: int) -> int:
        value = self.values.get(key)
        label = self.label(key)
        if value is None:
            return default
        if isinstance(value, bool):
            raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value, 0)
            except ValueError as exc:
                raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
        raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")

    def boolean(self, key: str, default: bool) -> bool:
        value = self.values.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"1", "true", "yes", "on"}:
                return True
            if lowered in {"0", "false", "no", "off"}:
                return False
        raise ConfigError(f"Expected {self.label(key)} to be a boolean. Got {value!r}.")

    def strings(self, key: str) -> list[str]:
        """Read a list, also accepting a comma-separated string."""
        value = self.values.get(key)
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            raise ConfigError(f"Expected {self.label(key)} to be a list. Got {value!r}.")
        return [str(item).strip() for item in value if str(item).strip()]


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------
def _build(root: _Section, environ: Mapping[str, str]) -> AppConfig:
    root.only(DEFAULTS)
    for name, keys in _SECTION_KEYS.items():
        root.section(name).only(keys)

    service_user = root.text("service_user", "jmaka")
    if not service_user:
        raise ConfigError("service_user must be a non-empty string.")
    state_dir = root.path("state_dir")

    return AppConfig(
        config_file=root.path("config_file"),
        base_root=root.path("base_root"),
        default_bundle=root.path(
            "default_bundle", invoking_user_home(environ) / "jmaka.tar.gz"
        ),
        service_user=service_user,
        service_group=root.text("service_group", "") or service_user,
        service_home=root.path("service_home"),
        state_dir=state_dir,
        registry_dir=root.path("registry_dir", state_dir / "registry"),
        logs_dir=root.path("logs_dir"),
        templates_dir=root.path("templates_dir"),
        require_root=root.boolean("require_root", True),
        ports=_ports_config(root.section("ports")),
        nginx=_nginx_config(root.section("nginx")),
        systemd=_systemd_config(root.section("systemd")),
        runtime=_runtime_config(root.section("runtime")),
        backups=_backup_config(root.section("backups")),
    )


def _ports_config(section: _Section) -> PortsConfig:
    start = section.integer("range_start", 5000)
    end = section.integer("range_end", 5999)
    for key, value in (("range_start", start), ("range_end", end)):
        if not MIN_PORT <= value <= MAX_PORT:
            raise ConfigError(
                f"{section.label(key)} must be between {MIN_PORT} and {MAX_PORT}. Got {value}."
            )
    if start > end:
        raise ConfigError("ports.range_start must not exceed ports.range_end.")
    return PortsConfig(range_start=start, range_end=end)


def _nginx_config(section: _Section) -> NginxConfig:
    root = section.path("root", Path("/etc/nginx"))
    extensions = tuple(
        item if item.startswith(".") else f".{item}"
        for item in section.strings("config_extensions")
    )
    if not extensions:
        raise ConfigError("nginx.config_extensions must list at least one extension.")
    return NginxConfig(
        root=root,
        sites_enabled=section.path("sites_enabled", root / "sites-enabled"),
        sites_available=section.path("sites_available", root / "sites-available"),
        snippets_dir=section.path("snippets_dir", root / "snippets"),
        backup_dir=section.optional_path("backup_dir"),
        config_extensions=extensions,
        nginx_bin=section.text("nginx_bin", "nginx"),
        client_max_body_size=section.text("client_max_body_size", "80m"),
    )


def _systemd_config(section: _Section) -> SystemdConfig:
    return SystemdConfig(
        unit_dir=section.path("unit_dir", Path("/etc/systemd/system")),
        systemctl_bin=section.text("systemctl_bin", "systemctl"),
        journalctl_bin=section.text("journalctl_bin", "journalctl"),
    )


def _runtime_config(section: _Section) -> RuntimeConfig:
    entrypoint = section.text("entrypoint", "Jmaka.Api.dll")
    if not entrypoint:
        raise ConfigError("runtime.entrypoint must be a non-empty string.")
    return RuntimeConfig(
        dotnet_root=section.path("dotnet_root", Path("/opt/dotnet")),
        entrypoint=entrypoint,
    )


def _backup_config(section: _Section) -> BackupConfig:
    root = section.path("root", Path("/var/backups/jmakactl/nginx"))
    return BackupConfig(root=root, index=section.path("index", root / "backups.json"))


__all__ = [
    "AppConfig",
    "BackupConfig",
    "ConfigError",
    "NginxConfig",
    "PortsConfig",
    "RuntimeConfig",
    "SystemdConfig",
    "invoking_user_home",
    "load_config",
]
