"""YAML registry of installed jmaka instances.

``instances.yml`` under the registry directory (``/var/lib/jmakactl/registry``
by default) holds one mapping per instance: port, prefix, mount mode, domain,
and the nginx and systemd files written for it. Uninstall sweeps the
filesystem directly and only consults the registry to find vhost files
jmakactl generated itself.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

INSTANCES_FILE = "instances.yml"
FILE_MODE = 0o640


class StateRegistryError(RuntimeError):
    """A registry file could not be parsed or an entry was invalid."""


def _entry_name(entry: object) -> str:
    if not isinstance(entry, Mapping):
        return ""
    return str(entry.get("name", "")).strip()


@dataclass(frozen=True)
class StateRegistry:
    """Read and atomically rewrite files in the registry directory."""

    root: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root).expanduser())

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.root / name

    def read(self, name: str, *, default: object | None = None) -> object | None:
        """Parse registry file *name*; a missing or empty file yields a copy of *default*."""
        path = self.path_for(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return deepcopy(default)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise StateRegistryError(f"Registry file {path} is not valid YAML: {exc}") from exc
        return deepcopy(default) if data is None else data

    def write(self, name: str, payload: Mapping[str, object]) -> None:
        """Replace registry file *name* via a temp file and rename."""
        self.ensure_root()
        target = self.path_for(name)
        fd, scratch = tempfile.mkstemp(dir=self.root, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(dict(payload), handle, sort_keys=False)
            os.chmod(scratch, FILE_MODE)
            os.replace(scratch, target)
        finally:
            Path(scratch).unlink(missing_ok=True)

    def read_instances(self) -> Mapping[str, object]:
        value = self.read(INSTANCES_FILE, default={"instances": []})
        if isinstance(value, Mapping):
            return value
        return {"instances": []}

    def write_instances(self, instances: Iterable[object]) -> None:
        self.write(INSTANCES_FILE, {"instances": list(instances)})

    def _by_name(self) -> dict[str, dict[str, Any]]:
        raw = self.read_instances().get("instances")
        if not isinstance(raw, list):
            return {}
        # Entries without a usable name are dropped on the next write.
        return {_entry_name(item): dict(item) for item in raw if _entry_name(item)}

    def list_instances(self) -> list[dict[str, Any]]:
        """Return registered instances ordered by name."""
        entries = self._by_name()
        return [entries[name] for name in sorted(entries)]

    def get_instance(self, name: str) -> dict[str, Any] | None:
        return self._by_name().get(name)

    def upsert_instance(self, entry: Mapping[str, object]) -> dict[str, Any]:
        """Store *entry* under its name, keeping the first ``installed_at``."""
        name = _entry_name(entry)
        if not name:
            raise StateRegistryError("Registry entries need a non-empty 'name'.")
        entries = self._by_name()
        timestamp = datetime.now(UTC).isoformat()
        previous = entries.get(name, {})
        stored = {**entry, "name": name, "updated_at": timestamp}
        stored.setdefault("installed_at", previous.get("installed_at", timestamp))
        entries[name] = stored
        self.write_instances(entries[key] for key in sorted(entries))
        return stored

    def remove_instance(self, name: str) -> None:
        entries = self._by_name()
        if entries.pop(name, None) is None:
            raise StateRegistryError(f"No registry entry for instance '{name}'.")
        self.write_instances(entries[key] for key in sorted(entries))

    def clear_instances(self) -> int:
        """Drop every entry and return how many there were."""
        count = len(self._by_name())
        if count:
            self.write_instances([])
        return count


__all__ = ["INSTANCES_FILE", "StateRegistry", "StateRegistryError"]
