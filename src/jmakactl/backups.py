"""Whole-tree backups of the nginx configuration directory.

Archives are ``nginx-<YYYYMMDD-HHMMSS>.tar.gz`` files under the backups root,
each with a ``.sha256`` sidecar and an entry in ``backups.json``.
"""
from __future__ import annotations

import json
import os
import shutil
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .archive import (
    compute_checksum,
    create_archive,
    extract_archive,
    read_checksum_file,
    write_checksum_file,
)
from .errors import JmakactlError, NotFoundError, PreconditionError
from .providers.nginx import NginxProvider

ARCHIVE_PREFIX = "nginx"
RESTORE_PREFIX = "nginx-before-restore"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


class BackupError(JmakactlError):
    """An nginx backup or restore could not be completed."""


class BackupRegistryError(BackupError):
    """``backups.json`` is unreadable or could not be written."""


def _now_iso() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True)
class BackupsRegistry:
    """JSON index of archives kept under the backups root.

    The index is a single object, ``{"backups": [...]}``, rewritten through a
    temporary file so a crash never leaves it half written.
    """

    root: Path
    index: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser()
        self.index = Path(self.index).expanduser()

    def ensure_root(self) -> None:
        """Create the backups root with mode 0750."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.root.chmod(0o750)
        except OSError as exc:
            raise BackupRegistryError(
                f"Cannot prepare backups directory {self.root}: {exc}"
            ) from exc

    def read(self) -> dict[str, object]:
        try:
            text = self.index.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {"backups": []}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise BackupRegistryError(f"{self.index} is not valid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise BackupRegistryError(f"{self.index} must hold a JSON object.")
        return dict(data)

    def write(self, payload: Mapping[str, object]) -> None:
        self.ensure_root()
        self.index.parent.mkdir(parents=True, exist_ok=True)
        fd, scratch = tempfile.mkstemp(dir=self.index.parent, prefix=f".{self.index.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(dict(payload), indent=2) + "\n")
            os.chmod(scratch, 0o640)
            os.replace(scratch, self.index)
        except OSError as exc:
            raise BackupRegistryError(f"Cannot update {self.index}: {exc}") from exc
        finally:
            Path(scratch).unlink(missing_ok=True)

    def list_entries(self) -> list[dict[str, object]]:
        """Return recorded backups, skipping anything that is not an object."""
        raw = self.read().get("backups")
        if not isinstance(raw, list):
            return []
        return [dict(item) for item in raw if isinstance(item, Mapping)]

    def append(self, entry: Mapping[str, object]) -> None:
        self.write({"backups": [*self.list_entries(), dict(entry)]})

    def find_by_path(self, archive: Path) -> dict[str, object] | None:
        """Return the entry recorded for *archive*, if any."""
        wanted = str(archive.expanduser().resolve())
        return next(
            (entry for entry in self.list_entries() if str(entry.get("path", "")) == wanted),
            None,
        )


@dataclass(slots=True)
class NginxBackupManager:
    """Archive and restore the nginx configuration root."""

    registry: BackupsRegistry
    nginx: NginxProvider

    @property
    def nginx_root(self) -> Path:
        """Directory that is archived and restored."""
        return self.nginx.config.root

    def create(self, *, prefix: str = ARCHIVE_PREFIX) -> dict[str, object]:
        """Archive the nginx root and record it in the index."""
        source = self.nginx_root
        if not source.is_dir():
            raise NotFoundError(f"nginx configuration directory not found: {source}")
        self.registry.ensure_root()
        stamp = datetime.now().strftime(TIMESTAMP_FORMAT)
        archive = self.registry.root / f"{prefix}-{stamp}.tar.gz"
        counter = 1
        while archive.exists():
            archive = self.registry.root / f"{prefix}-{stamp}-{counter}.tar.gz"
            counter += 1
        create_archive(source, archive)
        checksum = compute_checksum(archive)
        write_checksum_file(archive, checksum)
        entry: dict[str, object] = {
            "id": archive.name.removesuffix(".tar.gz"),
            "created_at": _now_iso(),
            "path": str(archive.resolve()),
            "source": str(source),
            "size_bytes": archive.stat().st_size,
            "checksum": {"algorithm": "sha256", "value": checksum},
        }
        self.registry.append(entry)
        return entry

    def restore(self, archive: Path) -> dict[str, object]:
        """Replace the nginx root with *archive*, then self-check and reload.

        The current tree is archived first as ``nginx-before-restore-<ts>``.
        """
        archive = archive.expanduser()
        if not archive.is_file():
            raise NotFoundError(f"Backup archive not found: {archive}")
        if not self.nginx.is_installed():
            raise PreconditionError("nginx is not installed; cannot validate a restored config.")
        self._verify_checksum(archive)

        safety: dict[str, object] | None = None
        if self.nginx_root.is_dir():
            safety = self.create(prefix=RESTORE_PREFIX)

        target = self.nginx_root
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=str(target.parent), prefix=".jmakactl-restore-"))
        try:
            extract_archive(archive, staging)
            restored = staging / target.name
            if not restored.is_dir():
                raise BackupError(f"{archive} does not contain a '{target.name}' directory.")
            if target.exists():
                shutil.rmtree(target)
            os.replace(restored, target)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        self.nginx.apply()
        return {
            "archive": str(archive),
            "restored": str(target),
            "safety_backup": safety["path"] if safety else None,
        }

    def _verify_checksum(self, archive: Path) -> None:
        expected: str | None = None
        entry = self.registry.find_by_path(archive)
        if entry is not None:
            checksum = entry.get("checksum")
            if isinstance(checksum, Mapping):
                expected = str(checksum.get("value") or "") or None
        if expected is None:
            expected = read_checksum_file(archive)
        if expected is None:
            return
        actual = compute_checksum(archive)
        if actual != expected:
            raise BackupError(
                f"Checksum mismatch for {archive}: expected {expected}, got {actual}."
            )


__all__ = [
    "BackupError",
    "BackupRegistryError",
    "BackupsRegistry",
    "NginxBackupManager",
]
