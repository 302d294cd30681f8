"""Unpack an application bundle into an instance directory.

Layout::

    <base>/app/      read-only for everyone, owned by root
    <base>/storage/  private to the service user, never cleared on reinstall
"""
from __future__ import annotations

import grp
import os
import pwd
import shutil
import stat
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .archive import extract_archive
from .errors import NotFoundError, PreconditionError
from .instance import ManagedInstance

_ANY_EXEC = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(slots=True)
class MaterializedPaths:
    """Directories produced by :meth:`BundleMaterializer.materialize`."""

    base: Path
    app: Path
    storage: Path
    ownership_applied: bool
    warnings: list[str] = field(default_factory=list)


def _walk(root: Path) -> Iterator[Path]:
    yield root
    for dirpath, dirnames, filenames in os.walk(root):
        for name in (*dirnames, *filenames):
            yield Path(dirpath) / name


def _readonly_mode(mode: int) -> int:
    if stat.S_ISDIR(mode) or mode & _ANY_EXEC:
        return 0o555
    return 0o444


def _private_mode(mode: int) -> int:
    if stat.S_ISDIR(mode) or mode & _ANY_EXEC:
        return 0o700
    return 0o600


def _resolve_ids(user: str, group: str) -> tuple[int, int]:
    try:
        uid = pwd.getpwnam(user).pw_uid
    except KeyError as exc:
        raise PreconditionError(f"User '{user}' does not exist.") from exc
    try:
        gid = grp.getgrnam(group).gr_gid
    except KeyError as exc:
        raise PreconditionError(f"Group '{group}' does not exist.") from exc
    return uid, gid


@dataclass(slots=True)
class BundleMaterializer:
    """Extract bundles and apply the app/storage permission policy."""

    service_user: str
    service_group: str
    app_owner: str = "root"
    app_group: str = "root"
    manage_ownership: bool | None = None

    def _owns(self) -> bool:
        if self.manage_ownership is not None:
            return self.manage_ownership
        return os.geteuid() == 0

    def materialize(self, bundle: Path, instance: ManagedInstance) -> MaterializedPaths:
        """Replace ``app/`` with the bundle contents and prepare ``storage/``."""
        bundle = bundle.expanduser()
        if not bundle.is_file():
            raise NotFoundError(f"Application bundle not found: {bundle}")

        app = instance.app_dir
        storage = instance.storage_dir
        app.mkdir(parents=True, exist_ok=True)
        storage.mkdir(parents=True, exist_ok=True)

        self.clear_directory(app)
        extract_archive(bundle, app)

        paths = MaterializedPaths(
            base=instance.base_directory,
            app=app,
            storage=storage,
            ownership_applied=self._owns(),
        )
        if paths.ownership_applied:
            app_ids = _resolve_ids(self.app_owner, self.app_group)
            storage_ids = _resolve_ids(self.service_user, self.service_group)
            os.chown(instance.base_directory, *app_ids)
            self._apply(app, _readonly_mode, app_ids)
            self._apply(storage, _private_mode, storage_ids)
        else:
            paths.warnings.append("Not running as root; ownership left unchanged.")
            self._apply(app, _readonly_mode, None)
            self._apply(storage, _private_mode, None)
        return paths

    @staticmethod
    def clear_directory(directory: Path) -> None:
        """Delete everything inside *directory*, including read-only subtrees."""
        for dirpath, dirnames, _ in os.walk(directory):
            for name in dirnames:
                child = Path(dirpath) / name
                if not child.is_symlink():
                    os.chmod(child, 0o755)
        os.chmod(directory, 0o755)
        for entry in directory.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    @staticmethod
    def _apply(root: Path, policy: Callable[[int], int], ids: tuple[int, int] | None) -> None:
        # Children before parents so read-only directories do not block the walk.
        for path in reversed(list(_walk(root))):
            if ids is not None:
                os.lchown(path, *ids)
            if path.is_symlink():
                continue
            os.chmod(path, policy(path.stat().st_mode))


__all__ = ["BundleMaterializer", "MaterializedPaths"]
