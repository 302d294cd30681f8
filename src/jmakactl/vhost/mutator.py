"""Idempotent insertion and removal of managed ``include`` lines in nginx files.

Every file touched gets one timestamped backup per mutator instance, and
every write goes through a temporary file in the same directory followed by
``os.replace`` so readers see either the old or the new content.
"""
from __future__ import annotations

import os
import re
import shutil
import stat
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from ..config import NginxConfig
from ..errors import DomainNotInFileError, NotFoundError
from .parser import (
    SERVER_OPEN_RE,
    brace_delta,
    check_balance,
    declares_domain,
    encode_text,
    read_text,
)
from .snippet import LEGACY_SNIPPET_SUFFIX, SNIPPET_PREFIX, SNIPPET_SUFFIX

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
_INDENT_RE = re.compile(r"[ \t]*")

LinePredicate = Callable[[str], bool]


class InsertOutcome(str, Enum):
    """Result of :meth:`VhostMutator.insert`."""

    INSERTED = "inserted"
    ALREADY_PRESENT = "already-present"


@dataclass(frozen=True, slots=True)
class InsertResult:
    """What :meth:`VhostMutator.insert` did to a file."""

    path: Path
    outcome: InsertOutcome
    blocks: int
    backup: Path


def managed_include_pattern(snippets_dir: Path, name: str | None = None) -> re.Pattern[str]:
    """Return a full-line regex matching managed include directives.

    With *name* only that instance's include matches; otherwise every
    ``jmaka-*`` snippet include under *snippets_dir* does. Both the
    ``.location.conf`` names and the older ``jmaka-<name>.conf`` names match.
    """
    directory = re.escape(str(snippets_dir).rstrip("/"))
    if name:
        stem = re.escape(name)
        suffix = f"(?:{re.escape(SNIPPET_SUFFIX)}|{re.escape(LEGACY_SNIPPET_SUFFIX)})"
    else:
        stem = r"[^;\s/]*"
        suffix = re.escape(LEGACY_SNIPPET_SUFFIX)
    return re.compile(
        rf"^\s*include\s+{directory}/{re.escape(SNIPPET_PREFIX)}{stem}{suffix}\s*;\s*$"
    )


def _split_ending(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


class VhostMutator:
    """Edit nginx config files with backups and atomic replacement."""

    def __init__(
        self,
        *,
        backup_dir: Path | None = None,
        extensions: Iterable[str] = (".conf",),
        now: datetime | None = None,
        globbed_dirs: Iterable[Path] = (),
        fallback_dir: Path | None = None,
    ) -> None:
        """Fix the backup timestamp for this run.

        Backups go to *backup_dir* when set, else next to the edited file,
        except that files directly inside one of *globbed_dirs* (loaded by an
        ``include dir/*;`` glob) are backed up to *fallback_dir* instead.
        """
        self.backup_dir = backup_dir
        self.globbed_dirs = frozenset(path.resolve() for path in globbed_dirs)
        self.fallback_dir = fallback_dir
        self.extensions = tuple(extensions)
        self.stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
        self._backups: dict[Path, Path] = {}

    @classmethod
    def for_nginx(cls, config: NginxConfig) -> VhostMutator:
        """Return a mutator that never leaves backups where nginx would load them."""
        return cls(
            backup_dir=config.backup_dir,
            extensions=config.config_extensions,
            globbed_dirs=(config.sites_enabled,),
            fallback_dir=config.fallback_backup_dir,
        )

    @property
    def backups(self) -> list[Path]:
        """Backups taken by this mutator, in creation order."""
        return list(self._backups.values())

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------
    def insert(self, vhost_path: Path, domain: str, directive: str) -> InsertResult:
        """Insert *directive* after ``server_name`` in each block declaring *domain*.

        Raises :class:`NotFoundError` when the file is missing,
        :class:`ConfigUnparsableError` when braces do not balance (no backup is
        taken), and :class:`DomainNotInFileError` when no block matches.
        """
        if not vhost_path.is_file():
            raise NotFoundError(f"Vhost file not found: {vhost_path}")
        target = vhost_path.resolve()
        text = read_text(target)
        check_balance(text, vhost_path)
        backup = self.backup(target)

        directive = directive.strip()
        if directive in text:
            return InsertResult(
                path=target, outcome=InsertOutcome.ALREADY_PRESENT, blocks=0, backup=backup
            )

        output: list[str] = []
        in_block = False
        handled = False
        depth = 0
        blocks = 0
        for line in text.splitlines(keepends=True):
            body, ending = _split_ending(line)
            delta = brace_delta(body)
            if not in_block:
                output.append(line)
                if SERVER_OPEN_RE.match(body):
                    in_block = True
                    handled = False
                    depth = delta
                    if depth <= 0:
                        in_block = False
                continue

            depth += delta
            if not handled and depth > 0 and declares_domain(body, domain):
                if not ending:
                    ending = "\n"
                    line = body + ending
                indent = _INDENT_RE.match(body).group(0)  # type: ignore[union-attr]
                output.append(line)
                output.append(f"{indent}{directive}{ending}")
                handled = True
                blocks += 1
            else:
                output.append(line)
            if depth <= 0:
                in_block = False

        if blocks == 0:
            raise DomainNotInFileError(vhost_path, domain)
        self.atomic_write(target, encode_text("".join(output)))
        return InsertResult(
            path=target, outcome=InsertOutcome.INSERTED, blocks=blocks, backup=backup
        )

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------
    def remove_from_tree(self, roots: Iterable[Path], predicate: LinePredicate) -> int:
        """Delete lines matching *predicate* from config files under *roots*.

        Returns the number of files modified. Directory symlinks are not
        followed; a file reachable under several roots is edited once.
        """
        seen: set[Path] = set()
        modified = 0
        for root in roots:
            if not root.is_dir():
                continue
            for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = Path(dirpath) / filename
                    if path.suffix not in self.extensions or not path.is_file():
                        continue
                    resolved = path.resolve()
                    if resolved in seen:
                        continue
                    seen.add(resolved)
                    if self.remove_lines(resolved, predicate):
                        modified += 1
        return modified

    def remove_lines(self, path: Path, predicate: LinePredicate) -> bool:
        """Remove matching lines from one file; return True when it changed."""
        text = read_text(path)
        lines = text.splitlines(keepends=True)
        kept = [line for line in lines if not predicate(_split_ending(line)[0])]
        if len(kept) == len(lines):
            return False
        self.backup(path)
        self.atomic_write(path, encode_text("".join(kept)))
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def backup(self, path: Path) -> Path:
        """Copy *path* to ``<name>.bak.<stamp>`` once per mutator run."""
        existing = self._backups.get(path)
        if existing is not None:
            return existing
        directory = self.backup_directory(path)
        directory.mkdir(parents=True, exist_ok=True)
        destination = directory / f"{path.name}.bak.{self.stamp}"
        counter = 1
        while destination.exists():
            destination = directory / f"{path.name}.bak.{self.stamp}.{counter}"
            counter += 1
        shutil.copy2(path, destination)
        self._backups[path] = destination
        return destination

    def backup_directory(self, path: Path) -> Path:
        if self.backup_dir is not None:
            return self.backup_dir
        if self.fallback_dir is not None and path.parent.resolve() in self.globbed_dirs:
            return self.fallback_dir
        return path.parent

    @staticmethod
    def atomic_write(path: Path, data: bytes) -> None:
        """Replace *path* with *data*, preserving its permission bits."""
        info = path.stat()
        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, stat.S_IMODE(info.st_mode))
            if os.geteuid() == 0:
                os.chown(tmp_path, info.st_uid, info.st_gid)
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)


__all__ = [
    "InsertOutcome",
    "InsertResult",
    "LinePredicate",
    "VhostMutator",
    "managed_include_pattern",
]
