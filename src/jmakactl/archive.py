"""Archive helpers shared by the bundle materializer and nginx backups."""
from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
from pathlib import Path

from .errors import ExternalCommandError


class ArchiveError(ExternalCommandError):
    """Raised when ``tar`` fails or is missing."""


def _tar_bin() -> str:
    tar_bin = shutil.which("tar")
    if tar_bin is None:
        raise ArchiveError("The 'tar' command is required to handle archives.")
    return tar_bin


def _run_tar(cmd: list[str]) -> None:
    result = subprocess.run(  # noqa: S603, S607 - controlled command execution
        cmd,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        message = result.stderr or result.stdout or "tar command failed"
        raise ArchiveError(message.strip())


def create_archive(source_dir: Path, archive_path: Path) -> None:
    """Create a gzip tarball of *source_dir* (stored under its own name)."""
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    _run_tar(
        [
            _tar_bin(),
            "-czf",
            str(archive_path),
            "-C",
            str(source_dir.parent),
            source_dir.name,
        ]
    )
    os.chmod(archive_path, 0o640)


def extract_archive(archive_path: Path, destination: Path) -> None:
    """Extract a gzip tarball into *destination*."""
    destination.mkdir(parents=True, exist_ok=True)
    _run_tar([_tar_bin(), "-xzf", str(archive_path), "-C", str(destination)])


def compute_checksum(path: Path) -> str:
    """Return the SHA-256 checksum for *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksum_path_for(archive_path: Path) -> Path:
    """Return the ``<archive>.sha256`` sidecar path."""
    return archive_path.with_name(f"{archive_path.name}.sha256")


def write_checksum_file(archive_path: Path, checksum: str) -> Path:
    """Write ``<archive>.sha256`` and return the checksum path."""
    checksum_path = checksum_path_for(archive_path)
    checksum_path.write_text(f"{checksum}  {archive_path.name}\n", encoding="utf-8")
    os.chmod(checksum_path, 0o640)
    return checksum_path


def read_checksum_file(archive_path: Path) -> str | None:
    """Return the recorded checksum for *archive_path* if a sidecar exists."""
    checksum_path = checksum_path_for(archive_path)
    if not checksum_path.exists():
        return None
    text = checksum_path.read_text(encoding="utf-8").strip()
    return text.split()[0] if text else None


__all__ = [
    "ArchiveError",
    "checksum_path_for",
    "compute_checksum",
    "create_archive",
    "extract_archive",
    "read_checksum_file",
    "write_checksum_file",
]
