"""Find the nginx virtual-host file that serves a domain."""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import ConfigUnparsableError, NotFoundError
from .parser import declares_domain, read_text, scan_server_blocks

BACKUP_MARKER = ".bak."


@dataclass(frozen=True, slots=True)
class VhostCandidate:
    """A vhost file that declares the requested domain."""

    path: Path
    score: int
    directory: Path

    @property
    def label(self) -> str:
        """Short description of the score."""
        return {2: "443 ssl", 1: "443"}.get(self.score, "plain")


def _score(text: str, path: Path) -> int:
    """Score the whole file: 2 for TLS on 443, 1 for plain 443, else 0."""
    try:
        blocks = scan_server_blocks(text, path)
    except ConfigUnparsableError:
        return 0
    if any(block.listens_tls() for block in blocks):
        return 2
    if any(block.listens_443() for block in blocks):
        return 1
    return 0


@dataclass(slots=True)
class VhostLocator:
    """Scan vhost directories for files declaring a domain."""

    skip_hidden: bool = True
    _seen: set[Path] = field(default_factory=set, init=False, repr=False)

    def candidates(self, domain: str, directories: Iterable[Path]) -> list[VhostCandidate]:
        """Return ranked candidates for *domain* (best first).

        Directories are searched in the given order; a file reachable from
        several directories is reported once, where it is first seen. The
        sort is stable so equal scores keep discovery order.
        """
        self._seen = set()
        found: list[VhostCandidate] = []
        for directory in directories:
            for path in self._iter_files(directory):
                try:
                    text = read_text(path)
                except OSError:
                    continue
                if not any(declares_domain(line, domain) for line in text.splitlines()):
                    continue
                found.append(
                    VhostCandidate(path=path, score=_score(text, path), directory=directory)
                )
        found.sort(key=lambda candidate: -candidate.score)
        return found

    def locate(self, domain: str, directories: Iterable[Path]) -> Path:
        """Return the best vhost file for *domain* or raise :class:`NotFoundError`."""
        dirs = list(directories)
        ranked = self.candidates(domain, dirs)
        if not ranked:
            searched = ", ".join(str(directory) for directory in dirs)
            raise NotFoundError(f"No nginx vhost declares server_name '{domain}' in {searched}.")
        return ranked[0].path

    def _iter_files(self, directory: Path) -> Iterator[Path]:
        if not directory.is_dir():
            return
        for entry in sorted(directory.iterdir()):
            name = entry.name
            if BACKUP_MARKER in name:
                continue
            if self.skip_hidden and name.startswith("."):
                continue
            if not entry.is_file():
                continue
            try:
                resolved = entry.resolve()
            except OSError:
                continue
            if resolved in self._seen:
                continue
            self._seen.add(resolved)
            yield entry


__all__ = ["VhostCandidate", "VhostLocator"]
