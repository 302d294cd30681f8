"""Nginx provider: snippet and site files, self-check, and graceful reload."""
from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..config import NginxConfig
from ..errors import ExternalCommandError
from ..templates import TemplateEngine
from ..vhost.snippet import (
    LEGACY_SNIPPET_SUFFIX,
    SNIPPET_PREFIX,
    SNIPPET_SUFFIX,
    managed_directive,
    snippet_path,
)

SITE_TEMPLATE = "nginx/site.conf.j2"


class NginxError(ExternalCommandError):
    """nginx rejected its configuration or could not be run."""


@dataclass(slots=True)
class NginxProvider:
    """Manage jmakactl-owned nginx files and drive the nginx binary."""

    templates: TemplateEngine
    config: NginxConfig

    # Snippets
    def snippet_path(self, instance: str) -> Path:
        """Return the location snippet path for *instance*."""
        return snippet_path(self.config.snippets_dir, instance)

    def include_directive(self, instance: str) -> str:
        """Return the ``include`` line for *instance*'s snippet."""
        return managed_directive(self.snippet_path(instance))

    def write_snippet(self, instance: str, content: str) -> Path:
        """Write (always overwrite) the snippet for *instance*."""
        destination = self.snippet_path(instance)
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(destination.parent), prefix=f".{destination.name}."
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)
        return destination

    def remove_snippets(self, instance: str | None = None) -> list[Path]:
        """Delete managed snippets (one instance or all), including legacy names."""
        directory = self.config.snippets_dir
        if not directory.is_dir():
            return []
        stem = instance if instance is not None else "*"
        removed: list[Path] = []
        for suffix in (SNIPPET_SUFFIX, LEGACY_SNIPPET_SUFFIX):
            for path in sorted(directory.glob(f"{SNIPPET_PREFIX}{stem}{suffix}")):
                if path in removed or not (path.is_file() or path.is_symlink()):
                    continue
                path.unlink()
                removed.append(path)
        return removed

    # Sites written by jmakactl (write-vhost)
    def site_name(self, instance: str) -> str:
        """Return the canonical site file name for *instance*."""
        safe = instance.replace("/", "-")
        return f"{SNIPPET_PREFIX}{safe}.conf"

    def site_path(self, instance: str) -> Path:
        """Location of the generated site file in sites-available."""
        return self.config.sites_available / self.site_name(instance)

    def enabled_path(self, instance: str) -> Path:
        """Location of the sites-enabled link for *instance*."""
        return self.config.sites_enabled / self.site_name(instance)

    def render_site(self, instance: str, context: Mapping[str, object]) -> bool:
        """Render the TLS vhost for *instance*; return True when it changed."""
        destination = self.site_path(instance)
        destination.parent.mkdir(parents=True, exist_ok=True)
        return self.templates.render_to_path(SITE_TEMPLATE, destination, context, mode=0o644)

    def enable(self, instance: str) -> None:
        """Link the generated site into sites-enabled."""
        source = self.site_path(instance)
        target = self.enabled_path(instance)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() or target.is_symlink():
            try:
                if target.resolve() == source.resolve():
                    return
            except OSError:
                # Unresolvable symlink; replace it with a fresh one.
                pass
            target.unlink()
        target.symlink_to(source)

    def disable(self, instance: str) -> None:
        """Drop the sites-enabled link for *instance*."""
        self.enabled_path(instance).unlink(missing_ok=True)

    def remove(self, instance: str) -> None:
        """Delete the generated site and its sites-enabled link."""
        self.disable(instance)
        self.site_path(instance).unlink(missing_ok=True)

    def is_enabled(self, instance: str) -> bool:
        """True when sites-enabled links to the generated site."""
        target = self.enabled_path(instance)
        if not target.is_symlink():
            return False
        try:
            return target.resolve() == self.site_path(instance).resolve()
        except OSError:
            return False

    # Binary
    def is_installed(self) -> bool:
        """Return True when the nginx binary can be found."""
        return shutil.which(self.config.nginx_bin) is not None

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``nginx -t``; a missing binary is a failure too."""
        return self._run_nginx(["-t"])

    def reload(self) -> subprocess.CompletedProcess[str]:
        """Ask the running nginx to reload its configuration."""
        return self._run_nginx(["-s", "reload"])

    def apply(self) -> subprocess.CompletedProcess[str]:
        """Self-check then reload; never reloads a configuration that fails ``-t``."""
        self.test_config()
        return self.reload()

    def _run_nginx(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.config.nginx_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise NginxError(f"{self.config.nginx_bin} not found; is nginx installed?") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise NginxError(
                f"{self.config.nginx_bin} {' '.join(args)} failed "
                f"(exit {result.returncode}): {message}"
            )
        return result


__all__ = ["NginxError", "NginxProvider"]
