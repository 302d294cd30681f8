"""Remove one instance, or every instance, and all nginx wiring for them.

The sweep works from what is on disk (unit files, instance directories,
include lines) rather than only from the registry, so it also cleans up
installs the registry never heard about.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .config import AppConfig
from .errors import PreconditionError
from .instance import slugify
from .logging import OperationScope
from .materialize import BundleMaterializer
from .providers.nginx import NginxProvider
from .providers.systemd import SystemdProvider
from .state.registry import StateRegistry
from .vhost.mutator import LinePredicate, VhostMutator, managed_include_pattern

CONFIRM_TOKEN = "DELETE"


@dataclass(slots=True)
class SweepReport:
    """What an uninstall removed."""

    scope: str
    units_removed: list[str] = field(default_factory=list)
    directories_removed: list[Path] = field(default_factory=list)
    files_modified: int = 0
    snippets_removed: list[Path] = field(default_factory=list)
    sites_removed: list[Path] = field(default_factory=list)
    registry_cleared: int = 0
    backups: list[Path] = field(default_factory=list)
    nginx_reloaded: bool = False
    warnings: list[str] = field(default_factory=list)


def remove_tree(path: Path) -> None:
    """Delete *path* even when it contains read-only directories."""
    if path.is_symlink() or not path.is_dir():
        path.unlink(missing_ok=True)
        return
    BundleMaterializer.clear_directory(path)
    path.rmdir()


@dataclass(slots=True)
class UninstallSweep:
    """Stop services, delete data, and strip managed nginx includes."""

    config: AppConfig
    systemd: SystemdProvider
    nginx: NginxProvider
    registry: StateRegistry

    def run(
        self,
        name: str | None = None,
        *,
        confirm: str | None = None,
        op: OperationScope | None = None,
    ) -> SweepReport:
        """Sweep one instance (*name*) or, with ``confirm="DELETE"``, all of them."""
        slug = slugify(name) if name is not None else None
        if slug is None and confirm != CONFIRM_TOKEN:
            raise PreconditionError(
                f"Removing every instance requires the confirmation token '{CONFIRM_TOKEN}'."
            )
        report = SweepReport(scope=slug or "all")
        registered = {entry["name"]: entry for entry in self.registry.list_instances()}
        if slug is not None:
            registered = {key: value for key, value in registered.items() if key == slug}

        self._remove_units(slug, registered, report)
        _step(op, "uninstall.units", report.units_removed)

        self._remove_data(slug, registered, report)
        _step(op, "uninstall.data", report.directories_removed)

        names = [slug] if slug is not None else sorted(registered)
        for instance in names:
            site = self.nginx.site_path(instance)
            if site.exists() or self.nginx.enabled_path(instance).is_symlink():
                self.nginx.remove(instance)
                report.sites_removed.append(site)

        pattern = managed_include_pattern(self.config.nginx.snippets_dir, slug)
        mutator = VhostMutator.for_nginx(self.config.nginx)
        report.files_modified = self._remove_includes(
            mutator, registered, lambda line: pattern.match(line) is not None
        )
        report.backups.extend(mutator.backups)
        _step(op, "uninstall.includes", {"files": report.files_modified})

        report.snippets_removed = self.nginx.remove_snippets(slug)
        _step(op, "uninstall.snippets", report.snippets_removed)

        if slug is None:
            report.registry_cleared = self.registry.clear_instances()
        elif slug in registered:
            self.registry.remove_instance(slug)
            report.registry_cleared = 1

        if self.nginx.is_installed():
            self.nginx.apply()
            report.nginx_reloaded = True
        else:
            report.warnings.append("nginx not installed; skipped self-check and reload.")
        return report

    def _remove_units(
        self, slug: str | None, registered: dict[str, dict], report: SweepReport
    ) -> None:
        if slug is not None:
            units = [slug]
        else:
            units = sorted(set(self.systemd.managed_units()) | set(registered))
        for unit in units:
            self.systemd.stop_quietly(unit)
            if self.systemd.remove(unit, reload=False):
                report.units_removed.append(self.systemd.unit_name(unit))
        self.systemd.daemon_reload()

    def _remove_includes(
        self,
        mutator: VhostMutator,
        registered: dict[str, dict],
        predicate: LinePredicate,
    ) -> int:
        """Strip managed includes from the vhost tree and from recorded vhost files.

        A vhost recorded at install time is edited even when its name has no
        config extension (Debian's ``sites-available/default``).
        """
        modified = mutator.remove_from_tree(self.config.nginx.vhost_directories, predicate)
        recorded = {
            Path(str(entry["vhost_path"])).resolve()
            for entry in registered.values()
            if entry.get("vhost_path")
        }
        # Files the tree walk already cleaned have nothing left to match.
        for path in sorted(recorded):
            if path.is_file() and mutator.remove_lines(path, predicate):
                modified += 1
        return modified

    def _remove_data(
        self, slug: str | None, registered: dict[str, dict], report: SweepReport
    ) -> None:
        targets: list[Path] = []
        for entry in registered.values():
            base = entry.get("base_directory")
            if base:
                targets.append(Path(str(base)))
        base_root = self.config.base_root
        if slug is not None:
            targets.append(base_root / slug)
        elif base_root.is_dir():
            targets.extend(sorted(base_root.iterdir()))
        seen: set[Path] = set()
        for path in targets:
            if path in seen or not (path.exists() or path.is_symlink()):
                continue
            seen.add(path)
            remove_tree(path)
            report.directories_removed.append(path)


def _step(op: OperationScope | None, name: str, detail: object = None) -> None:
    if op is not None:
        op.add_step(name, detail=detail)


__all__ = ["CONFIRM_TOKEN", "SweepReport", "UninstallSweep", "remove_tree"]
