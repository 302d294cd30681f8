"""Systemd provider for managing instance service units."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..config import RuntimeConfig
from ..errors import ExternalCommandError
from ..instance import SERVICE_PREFIX, ManagedInstance
from ..templates import TemplateEngine

UNIT_TEMPLATE = "systemd/service.j2"
UNIT_SUFFIX = ".service"
WANTS_DIR = "multi-user.target.wants"


class SystemdError(ExternalCommandError):
    """Raised when systemd operations fail."""


def unit_environment(instance: ManagedInstance, runtime: RuntimeConfig) -> list[str]:
    """Return ``KEY=value`` pairs exported to the application."""
    return [
        "ASPNETCORE_ENVIRONMENT=Production",
        f"ASPNETCORE_URLS={instance.listen_url}",
        f"DOTNET_ROOT={runtime.dotnet_root}",
        "DOTNET_PRINT_TELEMETRY_MESSAGE=false",
        f"JMAKA_STORAGE_ROOT={instance.storage_dir}",
        f"JMAKA_BASE_PATH={instance.base_path_env}",
    ]


@dataclass(slots=True)
class SystemdProvider:
    """Render and manage systemd service units for jmaka instances."""

    templates: TemplateEngine
    systemd_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"

    def unit_name(self, instance: str) -> str:
        """Return the systemd unit name for *instance*."""
        safe = instance.replace("/", "-")
        return f"{SERVICE_PREFIX}-{safe}{UNIT_SUFFIX}"

    def unit_path(self, instance: str) -> Path:
        """Return the full path for the instance unit file."""
        return self.systemd_dir / self.unit_name(instance)

    def unit_context(
        self,
        instance: ManagedInstance,
        runtime: RuntimeConfig,
        *,
        service_user: str,
    ) -> dict[str, object]:
        """Build the template context for *instance*."""
        return {
            "instance_name": instance.name,
            "working_directory": str(instance.app_dir),
            "exec_start": f"{runtime.dotnet_bin} {instance.app_dir / runtime.entrypoint}",
            "restart_policy": "always",
            "restart_sec": 10,
            "service_user": service_user,
            "environment": unit_environment(instance, runtime),
        }

    def render_unit(self, instance: str, context: dict[str, object]) -> bool:
        """Render the unit file for *instance*; reload the daemon when it changed."""
        path = self.unit_path(instance)
        changed = self.templates.render_to_path(UNIT_TEMPLATE, path, context, mode=0o644)
        if changed:
            self.daemon_reload()
        return changed

    def managed_units(self) -> list[str]:
        """Return instance names that have a ``jmaka-*.service`` unit file."""
        if not self.systemd_dir.is_dir():
            return []
        head = f"{SERVICE_PREFIX}-"
        return [
            path.name.removeprefix(head).removesuffix(UNIT_SUFFIX)
            for path in sorted(self.systemd_dir.glob(f"{head}*{UNIT_SUFFIX}"))
            if path.is_file() or path.is_symlink()
        ]

    def _verb(self, verb: str, instance: str) -> subprocess.CompletedProcess[str]:
        return self._systemctl(verb, self.unit_name(instance))

    def enable(self, instance: str) -> subprocess.CompletedProcess[str]:
        return self._verb("enable", instance)

    def disable(self, instance: str) -> subprocess.CompletedProcess[str]:
        return self._verb("disable", instance)

    def start(self, instance: str) -> subprocess.CompletedProcess[str]:
        return self._verb("start", instance)

    def stop(self, instance: str) -> subprocess.CompletedProcess[str]:
        return self._verb("stop", instance)

    def restart(self, instance: str) -> subprocess.CompletedProcess[str]:
        return self._verb("restart", instance)

    def status(self, instance: str) -> subprocess.CompletedProcess[str]:
        """Run ``systemctl status``; a non-zero exit (inactive unit) is returned, not raised."""
        return self._systemctl("status", self.unit_name(instance), check=False)

    def logs(
        self,
        instance: str,
        *,
        lines: int | None = None,
        since: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Read the unit's journal without a pager."""
        args = ["--unit", self.unit_name(instance), "--no-pager"]
        if lines is not None:
            args += ["--lines", str(lines)]
        if since is not None:
            args += ["--since", since]
        return self._run_command(
            [self.journalctl_bin, *args],
            check=True,
            error_prefix=f"{self.journalctl_bin} --unit {self.unit_name(instance)}",
        )

    def stop_quietly(self, instance: str) -> bool:
        """Stop and disable *instance*; return False when systemd does not know the unit."""
        for verb in ("stop", "disable"):
            try:
                self._verb(verb, instance)
            except SystemdError as exc:
                if not _is_missing_unit(exc):
                    raise
                if verb == "stop":
                    return False
        return True

    def remove(self, instance: str, *, reload: bool = True) -> bool:
        """Delete the unit file and its ``multi-user.target.wants`` link."""
        unit = self.unit_path(instance)
        (self.systemd_dir / WANTS_DIR / unit.name).unlink(missing_ok=True)
        if not (unit.exists() or unit.is_symlink()):
            return False
        unit.unlink()
        if reload:
            self.daemon_reload()
        return True

    def daemon_reload(self) -> None:
        """Run ``systemctl daemon-reload``; hosts without systemctl are skipped."""
        try:
            self._systemctl("daemon-reload")
        except SystemdError as exc:
            if "not found" not in str(exc).lower():
                raise

    def _systemctl(
        self,
        command: str,
        unit_or_path: str | Path | None = None,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        argv = [self.systemctl_bin, command]
        if unit_or_path is not None:
            argv.append(str(unit_or_path))
        return self._run_command(argv, check=check, error_prefix=" ".join(argv[:2]))

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603
                list(args), capture_output=True, text=True, check=False
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            output = (result.stderr or "").strip() or (result.stdout or "").strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {output}")
        return result


def _is_missing_unit(exc: SystemdError) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in ("not loaded", "not found", "does not exist"))


__all__ = ["SystemdError", "SystemdProvider", "unit_environment"]
