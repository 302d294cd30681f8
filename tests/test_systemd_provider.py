"""Tests for the systemd provider."""
from __future__ import annotations

from pathlib import Path

import pytest

from jmakactl.config import RuntimeConfig
from jmakactl.instance import ManagedInstance
from jmakactl.providers.systemd import SystemdError, SystemdProvider, unit_environment
from jmakactl.templates import TemplateEngine


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _make_provider(tmp_path: Path) -> SystemdProvider:
    systemd_dir = tmp_path / "systemd"
    systemd_dir.mkdir(parents=True, exist_ok=True)
    return SystemdProvider(
        templates=TemplateEngine.with_overrides(None),
        systemd_dir=systemd_dir,
        systemctl_bin="systemctl",  # Not invoked; monkeypatched in tests.
    )


@pytest.fixture
def provider(tmp_path: Path) -> SystemdProvider:
    """Return a provider instance scoped to the temporary path."""
    return _make_provider(tmp_path)


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, str | None, bool]]:
    """Record systemctl invocations instead of running them."""
    captured: list[tuple[str, str | None, bool]] = []

    def fake_systemctl(
        self: SystemdProvider,
        command: str,
        unit_or_path: str | Path | None = None,
        *,
        check: bool = True,
    ) -> DummyResult:
        captured.append((command, unit_or_path, check))
        return DummyResult(returncode=0)

    monkeypatch.setattr(SystemdProvider, "_systemctl", fake_systemctl)
    return captured


def _instance(tmp_path: Path, **overrides: object) -> ManagedInstance:
    values: dict[str, object] = {
        "name": "alpha",
        "port": 5005,
        "base_directory": tmp_path / "www" / "alpha",
        "path_prefix": "/alpha/",
    }
    values.update(overrides)
    return ManagedInstance(**values)  # type: ignore[arg-type]


def test_unit_environment_exports_runtime_and_paths(tmp_path: Path) -> None:
    """The unit exports the listen URL, storage root and base path."""
    runtime = RuntimeConfig(dotnet_root=Path("/opt/dotnet"))
    env = unit_environment(_instance(tmp_path), runtime)

    assert "ASPNETCORE_ENVIRONMENT=Production" in env
    assert "ASPNETCORE_URLS=http://127.0.0.1:5005" in env
    assert "DOTNET_ROOT=/opt/dotnet" in env
    assert f"JMAKA_STORAGE_ROOT={tmp_path / 'www' / 'alpha' / 'storage'}" in env
    assert "JMAKA_BASE_PATH=/alpha" in env

    stripped = unit_environment(_instance(tmp_path, mount_mode="strip-prefix"), runtime)
    assert "JMAKA_BASE_PATH=/" in stripped


def test_render_unit_writes_file_and_reload(
    tmp_path: Path,
    provider: SystemdProvider,
    calls: list[tuple[str, str | None, bool]],
) -> None:
    """Rendering writes the unit file and triggers a daemon reload once."""
    instance = _instance(tmp_path)
    context = provider.unit_context(instance, RuntimeConfig(), service_user="jmaka")

    changed = provider.render_unit("alpha", context)

    unit_path = provider.unit_path("alpha")
    assert changed is True
    assert unit_path.name == "jmaka-alpha.service"
    contents = unit_path.read_text(encoding="utf-8")
    assert "Description=Jmaka API (alpha)" in contents
    assert f"WorkingDirectory={instance.app_dir}" in contents
    assert f"ExecStart=/opt/dotnet/dotnet {instance.app_dir / 'Jmaka.Api.dll'}" in contents
    assert "Restart=always" in contents
    assert "User=jmaka" in contents
    assert "Environment=JMAKA_BASE_PATH=/alpha" in contents
    assert calls == [("daemon-reload", None, True)]

    calls.clear()
    assert provider.render_unit("alpha", context) is False
    assert calls == []


@pytest.mark.parametrize("command", ["enable", "disable", "start", "stop", "restart"])
def test_unit_management_calls_systemctl(
    provider: SystemdProvider,
    calls: list[tuple[str, str | None, bool]],
    command: str,
) -> None:
    """Unit verbs delegate to systemctl with the unit name."""
    getattr(provider, command)("alpha")

    assert calls == [(command, "jmaka-alpha.service", True)]


def test_status_uses_non_check(
    provider: SystemdProvider,
    calls: list[tuple[str, str | None, bool]],
) -> None:
    """Status calls systemctl with ``check=False``."""
    provider.status("alpha")

    assert calls == [("status", "jmaka-alpha.service", False)]


def test_logs_invokes_journalctl(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """Logs helper shells out to journalctl with expected arguments."""
    captured: list[list[str]] = []

    def fake_run(
        self: SystemdProvider,
        args: list[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> DummyResult:
        captured.append(list(args))
        return DummyResult(stdout="log")

    monkeypatch.setattr(SystemdProvider, "_run_command", fake_run)

    result = provider.logs("alpha", lines=50, since="1 hour ago")

    assert result.stdout == "log"
    assert captured == [
        [
            "journalctl",
            "--unit",
            "jmaka-alpha.service",
            "--no-pager",
            "--lines",
            "50",
            "--since",
            "1 hour ago",
        ]
    ]


def test_managed_units_lists_jmaka_units(provider: SystemdProvider) -> None:
    """Only ``jmaka-*.service`` files are reported, by instance name."""
    for name in ("jmaka-alpha.service", "jmaka-beta.service", "nginx.service", "jmaka.timer"):
        (provider.systemd_dir / name).write_text("", encoding="utf-8")

    assert provider.managed_units() == ["alpha", "beta"]


def test_stop_quietly_tolerates_missing_unit(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """A unit systemd does not know is not an error."""

    def fake_systemctl(self: SystemdProvider, command: str, *args: object, **kwargs: object):
        raise SystemdError(f"systemctl {command} failed (exit 5): Unit jmaka-x.service not loaded.")

    monkeypatch.setattr(SystemdProvider, "_systemctl", fake_systemctl)

    assert provider.stop_quietly("x") is False


def test_stop_quietly_propagates_other_failures(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """Real failures still surface."""

    def fake_systemctl(self: SystemdProvider, command: str, *args: object, **kwargs: object):
        raise SystemdError("systemctl stop failed (exit 1): Access denied")

    monkeypatch.setattr(SystemdProvider, "_systemctl", fake_systemctl)

    with pytest.raises(SystemdError, match="Access denied"):
        provider.stop_quietly("x")


def test_remove_deletes_unit_and_wants_link(
    provider: SystemdProvider,
    calls: list[tuple[str, str | None, bool]],
) -> None:
    """Removal deletes the unit file and the multi-user wants symlink."""
    unit = provider.unit_path("alpha")
    unit.write_text("[Unit]\n", encoding="utf-8")
    wants = provider.systemd_dir / "multi-user.target.wants"
    wants.mkdir()
    (wants / unit.name).symlink_to(unit)

    assert provider.remove("alpha") is True
    assert not unit.exists()
    assert not (wants / unit.name).is_symlink()
    assert calls == [("daemon-reload", None, True)]

    calls.clear()
    assert provider.remove("alpha", reload=False) is False
    assert calls == []


def test_missing_systemctl_raises(tmp_path: Path) -> None:
    """A missing systemctl binary is reported as SystemdError."""
    provider = SystemdProvider(
        templates=TemplateEngine.with_overrides(None),
        systemd_dir=tmp_path,
        systemctl_bin=str(tmp_path / "no-such-systemctl"),
    )

    with pytest.raises(SystemdError, match="not found"):
        provider.start("alpha")
