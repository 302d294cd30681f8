"""Tests for the end-to-end install pipeline with external tools stubbed."""
from __future__ import annotations

import io
import subprocess
import tarfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from jmakactl import service_accounts
from jmakactl.config import AppConfig
from jmakactl.errors import NotFoundError, PreconditionError, ValidationError
from jmakactl.installer import (
    Installer,
    InstallReport,
    InstallRequest,
    NginxAction,
    listen_directive,
)
from jmakactl.materialize import BundleMaterializer
from jmakactl.ports import PortAllocator
from jmakactl.providers.nginx import NginxError, NginxProvider
from jmakactl.providers.systemd import SystemdProvider
from jmakactl.state import StateRegistry
from jmakactl.templates import TemplateEngine
from jmakactl.uninstall import UninstallSweep
from jmakactl.vhost import InsertOutcome, VhostCandidate


class DummyResult:
    """Stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class Harness:
    """Installer wired to temporary directories plus recorded tool calls."""

    config: AppConfig
    installer: Installer
    registry: StateRegistry
    bundle: Path
    systemctl: list[tuple[str, str | None]] = field(default_factory=list)
    nginx: list[tuple[str, ...]] = field(default_factory=list)
    accounts: list[list[str]] = field(default_factory=list)
    listening: set[int] = field(default_factory=set)
    nginx_failure: str | None = None


def _raise_key_error(*args: object, **kwargs: object) -> None:
    raise KeyError


def _bundle(path: Path) -> Path:
    with tarfile.open(path, "w:gz") as handle:
        data = b"dll"
        info = tarfile.TarInfo("Jmaka.Api.dll")
        info.size = len(data)
        info.mode = 0o644
        handle.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def harness(
    app_config: AppConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Harness:
    """Return an installer whose systemctl, nginx, ss and useradd are recorded."""
    templates = TemplateEngine.with_overrides(None)
    registry = StateRegistry(app_config.registry_dir)
    state = Harness(
        config=app_config,
        installer=None,  # type: ignore[arg-type]
        registry=registry,
        bundle=_bundle(tmp_path / "jmaka.tar.gz"),
    )

    def fake_systemctl(
        self: SystemdProvider,
        command: str,
        unit_or_path: str | Path | None = None,
        *,
        check: bool = True,
    ) -> DummyResult:
        state.systemctl.append((command, unit_or_path))
        return DummyResult()

    def fake_nginx(self: NginxProvider, args: Sequence[str]) -> DummyResult:
        state.nginx.append(tuple(args))
        if state.nginx_failure and args[0] == "-t":
            raise NginxError(state.nginx_failure)
        return DummyResult()

    def fake_ss(command: list[str]) -> subprocess.CompletedProcess[str]:
        lines = [f"LISTEN 0 511 127.0.0.1:{port} 0.0.0.0:*" for port in sorted(state.listening)]
        return subprocess.CompletedProcess(command, 0, stdout="\n".join(lines), stderr="")

    def fake_account_runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        state.accounts.append(command)
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    monkeypatch.setattr(SystemdProvider, "_systemctl", fake_systemctl)
    monkeypatch.setattr(NginxProvider, "_run_nginx", fake_nginx)
    monkeypatch.setattr(service_accounts.pwd, "getpwnam", _raise_key_error)
    monkeypatch.setattr(service_accounts.grp, "getgrnam", _raise_key_error)
    monkeypatch.setattr(service_accounts.grp, "getgrgid", _raise_key_error)

    state.installer = Installer(
        config=app_config,
        templates=templates,
        systemd=SystemdProvider(templates=templates, systemd_dir=app_config.systemd.unit_dir),
        nginx=NginxProvider(templates=templates, config=app_config.nginx),
        ports=PortAllocator(ports=app_config.ports, runner=fake_ss),
        registry=registry,
        materializer=BundleMaterializer(
            service_user=app_config.service_user,
            service_group=app_config.service_group,
            manage_ownership=False,
        ),
        account_runner=fake_account_runner,
    )
    return state


def _request(harness: Harness, **overrides: object) -> InstallRequest:
    values: dict[str, object] = {"name": "Demo", "port": 5005, "bundle": harness.bundle}
    values.update(overrides)
    return InstallRequest(**values)  # type: ignore[arg-type]


def _vhost(harness: Harness, name: str = "demo.conf", domain: str = "demo.example.com") -> Path:
    path = harness.config.nginx.sites_enabled / name
    path.write_text(
        f"server {{\n    listen 443 ssl;\n    server_name {domain};\n\n"
        "    location / {\n        return 404;\n    }\n}\n",
        encoding="utf-8",
    )
    return path


def test_install_without_nginx(harness: Harness) -> None:
    """A plain install materializes, writes the unit, starts it, and registers."""
    report = harness.installer.install(_request(harness))

    instance = report.instance
    assert instance.name == "demo"
    assert instance.base_directory == harness.config.base_root / "demo"
    assert (instance.app_dir / "Jmaka.Api.dll").read_bytes() == b"dll"
    assert instance.storage_dir.is_dir()
    unit = harness.config.systemd.unit_dir / "jmaka-demo.service"
    contents = unit.read_text(encoding="utf-8")
    assert "Environment=ASPNETCORE_URLS=http://127.0.0.1:5005" in contents
    assert f"Environment=JMAKA_STORAGE_ROOT={instance.storage_dir}" in contents
    assert report.unit_changed is True
    assert harness.systemctl == [
        ("daemon-reload", None),
        ("enable", "jmaka-demo.service"),
        ("restart", "jmaka-demo.service"),
    ]
    assert harness.accounts[0][0] == "useradd"
    assert harness.nginx == []
    assert report.snippet is None
    assert any("ASP.NET runtime not found" in warning for warning in report.warnings)

    entry = harness.registry.get_instance("demo")
    assert entry is not None
    assert entry["port"] == 5005
    assert entry["nginx_action"] == "none"
    assert entry["unit"] == "jmaka-demo.service"


def test_reinstall_stops_previous_unit(harness: Harness) -> None:
    """Reinstalling stops the running unit first and keeps the unchanged unit file."""
    harness.installer.install(_request(harness))
    harness.systemctl.clear()

    report = harness.installer.install(_request(harness))

    assert report.unit_changed is False
    assert harness.systemctl == [
        ("stop", "jmaka-demo.service"),
        ("disable", "jmaka-demo.service"),
        ("enable", "jmaka-demo.service"),
        ("restart", "jmaka-demo.service"),
    ]
    assert len(harness.registry.list_instances()) == 1


def test_port_in_use_is_refused_before_changes(harness: Harness) -> None:
    """A busy port stops the install before anything is written."""
    harness.listening.add(5005)

    with pytest.raises(PreconditionError, match="5005"):
        harness.installer.install(_request(harness))

    assert not (harness.config.base_root / "demo").exists()
    assert harness.registry.list_instances() == []


def test_missing_bundle_is_reported(harness: Harness, tmp_path: Path) -> None:
    """A missing bundle raises NotFoundError."""
    with pytest.raises(NotFoundError, match="bundle"):
        harness.installer.install(_request(harness, bundle=tmp_path / "absent.tar.gz"))


@pytest.mark.parametrize(
    "overrides",
    [
        {"port": 80},
        {"name": "!!!"},
        {"nginx_action": NginxAction.AUTO},
        {"nginx_action": NginxAction.WRITE_VHOST, "domain": "demo.example.com"},
        {"path_prefix": "/../x/"},
    ],
)
def test_invalid_requests_fail_without_side_effects(
    harness: Harness, overrides: dict[str, object]
) -> None:
    """Validation errors surface before any command runs."""
    with pytest.raises(ValidationError):
        harness.installer.install(_request(harness, **overrides))

    assert harness.systemctl == []
    assert harness.accounts == []


def test_print_action_returns_snippet_only(harness: Harness) -> None:
    """The print action renders the snippet without writing nginx files."""
    report = harness.installer.install(
        _request(harness, nginx_action=NginxAction.PRINT, path_prefix="/demo/")
    )

    assert report.snippet is not None
    assert "location /demo/ {" in report.snippet
    assert report.snippet_path is None
    assert list(harness.config.nginx.snippets_dir.iterdir()) == []
    assert harness.nginx == []


def test_write_snippet_action(harness: Harness) -> None:
    """write-snippet writes the file and reloads only when asked."""
    report = harness.installer.install(_request(harness, nginx_action=NginxAction.WRITE_SNIPPET))

    expected = harness.config.nginx.snippets_dir / "jmaka-demo.location.conf"
    assert report.snippet_path == expected
    assert expected.read_text(encoding="utf-8") == report.snippet
    assert report.include_line == f"include {expected};"
    assert harness.nginx == []
    assert harness.registry.get_instance("demo")["snippet_path"] == str(expected)

    reloaded = harness.installer.install(
        _request(harness, nginx_action=NginxAction.WRITE_SNIPPET, reload_nginx=True)
    )
    assert reloaded.nginx_reloaded is True
    assert harness.nginx == [("-t",), ("-s", "reload")]


def test_auto_action_inserts_include_and_reloads(harness: Harness) -> None:
    """auto finds the vhost, inserts the include, and applies the config."""
    vhost = _vhost(harness)

    report = harness.installer.install(
        _request(harness, nginx_action=NginxAction.AUTO, domain="demo.example.com")
    )

    assert report.insert is not None
    assert report.insert.outcome is InsertOutcome.INSERTED
    assert report.vhost_path == vhost
    assert report.include_line in vhost.read_text(encoding="utf-8")
    assert report.backups and report.backups[0].name.startswith("demo.conf.bak.")
    assert report.backups[0].parent == harness.config.nginx.root / "jmaka-backups"
    assert report.nginx_reloaded is True
    assert harness.nginx == [("-t",), ("-s", "reload")]
    assert harness.registry.get_instance("demo")["vhost_path"] == str(vhost)

    again = harness.installer.install(
        _request(harness, nginx_action=NginxAction.AUTO, domain="demo.example.com")
    )
    assert again.insert is not None
    assert again.insert.outcome is InsertOutcome.ALREADY_PRESENT
    assert vhost.read_text(encoding="utf-8").count(report.include_line) == 1


def test_auto_action_reports_backup_on_failed_check(harness: Harness) -> None:
    """A failing nginx -t names the backup and skips the reload."""
    _vhost(harness)
    harness.nginx_failure = "nginx: [emerg] unexpected end of file"

    with pytest.raises(NginxError, match="previous vhost saved as"):
        harness.installer.install(
            _request(harness, nginx_action=NginxAction.AUTO, domain="demo.example.com")
        )

    assert harness.nginx == [("-t",)]


def test_auto_action_without_vhost(harness: Harness) -> None:
    """No vhost declaring the domain is a NotFoundError."""
    with pytest.raises(NotFoundError, match="demo.example.com"):
        harness.installer.install(
            _request(harness, nginx_action=NginxAction.AUTO, domain="demo.example.com")
        )


def test_auto_action_uses_chooser(harness: Harness) -> None:
    """An interactive chooser sees every candidate and decides the file."""
    _vhost(harness, "a.conf")
    second = _vhost(harness, "b.conf")
    seen: list[list[VhostCandidate]] = []

    def choose(candidates: list[VhostCandidate]) -> Path:
        seen.append(candidates)
        return candidates[-1].path

    harness.installer.vhost_chooser = choose
    report = harness.installer.install(
        _request(harness, nginx_action=NginxAction.AUTO, domain="demo.example.com")
    )

    assert [item.path.name for item in seen[0]] == ["a.conf", "b.conf"]
    assert report.vhost_path == second
    assert "jmaka-demo" not in (harness.config.nginx.sites_enabled / "a.conf").read_text(
        encoding="utf-8"
    )


def test_write_vhost_action(harness: Harness, tmp_path: Path) -> None:
    """write-vhost renders a TLS site that includes the snippet."""
    cert = tmp_path / "cert.pem"
    cert.write_text("cert", encoding="utf-8")

    report = harness.installer.install(
        _request(
            harness,
            nginx_action=NginxAction.WRITE_VHOST,
            domain="demo.example.com",
            ssl_cert=cert,
            ssl_key=tmp_path / "missing.key",
            tls_proxy_protocol=True,
            enable_site=True,
        )
    )

    site = harness.config.nginx.sites_available / "jmaka-demo.conf"
    assert report.site_path == site
    contents = site.read_text(encoding="utf-8")
    assert "server_name demo.example.com;" in contents
    assert "listen 443 ssl http2 proxy_protocol;" in contents
    assert f"include {report.snippet_path};" in contents
    assert (harness.config.nginx.sites_enabled / "jmaka-demo.conf").is_symlink()
    assert any("ssl_certificate_key does not exist" in item for item in report.warnings)
    assert harness.nginx == []
    assert harness.registry.get_instance("demo")["site_path"] == str(site)


def test_listen_directive() -> None:
    """The TLS listen value optionally adds proxy_protocol."""
    assert listen_directive(443, proxy_protocol=False) == "443 ssl http2"
    assert listen_directive(8443, proxy_protocol=True) == "8443 ssl http2 proxy_protocol"


def test_auto_install_then_uninstall_extensionless_vhost(
    harness: Harness, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An include put into ``sites-available/default`` is taken out again on uninstall."""
    default = harness.config.nginx.sites_available / "default"
    default.write_text(
        "server {\n    listen 80 default_server;\n    server_name shop.example.com;\n}\n",
        encoding="utf-8",
    )
    report = harness.installer.install(
        _request(harness, nginx_action=NginxAction.AUTO, domain="shop.example.com")
    )
    assert report.vhost_path == default
    assert report.include_line in default.read_text(encoding="utf-8")

    monkeypatch.setattr(NginxProvider, "is_installed", lambda self: True)
    sweep = UninstallSweep(
        config=harness.config,
        systemd=harness.installer.systemd,
        nginx=harness.installer.nginx,
        registry=harness.registry,
    )
    removed = sweep.run("demo")

    assert report.include_line not in default.read_text(encoding="utf-8")
    assert removed.files_modified == 1
    assert not harness.installer.nginx.snippet_path("demo").exists()


def test_auto_action_uses_explicit_vhost(harness: Harness) -> None:
    """An explicit vhost path skips the search."""
    _vhost(harness, name="first.conf")
    chosen = _vhost(harness, name="second.conf")

    report = harness.installer.install(
        _request(
            harness,
            nginx_action=NginxAction.AUTO,
            domain="demo.example.com",
            vhost_path=chosen,
        )
    )

    assert report.vhost_path == chosen
    assert report.include_line in chosen.read_text(encoding="utf-8")
    first = harness.config.nginx.sites_enabled / "first.conf"
    assert report.include_line not in first.read_text(encoding="utf-8")


@pytest.mark.parametrize(
    ("action", "overrides", "message"),
    [
        (NginxAction.AUTO, {}, "--domain is required"),
        (NginxAction.WRITE_VHOST, {"domain": "demo.example.com"}, "--ssl-cert"),
    ],
)
def test_nginx_step_rejects_incomplete_request(
    harness: Harness, action: NginxAction, overrides: dict[str, object], message: str
) -> None:
    """The nginx step checks its own inputs before writing anything."""
    request = _request(harness, nginx_action=action, **overrides)
    instance = harness.installer.build_instance(
        _request(harness, domain=overrides.get("domain"))
    )
    report = InstallReport(instance=instance, bundle=harness.bundle)

    with pytest.raises(ValidationError, match=message):
        harness.installer.apply_nginx_action(request, report)

    assert not harness.installer.nginx.snippet_path("demo").exists()
