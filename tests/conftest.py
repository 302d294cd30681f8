"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from jmakactl.config import AppConfig, load_config


@pytest.fixture
def jmaka_env(tmp_path: Path) -> dict[str, str]:
    """Return ``JMAKACTL_*`` variables that point every path into *tmp_path*."""
    nginx_root = tmp_path / "nginx"
    for child in ("sites-enabled", "sites-available", "snippets"):
        (nginx_root / child).mkdir(parents=True, exist_ok=True)
    (tmp_path / "systemd").mkdir(parents=True, exist_ok=True)
    return {
        "JMAKACTL_CONFIG_FILE": str(tmp_path / "config.yml"),
        "JMAKACTL_BASE_ROOT": str(tmp_path / "www"),
        "JMAKACTL_DEFAULT_BUNDLE": str(tmp_path / "jmaka.tar.gz"),
        "JMAKACTL_STATE_DIR": str(tmp_path / "state"),
        "JMAKACTL_LOGS_DIR": str(tmp_path / "logs"),
        "JMAKACTL_TEMPLATES_DIR": str(tmp_path / "templates"),
        "JMAKACTL_SERVICE_HOME": str(tmp_path / "home"),
        "JMAKACTL_REQUIRE_ROOT": "false",
        "JMAKACTL_NGINX__ROOT": str(nginx_root),
        "JMAKACTL_SYSTEMD__UNIT_DIR": str(tmp_path / "systemd"),
        "JMAKACTL_RUNTIME__DOTNET_ROOT": str(tmp_path / "dotnet"),
        "JMAKACTL_BACKUPS__ROOT": str(tmp_path / "backups"),
    }


@pytest.fixture
def app_config(jmaka_env: dict[str, str]) -> AppConfig:
    """Return an :class:`AppConfig` rooted in the temporary directory."""
    return load_config(env=jmaka_env)
