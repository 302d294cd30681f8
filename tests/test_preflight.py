"""Tests for host preflight checks."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from jmakactl.config import AppConfig
from jmakactl.errors import PreconditionError
from jmakactl.preflight import (
    command_exists,
    detect_platform,
    parse_os_release,
    require_command,
    require_root,
)

UBUNTU_24 = """\
NAME="Ubuntu"
VERSION_ID="24.04"
ID=ubuntu
PRETTY_NAME="Ubuntu 24.04.1 LTS"
# comment
"""


def test_require_root_checks_effective_uid(app_config: AppConfig) -> None:
    """Root is demanded only when the configuration asks for it."""
    strict = replace(app_config, require_root=True)

    require_root(strict, euid=0)
    require_root(app_config, euid=1000)
    with pytest.raises(PreconditionError, match="sudo"):
        require_root(strict, euid=1000)


def test_parse_os_release_unquotes_values() -> None:
    """Quoted and bare values are both accepted; comments are skipped."""
    values = parse_os_release(UBUNTU_24)

    assert values["ID"] == "ubuntu"
    assert values["VERSION_ID"] == "24.04"
    assert values["PRETTY_NAME"] == "Ubuntu 24.04.1 LTS"


def test_detect_platform_supported(tmp_path: Path) -> None:
    """Ubuntu 24 yields no warnings."""
    release = tmp_path / "os-release"
    release.write_text(UBUNTU_24, encoding="utf-8")

    info = detect_platform(release)

    assert info.id == "ubuntu"
    assert info.pretty_name == "Ubuntu 24.04.1 LTS"
    assert info.warnings == []


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ('ID=ubuntu\nVERSION_ID="22.04"\n', "expected Ubuntu 24+"),
        ('ID=debian\nVERSION_ID="12"\n', "designed for Ubuntu"),
    ],
)
def test_detect_platform_warns_only(tmp_path: Path, text: str, fragment: str) -> None:
    """Other systems are allowed with a warning."""
    release = tmp_path / "os-release"
    release.write_text(text, encoding="utf-8")

    info = detect_platform(release)

    assert any(fragment in warning for warning in info.warnings)


def test_detect_platform_without_file(tmp_path: Path) -> None:
    """A missing os-release file is a warning, not an error."""
    info = detect_platform(tmp_path / "absent")

    assert info.id is None
    assert info.warnings and "Cannot detect OS" in info.warnings[0]


def test_command_lookup(tmp_path: Path) -> None:
    """Absolute paths must be executable; bare names are searched on PATH."""
    script = tmp_path / "tool"
    script.write_text("#!/bin/sh\n", encoding="utf-8")
    script.chmod(0o644)
    assert command_exists(str(script)) is False
    script.chmod(0o755)
    assert command_exists(str(script)) is True

    assert command_exists("sh") is True
    with pytest.raises(PreconditionError, match="no-such-command-jmakactl"):
        require_command("no-such-command-jmakactl")
