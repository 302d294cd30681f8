"""Tests for the generated nginx location snippet."""
from __future__ import annotations

from pathlib import Path

import pytest

from jmakactl.errors import ValidationError
from jmakactl.instance import ManagedInstance, MountMode
from jmakactl.templates import TemplateEngine
from jmakactl.vhost import generate_snippet, managed_directive, snippet_path
from jmakactl.vhost.snippet import snippet_for


def test_root_prefix_has_single_location() -> None:
    """The root prefix proxies everything with no redirect."""
    text = generate_snippet(5000, "/", MountMode.BASE_PATH)

    assert "client_max_body_size 80m;" in text
    assert "location / {" in text
    assert "return 301" not in text
    assert "http://127.0.0.1:5000;" in text


def test_base_path_keeps_prefix_for_upstream() -> None:
    """base-path redirects the bare prefix and forwards the full URI."""
    text = generate_snippet(5001, "/app/", MountMode.BASE_PATH)

    assert "location = /app {" in text
    assert "return 301 /app/;" in text
    assert "location /app/ {" in text
    assert "http://127.0.0.1:5001;" in text
    assert "http://127.0.0.1:5001/;" not in text


def test_strip_prefix_adds_trailing_slash() -> None:
    """strip-prefix gives proxy_pass a URI so nginx removes the prefix."""
    text = generate_snippet(5002, "tools/app", "strip-prefix")

    assert "location /tools/app/ {" in text
    assert "return 301 /tools/app/;" in text
    assert "http://127.0.0.1:5002/;" in text


def test_strip_prefix_at_root_is_plain_proxy() -> None:
    """Stripping the root prefix is the same as not stripping."""
    text = generate_snippet(5003, "/", MountMode.STRIP_PREFIX)

    assert "http://127.0.0.1:5003;" in text
    assert "http://127.0.0.1:5003/;" not in text


def test_headers_are_forwarded() -> None:
    """The proxy passes the forwarding headers and upgrade handling."""
    text = generate_snippet(5000, "/", MountMode.BASE_PATH, client_max_body_size="10m")

    assert "client_max_body_size 10m;" in text
    for header in ("X-Real-IP", "X-Forwarded-For", "X-Forwarded-Proto", "Upgrade"):
        assert header in text


def test_invalid_input_is_rejected() -> None:
    """Privileged ports and unsafe prefixes raise ValidationError."""
    with pytest.raises(ValidationError):
        generate_snippet(80, "/", MountMode.BASE_PATH)
    with pytest.raises(ValidationError):
        generate_snippet(5000, "/../etc/", MountMode.BASE_PATH)


def test_template_override_is_used(tmp_path: Path) -> None:
    """An operator template with the same name replaces the built-in one."""
    override = tmp_path / "nginx"
    override.mkdir()
    (override / "location.conf.j2").write_text(
        "# custom {{ upstream }} {{ path_prefix }}\n", encoding="utf-8"
    )

    text = generate_snippet(
        5000, "/x/", MountMode.BASE_PATH, templates=TemplateEngine.with_overrides(tmp_path)
    )

    assert text == "# custom http://127.0.0.1:5000 /x/\n"


def test_snippet_paths_and_directive() -> None:
    """Snippet files and include lines follow the managed naming scheme."""
    path = snippet_path(Path("/etc/nginx/snippets"), "demo")

    assert path == Path("/etc/nginx/snippets/jmaka-demo.location.conf")
    assert managed_directive(path) == "include /etc/nginx/snippets/jmaka-demo.location.conf;"


def test_snippet_for_instance_uses_instance_fields(tmp_path: Path) -> None:
    """Rendering from an instance uses its port, prefix and mode."""
    instance = ManagedInstance(
        name="demo",
        port=5100,
        base_directory=tmp_path,
        path_prefix="/demo/",
        mount_mode=MountMode.STRIP_PREFIX,
    )

    assert "http://127.0.0.1:5100/;" in snippet_for(instance)
