"""Generate the nginx ``location`` snippet that proxies to an instance."""
from __future__ import annotations

from pathlib import Path

from ..instance import ManagedInstance, MountMode, normalize_path_prefix, validate_port
from ..templates import TemplateEngine

SNIPPET_PREFIX = "jmaka-"
SNIPPET_SUFFIX = ".location.conf"
LEGACY_SNIPPET_SUFFIX = ".conf"
SNIPPET_TEMPLATE = "nginx/location.conf.j2"


def snippet_path(snippets_dir: Path, name: str) -> Path:
    """Return ``<snippets_dir>/jmaka-<name>.location.conf``."""
    return snippets_dir / f"{SNIPPET_PREFIX}{name}{SNIPPET_SUFFIX}"


def managed_directive(path: Path) -> str:
    """Return the ``include`` line that pulls *path* into a server block."""
    return f"include {path};"


def generate_snippet(
    port: int,
    path_prefix: str,
    mount_mode: MountMode | str,
    *,
    client_max_body_size: str = "80m",
    templates: TemplateEngine | None = None,
) -> str:
    """Render the proxy snippet for an instance.

    ``/`` yields a single ``location /``. Any other prefix adds an exact-match
    redirect from the slashless form, and :attr:`MountMode.STRIP_PREFIX`
    gives ``proxy_pass`` a trailing slash so nginx strips the prefix.
    """
    port = validate_port(port)
    prefix = normalize_path_prefix(path_prefix)
    mode = MountMode(mount_mode)
    strip = prefix != "/" and mode is MountMode.STRIP_PREFIX
    upstream = f"http://127.0.0.1:{port}" + ("/" if strip else "")
    engine = templates or TemplateEngine.with_overrides(None)
    return engine.render_to_string(
        SNIPPET_TEMPLATE,
        {
            "client_max_body_size": client_max_body_size,
            "path_prefix": prefix,
            "redirect_from": prefix.rstrip("/"),
            "strip_prefix": strip,
            "upstream": upstream,
        },
    )


def snippet_for(
    instance: ManagedInstance,
    *,
    client_max_body_size: str = "80m",
    templates: TemplateEngine | None = None,
) -> str:
    """Render the snippet for *instance*."""
    return generate_snippet(
        instance.port,
        instance.path_prefix,
        instance.mount_mode,
        client_max_body_size=client_max_body_size,
        templates=templates,
    )


__all__ = [
    "LEGACY_SNIPPET_SUFFIX",
    "SNIPPET_PREFIX",
    "SNIPPET_SUFFIX",
    "generate_snippet",
    "managed_directive",
    "snippet_for",
    "snippet_path",
]
