"""Typer-powered command line for ``jmakactl``.

Every command runs inside a structured-log operation scope. Failures raised
as :class:`~jmakactl.errors.JmakactlError` are printed in red, recorded on the
operation, and turned into exit code 1; usage errors keep Click's exit code 2.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .backups import BackupsRegistry, NginxBackupManager
from .config import AppConfig, ConfigError, load_config
from .errors import JmakactlError, NotFoundError
from .exit_codes import ExitCode
from .installer import Installer, InstallRequest, NginxAction
from .instance import MountMode, validate_domain
from .logging import OperationScope, StructuredLogger
from .materialize import BundleMaterializer
from .ports import PortAllocator
from .preflight import detect_platform, require_command, require_root
from .providers import NginxProvider, SystemdError, SystemdProvider
from .state import StateRegistry, StateRegistryError
from .templates import TemplateEngine
from .uninstall import CONFIRM_TOKEN, UninstallSweep
from .vhost import VhostCandidate, VhostLocator, generate_snippet
from .vhost.mutator import InsertOutcome

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to jmakactl's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

MUTATING_COMMANDS = {"install", "uninstall", "backup", "restore"}
REQUIRED_COMMANDS = {"install": ("tar",), "backup": ("tar",), "restore": ("tar",)}

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Jmaka instance lifecycle manager.

        Installs, reinstalls, and removes Jmaka web-application instances,
        wiring each one into systemd and an existing nginx virtual host.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: StateRegistry
    logger: StructuredLogger
    templates: TemplateEngine
    ports: PortAllocator
    systemd_provider: SystemdProvider
    nginx_provider: NginxProvider
    backups: NginxBackupManager

    def installer(self) -> Installer:
        """Build an installer wired to this runtime."""
        return Installer(
            config=self.config,
            templates=self.templates,
            systemd=self.systemd_provider,
            nginx=self.nginx_provider,
            ports=self.ports,
            registry=self.registry,
            materializer=BundleMaterializer(
                service_user=self.config.service_user,
                service_group=self.config.service_group,
            ),
        )

    def sweep(self) -> UninstallSweep:
        """Build an uninstall sweep wired to this runtime."""
        return UninstallSweep(
            config=self.config,
            systemd=self.systemd_provider,
            nginx=self.nginx_provider,
            registry=self.registry,
        )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(code=ExitCode.FAILURE) from exc
    templates = TemplateEngine.with_overrides(config.templates_dir)
    nginx_provider = NginxProvider(templates=templates, config=config.nginx)
    runtime = RuntimeContext(
        config=config,
        registry=StateRegistry(config.registry_dir),
        logger=StructuredLogger(config.logs_dir),
        templates=templates,
        ports=PortAllocator(ports=config.ports),
        systemd_provider=SystemdProvider(
            templates=templates,
            systemd_dir=config.systemd.unit_dir,
            systemctl_bin=config.systemd.systemctl_bin,
            journalctl_bin=config.systemd.journalctl_bin,
        ),
        nginx_provider=nginx_provider,
        backups=NginxBackupManager(
            registry=BackupsRegistry(config.backups.root, config.backups.index),
            nginx=nginx_provider,
        ),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the jmakactl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"jmakactl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    runtime = _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand in MUTATING_COMMANDS:
        with runtime.logger.operation(
            "preflight",
            args={"command": ctx.invoked_subcommand},
            target={"kind": "host"},
        ) as op:
            try:
                require_root(runtime.config)
                for command in REQUIRED_COMMANDS.get(ctx.invoked_subcommand, ()):
                    require_command(command)
            except JmakactlError as exc:
                _command_error(op, str(exc))
            platform = detect_platform()
            for warning in platform.warnings:
                console.print(f"[yellow]Warning:[/yellow] {warning}")
            op.success(
                "Preflight checks passed.",
                context={"os": platform.pretty_name, "warnings": platform.warnings},
            )


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _print_warnings(warnings: Sequence[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def _candidate_table(candidates: Sequence[VhostCandidate]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", style="bold")
    table.add_column("File")
    table.add_column("Listens")
    table.add_column("Directory")
    for index, candidate in enumerate(candidates, start=1):
        table.add_row(str(index), str(candidate.path), candidate.label, str(candidate.directory))
    return table


def _prompt_vhost(candidates: list[VhostCandidate]) -> Path:
    """Let the operator pick a vhost file; the top-ranked one is the default."""
    console.print(_candidate_table(candidates))
    choice = typer.prompt("Vhost to edit", default=1, type=int)
    if not 1 <= choice <= len(candidates):
        raise typer.BadParameter(f"Choose a number between 1 and {len(candidates)}.")
    return candidates[choice - 1].path


vhost_app = typer.Typer(help="Locate vhosts and render location snippets.")
ports_app = typer.Typer(help="Inspect listening ports.")
instances_app = typer.Typer(help="Inspect installed instances.")
config_app = typer.Typer(help="Inspect global configuration.")

app.add_typer(vhost_app, name="vhost")
app.add_typer(ports_app, name="ports")
app.add_typer(instances_app, name="instance")
app.add_typer(config_app, name="config")


@app.command()
def install(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance name (slugified)."),
    port: int = typer.Option(..., "--port", help="Loopback port the application listens on."),
    bundle: Path | None = typer.Option(
        None,
        "--bundle",
        dir_okay=False,
        help="Application tar.gz (defaults to ~/jmaka.tar.gz of the invoking user).",
    ),
    domain: str | None = typer.Option(None, "--domain", help="Domain served by nginx."),
    path_prefix: str = typer.Option("/", "--path-prefix", help="URL prefix, e.g. /app/."),
    mount_mode: MountMode = typer.Option(
        MountMode.BASE_PATH,
        "--mount-mode",
        help="base-path: app sees the prefix; strip-prefix: nginx removes it.",
    ),
    nginx_action: NginxAction = typer.Option(
        NginxAction.NONE,
        "--nginx-action",
        help="How to wire the instance into nginx.",
    ),
    base_dir: Path | None = typer.Option(
        None,
        "--base-dir",
        file_okay=False,
        help="Instance directory (defaults to <base_root>/<name>).",
    ),
    reload_nginx: bool = typer.Option(
        False,
        "--reload-nginx",
        help="Self-check and reload nginx after write-snippet/write-vhost.",
    ),
    interactive: bool = typer.Option(
        False,
        "--interactive",
        help="Choose the vhost file from a ranked list (auto action).",
    ),
    vhost: Path | None = typer.Option(
        None,
        "--vhost",
        dir_okay=False,
        help="Vhost file to edit for the auto action (skips the search).",
    ),
    tls_listen_port: int = typer.Option(443, "--tls-listen-port", help="write-vhost listen port."),
    tls_proxy_protocol: bool = typer.Option(
        False,
        "--tls-proxy-protocol",
        help="Add proxy_protocol to the generated listen lines.",
    ),
    ssl_cert: Path | None = typer.Option(None, "--ssl-cert", help="write-vhost certificate."),
    ssl_key: Path | None = typer.Option(None, "--ssl-key", help="write-vhost private key."),
    enable_site: bool = typer.Option(
        False,
        "--enable-site",
        help="Symlink the generated vhost into sites-enabled.",
    ),
) -> None:
    """Install or reinstall an instance and wire it into systemd and nginx."""
    runtime = _get_runtime(ctx)
    request = InstallRequest(
        name=name,
        port=port,
        bundle=bundle,
        domain=domain,
        path_prefix=path_prefix,
        mount_mode=mount_mode,
        nginx_action=nginx_action,
        base_dir=base_dir,
        reload_nginx=reload_nginx,
        vhost_path=vhost,
        tls_listen_port=tls_listen_port,
        tls_proxy_protocol=tls_proxy_protocol,
        ssl_cert=ssl_cert,
        ssl_key=ssl_key,
        enable_site=enable_site,
    )
    args = {
        "name": name,
        "port": port,
        "bundle": str(bundle) if bundle else None,
        "domain": domain,
        "path_prefix": path_prefix,
        "mount_mode": mount_mode.value,
        "nginx_action": nginx_action.value,
        "reload_nginx": reload_nginx,
        "interactive": interactive,
        "vhost": str(vhost) if vhost else None,
    }

    with runtime.logger.operation(
        "install",
        args=args,
        target={"kind": "instance", "name": name},
    ) as op:
        installer = runtime.installer()
        if interactive:
            installer.vhost_chooser = _prompt_vhost
        try:
            report = installer.install(request, op=op)
        except (JmakactlError, StateRegistryError) as exc:
            _command_error(op, str(exc))

        instance = report.instance
        console.print(
            f"[green]Installed '{instance.name}'[/green] on {instance.listen_url} "
            f"(unit {runtime.systemd_provider.unit_name(instance.name)}, "
            f"prefix {instance.path_prefix}, {instance.mount_mode.value})."
        )
        if report.snippet is not None and report.snippet_path is None:
            console.print(
                f"Nginx config to paste (domain: {instance.domain or '-'}, "
                f"prefix: {instance.path_prefix}). Paste it INSIDE the server block, "
                "above any catch-all 'location /'."
            )
            console.print(report.snippet, markup=False, highlight=False, soft_wrap=True, end="")
        if nginx_action is NginxAction.WRITE_SNIPPET:
            console.print(f"Snippet written: {report.snippet_path}")
            console.print(
                f"Now include it in your server block: {report.include_line}",
                markup=False,
            )
        if report.insert is not None:
            if report.insert.outcome is InsertOutcome.ALREADY_PRESENT:
                console.print(f"Include already present in {report.insert.path}.")
            else:
                console.print(
                    f"Inserted include into {report.insert.blocks} server block(s) "
                    f"of {report.insert.path}."
                )
            console.print(f"Backup: {report.insert.backup}")
        if report.site_path is not None:
            console.print(f"Vhost written: {report.site_path}")
            if not enable_site:
                console.print(
                    f"To enable: ln -s {report.site_path} "
                    f"{runtime.nginx_provider.enabled_path(instance.name)}"
                )
        if report.nginx_reloaded:
            console.print("nginx configuration test passed; nginx reloaded.")
        _print_warnings(report.warnings)

        context = {
            "instance": instance.to_dict(),
            "snippet_path": report.snippet_path,
            "vhost_path": report.vhost_path,
            "site_path": report.site_path,
            "insert": report.insert.outcome.value if report.insert else None,
            "nginx_reloaded": report.nginx_reloaded,
        }
        if report.warnings:
            op.warning(
                "Instance installed with warnings.",
                warnings=report.warnings,
                backups=report.backups,
                context=context,
            )
        else:
            op.success("Instance installed.", changed=1, backups=report.backups, context=context)


@app.command()
def uninstall(
    ctx: typer.Context,
    name: str | None = typer.Option(
        None,
        "--name",
        help="Remove only this instance (no confirmation needed).",
    ),
    confirm: str | None = typer.Option(
        None,
        "--confirm",
        help=f"Confirmation token ('{CONFIRM_TOKEN}') for removing every instance.",
    ),
) -> None:
    """Remove instances, their units and data, and all managed nginx includes."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "uninstall",
        args={"name": name, "confirm": bool(confirm)},
        target={"kind": "instance", "name": name or "*"},
    ) as op:
        if name is None:
            if confirm is None:
                console.print(
                    "[bold red]This removes EVERY Jmaka instance, its data, and its "
                    "nginx includes.[/bold red]"
                )
                token = typer.prompt(
                    f"Type {CONFIRM_TOKEN} to continue", default="", show_default=False
                )
                if token != CONFIRM_TOKEN:
                    console.print("Cancelled.")
                    op.warning("Uninstall cancelled by operator.", warnings=["user-cancelled"])
                    return
                confirm = token
            elif confirm != CONFIRM_TOKEN:
                _command_error(
                    op, f"Confirmation token mismatch; pass --confirm {CONFIRM_TOKEN}."
                )

        try:
            report = runtime.sweep().run(name, confirm=confirm, op=op)
        except (JmakactlError, StateRegistryError) as exc:
            _command_error(op, str(exc))

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Item", style="bold")
        table.add_column("Removed")
        table.add_row("Units", ", ".join(report.units_removed) or "(none)")
        table.add_row(
            "Directories",
            "\n".join(str(path) for path in report.directories_removed) or "(none)",
        )
        table.add_row("Vhost files edited", str(report.files_modified))
        table.add_row(
            "Snippets",
            "\n".join(str(path) for path in report.snippets_removed) or "(none)",
        )
        table.add_row(
            "Generated vhosts",
            "\n".join(str(path) for path in report.sites_removed) or "(none)",
        )
        table.add_row("Registry entries", str(report.registry_cleared))
        console.print(table)
        for backup in report.backups:
            console.print(f"Backup: {backup}")
        if report.nginx_reloaded:
            console.print("nginx configuration test passed; nginx reloaded.")
        _print_warnings(report.warnings)
        changed = (
            len(report.units_removed)
            + len(report.directories_removed)
            + report.files_modified
            + len(report.snippets_removed)
        )
        op.success(
            f"Uninstalled {report.scope}.",
            changed=changed,
            backups=report.backups,
            context={"scope": report.scope},
        )


@app.command()
def backup(ctx: typer.Context) -> None:
    """Archive the whole nginx configuration directory."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "backup",
        args={},
        target={"kind": "nginx", "path": str(runtime.config.nginx.root)},
    ) as op:
        try:
            entry = runtime.backups.create()
        except JmakactlError as exc:
            _command_error(op, str(exc))
        console.print(f"[green]nginx backup created:[/green] {entry['path']}")
        op.success("nginx backup created.", changed=1, backups=[str(entry["path"])], context=entry)


@app.command()
def restore(
    ctx: typer.Context,
    archive: Path = typer.Argument(..., dir_okay=False, help="Archive created by `backup`."),
) -> None:
    """Restore the nginx configuration directory from an archive."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "restore",
        args={"archive": str(archive)},
        target={"kind": "nginx", "path": str(runtime.config.nginx.root)},
    ) as op:
        try:
            result = runtime.backups.restore(archive)
        except JmakactlError as exc:
            _command_error(op, str(exc))
        if result["safety_backup"]:
            console.print(f"Backup of current nginx saved to: {result['safety_backup']}")
        console.print("[green]nginx restored and reloaded.[/green]")
        op.success("nginx restored.", changed=1, context=result)


@ports_app.command("list")
def ports_list(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List TCP ports in LISTEN state and registered instance ports."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "ports list",
        args={"json": json_output},
        target={"kind": "ports"},
    ) as op:
        listening = sorted(runtime.ports.listening_ports())
        owners = {
            int(entry["port"]): str(entry["name"])
            for entry in runtime.registry.list_instances()
            if isinstance(entry.get("port"), int)
        }
        if json_output:
            console.print_json(data={"listening": listening, "instances": owners})
            op.success("Reported listening ports as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Port", style="bold")
        table.add_column("Instance")
        if not listening:
            table.add_row("(none)", "")
        for port in listening:
            table.add_row(str(port), owners.get(port, ""))
        console.print(table)
        op.success("Reported listening ports.", changed=0)


@ports_app.command("suggest")
def ports_suggest(ctx: typer.Context) -> None:
    """Print the first free port in the configured range."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "ports suggest",
        args={},
        target={"kind": "ports"},
    ) as op:
        try:
            port = runtime.ports.suggest()
        except NotFoundError as exc:
            _command_error(op, str(exc))
        console.print(str(port))
        op.success("Suggested a free port.", changed=0, context={"port": port})


@vhost_app.command("locate")
def vhost_locate(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain to look for in server_name lines."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Rank vhost files that declare DOMAIN (best first)."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "vhost locate",
        args={"domain": domain, "json": json_output},
        target={"kind": "vhost", "domain": domain},
    ) as op:
        try:
            normalised = validate_domain(domain)
        except JmakactlError as exc:
            _command_error(op, str(exc))
        directories = runtime.config.nginx.vhost_directories
        candidates = VhostLocator().candidates(normalised, directories)
        if not candidates:
            searched = ", ".join(str(directory) for directory in directories)
            _command_error(op, f"No nginx vhost declares server_name '{normalised}' in {searched}.")
        if json_output:
            console.print_json(
                data={
                    "candidates": [
                        {"path": str(item.path), "score": item.score} for item in candidates
                    ]
                }
            )
        else:
            console.print(_candidate_table(candidates))
        op.success("Located vhost candidates.", changed=0, context={"top": candidates[0].path})


@vhost_app.command("snippet")
def vhost_snippet(
    ctx: typer.Context,
    port: int = typer.Option(..., "--port", help="Loopback port of the instance."),
    path_prefix: str = typer.Option("/", "--path-prefix", help="URL prefix, e.g. /app/."),
    mount_mode: MountMode = typer.Option(MountMode.BASE_PATH, "--mount-mode"),
) -> None:
    """Print the nginx location snippet without touching any file."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "vhost snippet",
        args={"port": port, "path_prefix": path_prefix, "mount_mode": mount_mode.value},
        target={"kind": "snippet"},
    ) as op:
        try:
            text = generate_snippet(
                port,
                path_prefix,
                mount_mode,
                client_max_body_size=runtime.config.nginx.client_max_body_size,
                templates=runtime.templates,
            )
        except JmakactlError as exc:
            _command_error(op, str(exc))
        console.print(text, markup=False, highlight=False, soft_wrap=True, end="")
        op.success("Rendered snippet.", changed=0)


@instances_app.command("list")
def instance_list(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List registered instances."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance list",
        args={"json": json_output},
        target={"kind": "instance", "scope": "registry"},
    ) as op:
        try:
            entries = runtime.registry.list_instances()
        except StateRegistryError as exc:
            _command_error(op, str(exc))
        if json_output:
            console.print_json(data={"instances": entries})
            op.success("Reported instance list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Port")
        table.add_column("Domain")
        table.add_column("Prefix")
        table.add_column("Mode")
        if not entries:
            table.add_row("(none)", "", "", "", "")
        for entry in entries:
            table.add_row(
                str(entry["name"]),
                str(entry.get("port", "") or ""),
                str(entry.get("domain", "") or ""),
                str(entry.get("path_prefix", "") or ""),
                str(entry.get("mount_mode", "") or ""),
            )
        console.print(table)
        op.success("Reported instance list.", changed=0)


@instances_app.command("status")
def instance_status(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to query."),
) -> None:
    """Show ``systemctl status`` for an instance unit."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance status",
        args={"name": name},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            result = runtime.systemd_provider.status(name)
        except SystemdError as exc:
            _command_error(op, str(exc))
        op.add_step("systemd.status", detail={"returncode": result.returncode})
        output = (result.stdout or result.stderr or "").rstrip()
        console.print(output or f"No status output for {name}.", markup=False, highlight=False)
        # systemctl status exits 3 for an inactive unit.
        if result.returncode != 0:
            op.warning(f"Unit for '{name}' is not active.", changed=0)
            return
        op.success("Reported instance status.", changed=0)


@instances_app.command("logs")
def instance_logs(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Instance to read logs for."),
    lines: int | None = typer.Option(
        None, "--lines", "-n", min=1, help="Show only the last N journal lines."
    ),
    since: str | None = typer.Option(
        None, "--since", help="Show entries since this time (passed to journalctl)."
    ),
) -> None:
    """Print the systemd journal for an instance."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "instance logs",
        args={"name": name, "lines": lines, "since": since},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            result = runtime.systemd_provider.logs(name, lines=lines, since=since)
        except SystemdError as exc:
            _command_error(op, f"journalctl failed: {exc}")
        stdout = (result.stdout or "").rstrip()
        if stdout:
            console.print(stdout, markup=False, highlight=False)
        op.success("Fetched instance logs.", changed=0)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
