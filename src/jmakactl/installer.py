"""Install (or reinstall) one application instance end to end.

Steps run in order and stop at the first failure; completed steps are not
rolled back. Re-running the same install is the recovery path.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import AppConfig
from .errors import NotFoundError, PreconditionError, ValidationError
from .instance import ManagedInstance, MountMode, slugify, validate_domain, validate_port
from .logging import OperationScope
from .materialize import BundleMaterializer, MaterializedPaths
from .ports import PortAllocator
from .providers.nginx import NginxError, NginxProvider
from .providers.systemd import SystemdProvider
from .service_accounts import (
    Runner,
    ServiceAccountSpec,
    apply_service_account_plan,
    plan_service_account,
)
from .state.registry import StateRegistry
from .templates import TemplateEngine
from .vhost.locator import VhostCandidate, VhostLocator
from .vhost.mutator import InsertResult, VhostMutator
from .vhost.snippet import snippet_for

VhostChooser = Callable[[list[VhostCandidate]], Path]


class NginxAction(str, Enum):
    """What the installer does with nginx after the service is running."""

    NONE = "none"
    PRINT = "print"
    WRITE_SNIPPET = "write-snippet"
    AUTO = "auto"
    WRITE_VHOST = "write-vhost"


@dataclass(slots=True)
class InstallRequest:
    """Operator input for :meth:`Installer.install`."""

    name: str
    port: int
    bundle: Path | None = None
    domain: str | None = None
    path_prefix: str = "/"
    mount_mode: MountMode = MountMode.BASE_PATH
    nginx_action: NginxAction = NginxAction.NONE
    base_dir: Path | None = None
    reload_nginx: bool = False
    vhost_path: Path | None = None
    tls_listen_port: int = 443
    tls_proxy_protocol: bool = False
    ssl_cert: Path | None = None
    ssl_key: Path | None = None
    enable_site: bool = False


@dataclass(slots=True)
class InstallReport:
    """Everything the installer changed or produced."""

    instance: ManagedInstance
    bundle: Path
    paths: MaterializedPaths | None = None
    unit_changed: bool = False
    snippet: str | None = None
    snippet_path: Path | None = None
    include_line: str | None = None
    vhost_path: Path | None = None
    insert: InsertResult | None = None
    site_path: Path | None = None
    nginx_reloaded: bool = False
    backups: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def listen_directive(port: int, *, proxy_protocol: bool) -> str:
    """Return the ``listen`` parameters used by a generated TLS vhost."""
    value = f"{port} ssl http2"
    if proxy_protocol:
        value += " proxy_protocol"
    return value


@dataclass(slots=True)
class Installer:
    """Coordinate materializer, systemd, registry, and nginx for one instance."""

    config: AppConfig
    templates: TemplateEngine
    systemd: SystemdProvider
    nginx: NginxProvider
    ports: PortAllocator
    registry: StateRegistry
    materializer: BundleMaterializer
    locator: VhostLocator = field(default_factory=VhostLocator)
    account_runner: Runner | None = None
    vhost_chooser: VhostChooser | None = None

    def build_instance(self, request: InstallRequest) -> ManagedInstance:
        """Validate *request* and return the instance it describes.

        Nothing on disk changes here, so invalid input fails before any side
        effect.
        """
        validate_port(request.port)
        domain = validate_domain(request.domain) if request.domain else None
        action = NginxAction(request.nginx_action)
        if action in (NginxAction.AUTO, NginxAction.WRITE_VHOST) and domain is None:
            raise ValidationError(f"--domain is required for nginx action '{action.value}'.")
        if action is NginxAction.WRITE_VHOST:
            if request.ssl_cert is None or request.ssl_key is None:
                raise ValidationError("--ssl-cert and --ssl-key are required for write-vhost.")
            if not 1 <= request.tls_listen_port <= 65535:
                raise ValidationError(f"Invalid TLS listen port {request.tls_listen_port}.")
        slug = slugify(request.name)
        return ManagedInstance(
            name=slug,
            port=request.port,
            base_directory=request.base_dir or self.config.base_root / slug,
            path_prefix=request.path_prefix,
            mount_mode=MountMode(request.mount_mode),
            domain=domain,
        )

    def install(
        self, request: InstallRequest, *, op: OperationScope | None = None
    ) -> InstallReport:
        """Run the full install pipeline for *request*."""
        instance = self.build_instance(request)
        bundle = (request.bundle or self.config.default_bundle).expanduser()
        report = InstallReport(instance=instance, bundle=bundle)
        _step(op, "install.validate", {"name": instance.name, "port": instance.port})

        stopped = self.stop_previous(instance.name)
        _step(op, "install.stop_previous", {"stopped": stopped})

        if self.ports.is_in_use(instance.port):
            raise PreconditionError(
                f"Port {instance.port} is already in use; "
                "pick another (try `jmakactl ports suggest`)."
            )
        if not bundle.is_file():
            raise NotFoundError(f"Application bundle not found: {bundle}")
        if not self.config.runtime.dotnet_bin.exists():
            report.warnings.append(
                f"ASP.NET runtime not found at {self.config.runtime.dotnet_bin}; "
                "the service will fail until it is installed."
            )

        executed = self.ensure_service_account()
        _step(op, "install.service_account", {"commands": executed})

        report.paths = self.materializer.materialize(bundle, instance)
        report.warnings.extend(report.paths.warnings)
        _step(
            op,
            "install.materialize",
            {"app": report.paths.app, "storage": report.paths.storage},
        )

        context = self.systemd.unit_context(
            instance, self.config.runtime, service_user=self.config.service_user
        )
        report.unit_changed = self.systemd.render_unit(instance.name, context)
        self.systemd.enable(instance.name)
        self.systemd.restart(instance.name)
        _step(op, "install.systemd", {"unit": self.systemd.unit_path(instance.name)})

        self.register(request, report)
        _step(op, "install.registry", {"name": instance.name})

        self.apply_nginx_action(request, report, op=op)
        if report.snippet_path or report.site_path:
            self.register(request, report)
        return report

    def register(self, request: InstallRequest, report: InstallReport) -> None:
        """Record the instance and the nginx files written for it."""
        entry = report.instance.to_dict()
        entry.update(
            {
                "nginx_action": NginxAction(request.nginx_action).value,
                "unit": self.systemd.unit_name(report.instance.name),
                "snippet_path": str(report.snippet_path) if report.snippet_path else None,
                "vhost_path": str(report.vhost_path) if report.vhost_path else None,
                "site_path": str(report.site_path) if report.site_path else None,
            }
        )
        self.registry.upsert_instance(entry)

    def stop_previous(self, name: str) -> bool:
        """Stop a unit left by an earlier install; a missing unit is not an error."""
        if not self.systemd.unit_path(name).exists():
            return False
        return self.systemd.stop_quietly(name)

    def ensure_service_account(self) -> list[list[str]]:
        """Create the service user (and group) when missing."""
        spec = ServiceAccountSpec(
            name=self.config.service_user,
            group=self.config.service_group,
            home=self.config.service_home,
        )
        plan = plan_service_account(spec)
        if plan.satisfied:
            return []
        return apply_service_account_plan(plan, runner=self.account_runner)

    # ------------------------------------------------------------------
    # nginx
    # ------------------------------------------------------------------
    def apply_nginx_action(
        self,
        request: InstallRequest,
        report: InstallReport,
        *,
        op: OperationScope | None = None,
    ) -> None:
        """Perform the requested nginx integration step."""
        action = NginxAction(request.nginx_action)
        instance = report.instance
        if action is NginxAction.NONE:
            return

        report.snippet = snippet_for(
            instance,
            client_max_body_size=self.config.nginx.client_max_body_size,
            templates=self.templates,
        )
        report.include_line = self.nginx.include_directive(instance.name)
        if action is NginxAction.PRINT:
            return

        # build_instance already enforces these; direct callers may skip it.
        if action is not NginxAction.WRITE_SNIPPET and instance.domain is None:
            raise ValidationError(f"--domain is required for nginx action '{action.value}'.")
        missing_tls = request.ssl_cert is None or request.ssl_key is None
        if action is NginxAction.WRITE_VHOST and missing_tls:
            raise ValidationError("--ssl-cert and --ssl-key are required for write-vhost.")

        report.snippet_path = self.nginx.write_snippet(instance.name, report.snippet)
        _step(op, "nginx.snippet", {"path": report.snippet_path})

        if action is NginxAction.WRITE_SNIPPET:
            if request.reload_nginx:
                self.nginx.apply()
                report.nginx_reloaded = True
            return

        domain = instance.domain or ""
        if action is NginxAction.AUTO:
            vhost = self.choose_vhost(domain, request.vhost_path)
            mutator = VhostMutator.for_nginx(self.config.nginx)
            report.vhost_path = vhost
            report.insert = mutator.insert(vhost, domain, report.include_line)
            report.backups.extend(mutator.backups)
            _step(
                op,
                "nginx.insert",
                {"vhost": vhost, "outcome": report.insert.outcome.value},
            )
            try:
                self.nginx.apply()
            except NginxError as exc:
                raise NginxError(
                    f"{exc} (previous vhost saved as {report.insert.backup})"
                ) from exc
            report.nginx_reloaded = True
            return

        # write-vhost
        cert, key = Path(request.ssl_cert or ""), Path(request.ssl_key or "")
        for label, path in (("ssl_certificate", cert), ("ssl_certificate_key", key)):
            if not path.exists():
                report.warnings.append(f"{label} does not exist: {path}")
        listen = listen_directive(
            request.tls_listen_port, proxy_protocol=request.tls_proxy_protocol
        )
        self.nginx.render_site(
            instance.name,
            {
                "instance_name": instance.name,
                "server_name": domain,
                "server_name_pattern": re.escape(domain),
                "listen": listen,
                "ssl_certificate": str(cert),
                "ssl_certificate_key": str(key),
                "snippet_path": str(report.snippet_path),
            },
        )
        report.site_path = self.nginx.site_path(instance.name)
        _step(op, "nginx.site", {"path": report.site_path})
        if request.enable_site:
            self.nginx.enable(instance.name)
        if request.reload_nginx:
            self.nginx.apply()
            report.nginx_reloaded = True

    def choose_vhost(self, domain: str, explicit: Path | None) -> Path:
        """Return the vhost file to edit for *domain*."""
        if explicit is not None:
            return explicit
        directories = self.config.nginx.vhost_directories
        if self.vhost_chooser is None:
            return self.locator.locate(domain, directories)
        candidates = self.locator.candidates(domain, directories)
        if not candidates:
            return self.locator.locate(domain, directories)
        return self.vhost_chooser(candidates)


def _step(op: OperationScope | None, name: str, detail: object = None) -> None:
    if op is not None:
        op.add_step(name, detail=detail)


__all__ = [
    "InstallReport",
    "InstallRequest",
    "Installer",
    "NginxAction",
    "listen_directive",
]
