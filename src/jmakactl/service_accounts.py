"""Inspect, plan, and create the unprivileged account that runs instances.

Planning only reads the passwd and group databases. Commands run in
:func:`apply_service_account_plan`, so callers can show or log the plan
first. An existing account is never modified; differences from the wanted
group or home are returned as warnings.
"""
from __future__ import annotations

import grp
import pwd
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .errors import ExternalCommandError

NOLOGIN_SHELL = "/usr/sbin/nologin"

Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]


@dataclass(slots=True)
class ServiceAccountSpec:
    """The account jmaka services run as."""

    name: str
    group: str | None = None
    system: bool = True
    home: Path | None = None
    shell: str | None = NOLOGIN_SHELL

    @property
    def shares_name_with_group(self) -> bool:
        """True when the primary group is the user's own same-named group."""
        return self.group in (None, self.name)


@dataclass(slots=True)
class ServiceAccountStatus:
    """What the host currently has for a :class:`ServiceAccountSpec`."""

    user_exists: bool
    group_exists: bool
    home: Path | None = None
    primary_group: str | None = None


@dataclass(slots=True)
class ServiceAccountAction:
    """One command needed to create the account."""

    kind: Literal["ensure-group", "create-user"]
    description: str
    command: list[str]


@dataclass(slots=True)
class ServiceAccountPlan:
    """Commands to run plus warnings about an existing account."""

    spec: ServiceAccountSpec
    status: ServiceAccountStatus
    actions: list[ServiceAccountAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        """True when no command has to run."""
        return not self.actions


def _group_name(gid: int) -> str | None:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return None


def _group_exists(name: str | None) -> bool:
    if not name:
        return False
    try:
        grp.getgrnam(name)
    except KeyError:
        return False
    return True


def inspect_service_account(spec: ServiceAccountSpec) -> ServiceAccountStatus:
    """Look up *spec*'s user and group in the passwd and group databases."""
    group_exists = _group_exists(spec.group)
    try:
        entry = pwd.getpwnam(spec.name)
    except KeyError:
        return ServiceAccountStatus(user_exists=False, group_exists=group_exists)
    return ServiceAccountStatus(
        user_exists=True,
        group_exists=group_exists,
        home=Path(entry.pw_dir),
        primary_group=_group_name(entry.pw_gid),
    )


def _groupadd(spec: ServiceAccountSpec) -> list[str]:
    return ["groupadd", *(["--system"] if spec.system else []), str(spec.group)]


def _useradd(spec: ServiceAccountSpec) -> list[str]:
    command = ["useradd"]
    if spec.system:
        command.append("--system")
    if spec.home is None:
        command.append("--no-create-home")
    else:
        command += ["--home", str(spec.home), "--create-home"]
    if spec.shell:
        command += ["--shell", spec.shell]
    if spec.shares_name_with_group:
        command.append("--user-group")
    else:
        command += ["--gid", str(spec.group)]
    return [*command, spec.name]


def _drift(spec: ServiceAccountSpec, status: ServiceAccountStatus) -> list[str]:
    warnings: list[str] = []
    if spec.group and status.primary_group and status.primary_group != spec.group:
        warnings.append(
            f"User '{spec.name}' primary group is '{status.primary_group}', "
            f"expected '{spec.group}'."
        )
    if spec.home and status.home and status.home != spec.home:
        warnings.append(
            f"User '{spec.name}' home is {status.home}, expected {spec.home}; left unchanged."
        )
    return warnings


def plan_service_account(spec: ServiceAccountSpec) -> ServiceAccountPlan:
    """Work out which commands would create *spec* on this host."""
    status = inspect_service_account(spec)
    plan = ServiceAccountPlan(spec=spec, status=status)
    if status.user_exists:
        plan.warnings = _drift(spec, status)
        return plan

    # useradd --user-group creates the same-named group itself.
    if spec.group and not status.group_exists and not spec.shares_name_with_group:
        plan.actions.append(
            ServiceAccountAction(
                kind="ensure-group",
                description=f"Create group '{spec.group}'.",
                command=_groupadd(spec),
            )
        )
    plan.actions.append(
        ServiceAccountAction(
            kind="create-user",
            description=f"Create service user '{spec.name}'.",
            command=_useradd(spec),
        )
    )
    return plan


def apply_service_account_plan(
    plan: ServiceAccountPlan,
    *,
    runner: Runner | None = None,
) -> list[list[str]]:
    """Run the plan's commands in order and return them; stop at the first failure."""
    run = runner or _run
    executed: list[list[str]] = []
    for action in plan.actions:
        result = run(action.command)
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "no output").strip()
            raise ExternalCommandError(
                f"{action.description} `{' '.join(action.command)}` exited "
                f"{result.returncode}: {output}"
            )
        executed.append(action.command)
    return executed


def _run(command: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(  # noqa: S603 - fixed argument vector
            command, capture_output=True, text=True, check=False
        )
    except FileNotFoundError as exc:
        raise ExternalCommandError(f"{command[0]} not found: {exc}") from exc


__all__ = [
    "Runner",
    "ServiceAccountAction",
    "ServiceAccountPlan",
    "ServiceAccountSpec",
    "ServiceAccountStatus",
    "apply_service_account_plan",
    "inspect_service_account",
    "plan_service_account",
]
