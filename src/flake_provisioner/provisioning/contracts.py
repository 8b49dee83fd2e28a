"""Provisioning step contracts shared by provisioners and the orchestrator.

A provisioner turns one step configuration into a StepResult. When the step
creates something that must be undone on a later failure, the result carries
a CompensatingAction: an immutable description of the undo, interpreted by
the same provisioner's ``compensate``. Actions are plain values so a run's
compensation stack can be inspected without executing anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Protocol

ResourceStatus = Literal['created', 'existing', 'failed', 'removed']


@dataclass(frozen=True, slots=True)
class ResourceRecord:
    """One concrete resource touched by a step."""

    name: str
    environment: str
    status: ResourceStatus
    url: str = ''


@dataclass(frozen=True, slots=True)
class CompensatingAction:
    """Undo description for exactly one successful step.

    Attributes:
        step_name: Step whose effects this action reverses.
        description: Human-readable summary for logs.
        resources: Names of the resources to remove.
        automated: False when no automated deletion exists; the action
            then only contributes ``manual_instructions``.
        manual_instructions: Commands a user can run to clean up by hand.
    """

    step_name: str
    description: str
    resources: tuple[str, ...] = ()
    automated: bool = True
    manual_instructions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one provisioning step."""

    success: bool
    credentials: Mapping[str, Any] | None = None
    resources: tuple[ResourceRecord, ...] = ()
    error: str | None = None
    compensation: CompensatingAction | None = None
    skipped: bool = False
    setup_instructions: tuple[str, ...] = ()
    remediation: tuple[str, ...] = ()

    @classmethod
    def ok(
        cls,
        *,
        credentials: Mapping[str, Any] | None = None,
        resources: tuple[ResourceRecord, ...] = (),
        compensation: CompensatingAction | None = None,
        setup_instructions: tuple[str, ...] = (),
    ) -> StepResult:
        return cls(
            success=True,
            credentials=MappingProxyType(dict(credentials)) if credentials is not None else None,
            resources=resources,
            compensation=compensation,
            setup_instructions=setup_instructions,
        )

    @classmethod
    def skip(cls) -> StepResult:
        return cls(success=True, skipped=True)

    @classmethod
    def failed(cls, error: str, *, remediation: tuple[str, ...] = ()) -> StepResult:
        return cls(success=False, error=error, remediation=remediation)


class ResourceProvisioner(Protocol):
    """Creates one kind of resource and knows how to undo it."""

    async def provision(self) -> StepResult:
        """Create the resource. Failures are reported, not raised."""
        ...

    async def compensate(self, action: CompensatingAction) -> None:
        """Undo the effects described by ``action``. May raise."""
        ...


@dataclass(frozen=True, slots=True)
class ProvisioningStep:
    """One named unit of the provisioning sequence."""

    name: str
    provisioner: ResourceProvisioner
    skip: bool = False


@dataclass(frozen=True, slots=True)
class RollbackRecord:
    """Result of running one compensating action."""

    step_name: str
    succeeded: bool
    automated: bool = True
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ProvisioningOutcome:
    """Overall result of one orchestrator run."""

    success: bool
    outputs: Mapping[str, StepResult] = field(default_factory=lambda: MappingProxyType({}))
    failed_step: str | None = None
    error: str | None = None
    rollback_attempted: bool = False
    registered: tuple[CompensatingAction, ...] = ()
    rollback: tuple[RollbackRecord, ...] = ()
    manual_cleanup: tuple[str, ...] = ()

    @property
    def rollback_failures(self) -> tuple[RollbackRecord, ...]:
        return tuple(record for record in self.rollback if not record.succeeded)
