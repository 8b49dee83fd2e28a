"""End-to-end provisioning entry point.

``execute_provisioning`` ensures a platform credential, then runs the
database step followed by the optional blob step under the orchestrator.
Fatal credential errors propagate to the caller; step failures come back as
a failed ``ExecutionResult`` after rollback.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Mapping

from ..credentials.lifecycle import CredentialLifecycleManager, CredentialStatus, LogSink
from ..credentials.turso_cli import ControlPlaneCLI
from ..observability.logging import get_logger, run_id_ctx
from .blob import BlobConfig, BlobStep
from .contracts import ProvisioningOutcome, ProvisioningStep, ResourceRecord
from .orchestrator import ProvisioningOrchestrator
from .service import DatabaseProvisioningConfig, DatabaseProvisioningService, DatabaseStep

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ProvisioningRequest:
    database: DatabaseProvisioningConfig
    blob: BlobConfig | None = None


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """What a caller needs to report a provisioning run.

    credential_status is None when no step needed a platform token.
    ``credentials`` maps step name to the credentials that step produced.
    ``remediation`` holds the failed step's hints followed by any manual
    cleanup commands left over from rollback.
    """

    success: bool
    run_id: str
    credential_status: CredentialStatus | None
    outcome: ProvisioningOutcome | None = None
    error: str | None = None
    credentials: Mapping[str, Mapping[str, Any]] | None = None
    databases: tuple[ResourceRecord, ...] = ()
    setup_instructions: tuple[str, ...] = ()
    remediation: tuple[str, ...] = ()

    @property
    def login_required(self) -> bool:
        return self.credential_status == 'login-required'


def build_steps(
    request: ProvisioningRequest,
    *,
    cli: ControlPlaneCLI,
    api_token: str | None,
) -> list[ProvisioningStep]:
    """Database first, then blob storage when requested."""
    service = DatabaseProvisioningService(cli)
    steps = [
        ProvisioningStep(
            name='database',
            provisioner=DatabaseStep(service, request.database, api_token=api_token),
            skip=request.database.skip_provisioning,
        ),
    ]
    if request.blob is not None:
        steps.append(ProvisioningStep(name='blob', provisioner=BlobStep(request.blob)))
    return steps


async def execute_provisioning(
    request: ProvisioningRequest,
    *,
    lifecycle: CredentialLifecycleManager,
    cli: ControlPlaneCLI,
    on_log: LogSink | None = None,
    suppress_prompts: bool = False,
) -> ExecutionResult:
    """Ensure credentials, then provision every requested resource.

    Only the database step authenticates against Turso, so the credential
    lifecycle is skipped entirely when database provisioning is skipped.

    Raises:
        ProvisionerError: Fatal credential failures from
            ``CredentialLifecycleManager.ensure_credential``.
    """
    run_id = uuid.uuid4().hex[:12]
    token = run_id_ctx.set(run_id)
    try:
        api_token: str | None = None
        credential_status: CredentialStatus | None = None
        if request.database.skip_provisioning:
            logger.info('credential_check_skipped', reason='database provisioning skipped')
        else:
            credential = await lifecycle.ensure_credential(on_log, suppress_prompts)
            if credential.status == 'login-required':
                logger.info('provisioning_blocked', reason='login-required')
                return ExecutionResult(
                    success=False,
                    run_id=run_id,
                    credential_status=credential.status,
                    error='Turso CLI login is required before provisioning',
                    remediation=('Run: turso auth login', 'Then run the command again.'),
                )
            api_token = credential.token
            credential_status = credential.status

        steps = build_steps(request, cli=cli, api_token=api_token)
        outcome = await ProvisioningOrchestrator(on_log=on_log).execute(steps)
        logger.info(
            'provisioning_finished',
            success=outcome.success,
            failed_step=outcome.failed_step,
            compensations=len(outcome.rollback),
        )
        return _result(run_id, credential_status, outcome)
    finally:
        run_id_ctx.reset(token)


def _result(
    run_id: str,
    credential_status: CredentialStatus | None,
    outcome: ProvisioningOutcome,
) -> ExecutionResult:
    rolled_back = {
        record.step_name for record in outcome.rollback if record.succeeded and record.automated
    }
    credentials: dict[str, Mapping[str, Any]] = {}
    databases: list[ResourceRecord] = []
    setup: list[str] = []
    for name, output in outcome.outputs.items():
        if output.credentials is not None:
            credentials[name] = output.credentials
        for record in output.resources:
            if name in rolled_back and record.status == 'created':
                record = replace(record, status='removed')
            databases.append(record)
        setup.extend(output.setup_instructions)

    if outcome.success:
        return ExecutionResult(
            success=True,
            run_id=run_id,
            credential_status=credential_status,
            outcome=outcome,
            credentials=credentials,
            databases=tuple(databases),
            setup_instructions=tuple(setup),
        )

    remediation: list[str] = []
    failed_output = outcome.outputs.get(outcome.failed_step or '')
    if failed_output is not None:
        remediation.extend(failed_output.remediation)
    remediation.extend(outcome.manual_cleanup)

    return ExecutionResult(
        success=False,
        run_id=run_id,
        credential_status=credential_status,
        outcome=outcome,
        error=outcome.error,
        databases=tuple(databases),
        remediation=tuple(remediation),
    )
