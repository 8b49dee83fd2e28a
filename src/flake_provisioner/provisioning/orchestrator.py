"""Provisioning orchestrator: sequential steps with compensating rollback.

Runs a statically known list of steps (database, then blob storage) in
declaration order. After each successful step that produced credentials,
the step's compensating action is pushed onto a stack. When a later step
fails, or anything in the loop raises, every registered action is run in
reverse registration order and the run reports failure.

Guarantees:
  1. Steps run one at a time, each awaited before the next starts.
  2. A failed step stops the run; no step is retried.
  3. Rollback runs at most once per run and never after full success.
  4. A failing compensation is recorded and logged; the remaining
     compensations still run and the original failure stays the cause.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Sequence

from ..credentials.lifecycle import LogLevel, LogSink
from ..observability.logging import get_logger
from ..observability.metrics import COMPENSATIONS_TOTAL, PROVISION_STEPS_TOTAL
from .compensation import CompensationStack
from .contracts import (
    CompensatingAction,
    ProvisioningOutcome,
    ProvisioningStep,
    RollbackRecord,
    StepResult,
)

logger = get_logger(__name__)

_LOG_METHODS = {
    'info': 'info',
    'success': 'info',
    'warn': 'warning',
    'error': 'error',
}


class ProvisioningOrchestrator:
    """Drives a provisioning run and unwinds it on failure.

    Each ``execute`` call owns a fresh compensation stack, so one
    orchestrator can run several sequences without leaking state.
    """

    def __init__(self, *, on_log: LogSink | None = None) -> None:
        self._on_log = on_log

    async def execute(self, steps: Sequence[ProvisioningStep]) -> ProvisioningOutcome:
        """Run ``steps`` in order and return the overall outcome."""
        stack = CompensationStack()
        outputs: dict[str, StepResult] = {}
        failed_step: str | None = None
        error: str | None = None
        current: str | None = None

        try:
            for step in steps:
                current = step.name

                if step.skip:
                    outputs[step.name] = StepResult.skip()
                    PROVISION_STEPS_TOTAL.labels(step=step.name, outcome='skipped').inc()
                    self._emit('info', f'Skipping {step.name} provisioning.', step=step.name)
                    continue

                self._emit('info', f'Provisioning {step.name}...', step=step.name)
                result = await step.provisioner.provision()
                outputs[step.name] = result

                if not result.success:
                    PROVISION_STEPS_TOTAL.labels(step=step.name, outcome='failure').inc()
                    failed_step = step.name
                    error = f'{step.name} provisioning failed: {result.error or "unknown error"}'
                    self._emit('error', error, step=step.name, best_effort=True)
                    break

                if result.credentials is not None:
                    stack.push(step, result.compensation or _placeholder(step.name))

                PROVISION_STEPS_TOTAL.labels(step=step.name, outcome='success').inc()
                self._emit('success', f'{step.name} provisioning completed.', step=step.name)
        except Exception as exc:
            # Unexpected errors end the run exactly like an explicit failure.
            PROVISION_STEPS_TOTAL.labels(step=current or 'unknown', outcome='error').inc()
            failed_step = current
            error = str(exc) or type(exc).__name__
            logger.exception('provisioning_step_raised', step=current)
            self._emit(
                'error',
                f'Provisioning error during {current}: {error}',
                step=current,
                best_effort=True,
            )

        registered = stack.registered

        if failed_step is None and error is None:
            stack.clear()
            return ProvisioningOutcome(
                success=True,
                outputs=MappingProxyType(outputs),
                registered=registered,
            )

        rollback, manual_cleanup = await self._rollback(stack)
        return ProvisioningOutcome(
            success=False,
            outputs=MappingProxyType(outputs),
            failed_step=failed_step,
            error=error,
            rollback_attempted=True,
            registered=registered,
            rollback=rollback,
            manual_cleanup=manual_cleanup,
        )

    async def _rollback(
        self,
        stack: CompensationStack,
    ) -> tuple[tuple[RollbackRecord, ...], tuple[str, ...]]:
        """Run every registered compensation, most recent first."""
        records: list[RollbackRecord] = []
        manual: list[str] = []

        if len(stack):
            self._emit('warn', 'Rolling back resources created so far...', best_effort=True)

        for step, action in stack.drain():
            if not action.automated:
                COMPENSATIONS_TOTAL.labels(step=step.name, outcome='manual').inc()
                records.append(RollbackRecord(step_name=step.name, succeeded=True, automated=False))
                manual.extend(action.manual_instructions)
                self._emit(
                    'warn',
                    f'Automated cleanup for {step.name} is not available: {action.description}',
                    step=step.name,
                    best_effort=True,
                )
                continue

            self._emit(
                'info',
                f'Rolling back {step.name}: {action.description}',
                step=step.name,
                best_effort=True,
            )
            try:
                await step.provisioner.compensate(action)
            except Exception as exc:
                COMPENSATIONS_TOTAL.labels(step=step.name, outcome='failure').inc()
                detail = str(exc) or type(exc).__name__
                records.append(RollbackRecord(step_name=step.name, succeeded=False, error=detail))
                manual.extend(action.manual_instructions)
                logger.warning('compensation_failed', step=step.name, error=detail)
                self._emit(
                    'warn',
                    f'Rollback of {step.name} failed: {detail}',
                    step=step.name,
                    best_effort=True,
                )
                continue

            COMPENSATIONS_TOTAL.labels(step=step.name, outcome='success').inc()
            records.append(RollbackRecord(step_name=step.name, succeeded=True))
            self._emit('success', f'Rolled back {step.name}.', step=step.name, best_effort=True)

        return tuple(records), tuple(manual)

    def _emit(
        self,
        level: LogLevel,
        message: str,
        *,
        best_effort: bool = False,
        **fields: object,
    ) -> None:
        """Log and forward to the sink.

        With ``best_effort`` a failing sink is logged instead of raised, so it
        cannot interrupt error handling or rollback.
        """
        getattr(logger, _LOG_METHODS[level])(message, **fields)
        if self._on_log is None:
            return
        if not best_effort:
            self._on_log(level, message)
            return
        try:
            self._on_log(level, message)
        except Exception as exc:
            logger.warning('log_sink_failed', error=str(exc) or type(exc).__name__)


def _placeholder(step_name: str) -> CompensatingAction:
    """Undo slot for a step whose provisioner offers no compensation."""
    return CompensatingAction(
        step_name=step_name,
        description=f'no automated cleanup for {step_name}',
        automated=False,
    )
