"""Blob storage step.

There is no automated blob store creation. A caller-supplied read/write
token is accepted as-is; without one the step fails with instructions for
creating the store by hand, which rolls back everything provisioned before.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .contracts import CompensatingAction, StepResult
from .naming import blob_store_name

logger = logging.getLogger(__name__)

BLOB_TOKEN_PREFIX = 'blob_rw_'


@dataclass(frozen=True, slots=True)
class BlobConfig:
    project_name: str
    token: str | None = None
    store_name: str | None = None


def manual_setup_instructions(store_name: str) -> tuple[str, ...]:
    return (
        'Automated blob store creation is not available. Create it manually:',
        '1. Open the Vercel dashboard and select the project',
        f"2. Go to Storage > Blob and create a store named '{store_name}'",
        '3. Copy the read/write token (it starts with blob_rw_)',
        '4. Re-run with --blob-token <token>, or set BLOB_READ_WRITE_TOKEN',
    )


class BlobStep:
    """ResourceProvisioner for blob storage credentials."""

    def __init__(self, config: BlobConfig) -> None:
        self._config = config

    @property
    def store_name(self) -> str:
        return self._config.store_name or blob_store_name(self._config.project_name)

    async def provision(self) -> StepResult:
        store_name = self.store_name
        token = (self._config.token or '').strip()

        if not token:
            return StepResult.failed(
                f"no blob store token for '{store_name}'",
                remediation=manual_setup_instructions(store_name),
            )
        if not token.startswith(BLOB_TOKEN_PREFIX):
            return StepResult.failed(
                f'blob token must start with {BLOB_TOKEN_PREFIX}',
                remediation=manual_setup_instructions(store_name),
            )

        logger.info('Using supplied token for blob store %s', store_name)
        return StepResult.ok(
            credentials={'store_name': store_name, 'token': token},
            compensation=CompensatingAction(
                step_name='blob',
                description=f"blob store '{store_name}' was supplied by the caller and is kept",
                resources=(store_name,),
                automated=False,
            ),
        )

    async def compensate(self, action: CompensatingAction) -> None:
        logger.info('Nothing to undo for blob store %s', ', '.join(action.resources))
