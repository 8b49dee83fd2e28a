"""Database provisioning service for per-environment Turso databases.

``DatabaseProvisioningService.provision`` creates (or reuses) one database per
environment, reads its URL and mints a database token, strictly one
environment after another. Databases are marked ``created`` or
``existing``; only ``created`` ones are ever destroyed.

If an environment fails, databases created earlier in the same call are
destroyed before the failure is returned, so a failed call owns nothing.
After success, ``DatabaseStep`` hands the orchestrator a compensating action
that destroys exactly the databases this run created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Mapping
from urllib.parse import urlparse

from ..credentials.turso_cli import ControlPlaneCLI
from ..errors import (
    ControlPlaneCLIError,
    CredentialInvalidError,
    NamingError,
    ProvisionerError,
    ToolNotInstalledError,
    TransientControlPlaneError,
)
from .contracts import CompensatingAction, ResourceRecord, StepResult
from .naming import database_names, extract_project_base_name, validate_database_name

logger = logging.getLogger(__name__)

DatabaseMode = Literal['create', 'existing']

ProvisioningErrorType = Literal[
    'AUTHENTICATION_FAILED',
    'QUOTA_EXCEEDED',
    'NETWORK_ERROR',
    'NAMING_CONFLICT',
    'INVALID_NAME',
    'PERMISSION_DENIED',
    'TOOL_NOT_INSTALLED',
    'UNKNOWN_ERROR',
]

REMEDIATION_HINTS: Mapping[ProvisioningErrorType, tuple[str, ...]] = {
    'AUTHENTICATION_FAILED': (
        'The Turso CLI is not authenticated. Run: turso auth login',
        'Then run the command again.',
    ),
    'QUOTA_EXCEEDED': (
        'The Turso plan quota has been reached.',
        'Delete unused databases or upgrade the plan, then retry.',
    ),
    'NETWORK_ERROR': (
        'A network error occurred while talking to Turso.',
        'Check the connection and run the command again.',
    ),
    'NAMING_CONFLICT': (
        'A database with the same name already exists.',
        'Use existing-database mode or choose a different project name.',
    ),
    'INVALID_NAME': (
        'Use a project name of at least 3 letters or digits.',
    ),
    'PERMISSION_DENIED': (
        'The current Turso account cannot manage these databases.',
        'Check the organization selected with: turso org switch',
    ),
    'TOOL_NOT_INSTALLED': (
        'Install the Turso CLI: https://docs.turso.tech/cli/installation',
        'Then run: turso auth login',
    ),
    'UNKNOWN_ERROR': (
        'An unexpected error occurred. Re-run with LOG_LEVEL=DEBUG for details.',
    ),
}

VALID_URL_SCHEMES = frozenset({'libsql', 'postgresql', 'postgres', 'file'})
MIN_TOKEN_LENGTH = 10

SETUP_INSTRUCTIONS = (
    'Databases were created. Next, create the tables:',
    '1. Change into the project directory',
    '2. Run pnpm db:push to create the tables',
    '3. Run pnpm db:generate to generate the Prisma client',
    '4. Run pnpm db:seed to load sample data',
    '5. Run pnpm dev to start the application',
)


@dataclass(frozen=True, slots=True)
class DatabaseProvisioningConfig:
    """Caller configuration for the database step.

    Attributes:
        project_name: Base name for derived database names.
        environments: Environments that get a database.
        mode: ``create`` derives names from project_name; ``existing`` uses
            ``naming`` as given.
        naming: Explicit environment -> database name mapping.
        location: Turso location for new databases.
        group: Turso group for new databases.
        skip_provisioning: Succeed immediately without touching anything.
    """

    project_name: str
    environments: tuple[str, ...] = ('dev', 'staging', 'prod')
    mode: DatabaseMode = 'create'
    naming: Mapping[str, str] | None = None
    location: str | None = None
    group: str | None = None
    skip_provisioning: bool = False


@dataclass(frozen=True, slots=True)
class DatabaseCredentials:
    """Connection URL and auth token per environment."""

    urls: Mapping[str, str]
    tokens: Mapping[str, str]

    def as_dict(self) -> dict[str, dict[str, str]]:
        return {'urls': dict(self.urls), 'tokens': dict(self.tokens)}


@dataclass(frozen=True, slots=True)
class ValidationReport:
    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ProvisioningResult:
    """Outcome of one ``DatabaseProvisioningService.provision`` call."""

    success: bool
    credentials: DatabaseCredentials | None = None
    databases: tuple[ResourceRecord, ...] = ()
    setup_instructions: tuple[str, ...] = ()
    error: str | None = None
    error_type: ProvisioningErrorType | None = None
    remediation: tuple[str, ...] = ()
    # Databases that could not be cleaned up after a failure.
    leftover: tuple[str, ...] = ()


def classify_error(exc: BaseException) -> ProvisioningErrorType:
    """Map a provisioning exception onto an actionable error type."""
    if isinstance(exc, ToolNotInstalledError):
        return 'TOOL_NOT_INSTALLED'
    if isinstance(exc, NamingError):
        return 'INVALID_NAME'
    if isinstance(exc, CredentialInvalidError):
        return 'AUTHENTICATION_FAILED'
    if isinstance(exc, TransientControlPlaneError):
        return 'NETWORK_ERROR'
    if isinstance(exc, ControlPlaneCLIError) and exc.return_code is None:
        return 'NETWORK_ERROR'

    text = str(exc).lower()
    if isinstance(exc, ControlPlaneCLIError):
        text = f'{text} {exc.stderr.lower()} {exc.stdout.lower()}'
    if 'not logged in' in text or 'unauthorized' in text or '401' in text:
        return 'AUTHENTICATION_FAILED'
    if 'quota' in text or 'limit reached' in text:
        return 'QUOTA_EXCEEDED'
    if 'already exists' in text:
        return 'NAMING_CONFLICT'
    if 'permission' in text or 'forbidden' in text or '403' in text:
        return 'PERMISSION_DENIED'
    if 'network' in text or 'timed out' in text or 'connection' in text:
        return 'NETWORK_ERROR'
    return 'UNKNOWN_ERROR'


def validate_credentials(
    credentials: DatabaseCredentials,
    environments: tuple[str, ...],
) -> ValidationReport:
    """Check that every environment has a usable URL and token."""
    errors: list[str] = []
    warnings: list[str] = []

    for env in environments:
        url = credentials.urls.get(env, '')
        token = credentials.tokens.get(env, '')

        if not url:
            errors.append(f'{env}: database URL is missing')
        elif urlparse(url).scheme not in VALID_URL_SCHEMES:
            errors.append(f'{env}: database URL has an unsupported format: {url}')

        if not token:
            errors.append(f'{env}: auth token is missing')
        elif len(token) < MIN_TOKEN_LENGTH:
            warnings.append(f'{env}: auth token looks too short')

    return ValidationReport(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


class DatabaseProvisioningService:
    """Creates per-environment databases through the control-plane CLI."""

    def __init__(self, cli: ControlPlaneCLI) -> None:
        self._cli = cli

    def resolve_names(self, config: DatabaseProvisioningConfig) -> dict[str, str]:
        if config.mode == 'existing' and config.naming:
            names: dict[str, str] = {}
            for env in config.environments:
                if env not in config.naming:
                    raise NamingError(f'No database name given for environment {env!r}')
                validate_database_name(config.naming[env], environment=env)
                names[env] = config.naming[env]
            return names
        if config.mode == 'existing':
            return database_names(extract_project_base_name(config.project_name), config.environments)
        return database_names(config.project_name, config.environments)

    async def provision(
        self,
        config: DatabaseProvisioningConfig,
        api_token: str | None = None,
    ) -> ProvisioningResult:
        """Provision one database per environment.

        Never raises for provisioning problems; they are reported in the
        returned result together with a remediation hint.
        """
        if config.skip_provisioning:
            logger.info('Database provisioning skipped')
            return ProvisioningResult(success=True)

        try:
            names = self.resolve_names(config)
            existing = {db.name for db in await self._cli.list_databases(api_token=api_token)}
        except Exception as exc:
            return self._failure(f'Database provisioning failed: {exc}', exc)

        records: list[ResourceRecord] = []
        created: list[str] = []
        urls: dict[str, str] = {}
        tokens: dict[str, str] = {}

        for env in config.environments:
            name = names[env]
            try:
                if name in existing:
                    status = 'existing'
                    logger.info('%s database %s already exists; reusing it', env, name)
                else:
                    await self._cli.create_database(
                        name,
                        api_token=api_token,
                        location=config.location,
                        group=config.group,
                    )
                    created.append(name)
                    status = 'created'
                    logger.info('%s database %s created', env, name)

                url = await self._cli.database_url(name, api_token=api_token)
                db_token = await self._cli.create_database_token(name, api_token=api_token)
            except Exception as exc:
                logger.error('%s database %s failed: %s', env, name, exc)
                records.append(ResourceRecord(name=name, environment=env, status='failed'))
                leftover = await self._discard(created, api_token)
                return self._failure(
                    f"Failed to provision {env} database '{name}': {exc}",
                    exc,
                    databases=tuple(records),
                    leftover=leftover,
                )

            urls[env] = url
            tokens[env] = db_token
            records.append(ResourceRecord(name=name, environment=env, status=status, url=url))

        credentials = DatabaseCredentials(urls=urls, tokens=tokens)
        report = validate_credentials(credentials, config.environments)
        for warning in report.warnings:
            logger.warning('Credential check: %s', warning)
        if not report.valid:
            leftover = await self._discard(created, api_token)
            return ProvisioningResult(
                success=False,
                databases=tuple(records),
                error='Provisioned credentials are incomplete: ' + '; '.join(report.errors),
                error_type='UNKNOWN_ERROR',
                remediation=REMEDIATION_HINTS['UNKNOWN_ERROR'],
                leftover=leftover,
            )

        return ProvisioningResult(
            success=True,
            credentials=credentials,
            databases=tuple(records),
            setup_instructions=SETUP_INSTRUCTIONS,
        )

    async def destroy_databases(self, names: tuple[str, ...], api_token: str | None = None) -> None:
        """Destroy ``names`` newest first.

        Raises:
            ProvisionerError: Listing the databases that could not be destroyed.
        """
        failed = await self._discard(list(names), api_token)
        if failed:
            raise ProvisionerError(f"Could not destroy databases: {', '.join(failed)}")

    async def _discard(self, names: list[str], api_token: str | None) -> tuple[str, ...]:
        """Best-effort destroy; returns the names that are still present."""
        failed: list[str] = []
        for name in reversed(names):
            try:
                await self._cli.destroy_database(name, api_token=api_token)
            except Exception as exc:
                logger.warning('Could not destroy database %s: %s', name, exc)
                failed.append(name)
        return tuple(failed)

    def _failure(
        self,
        message: str,
        exc: BaseException,
        *,
        databases: tuple[ResourceRecord, ...] = (),
        leftover: tuple[str, ...] = (),
    ) -> ProvisioningResult:
        error_type = classify_error(exc)
        remediation = REMEDIATION_HINTS[error_type]
        if leftover:
            remediation = (*remediation, *destroy_commands(leftover))
        return ProvisioningResult(
            success=False,
            databases=databases,
            error=message,
            error_type=error_type,
            remediation=remediation,
            leftover=leftover,
        )


def destroy_commands(names: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(f'turso db destroy {name}' for name in names)


class DatabaseStep:
    """ResourceProvisioner adapter running the database service as a step."""

    def __init__(
        self,
        service: DatabaseProvisioningService,
        config: DatabaseProvisioningConfig,
        *,
        api_token: str | None = None,
    ) -> None:
        self._service = service
        self._config = config
        self._api_token = api_token
        self.last_result: ProvisioningResult | None = None

    async def provision(self) -> StepResult:
        result = await self._service.provision(self._config, self._api_token)
        self.last_result = result

        if not result.success:
            return StepResult.failed(result.error or 'unknown error', remediation=result.remediation)
        if result.credentials is None:
            return StepResult.ok()

        created = tuple(db.name for db in result.databases if db.status == 'created')
        compensation = CompensatingAction(
            step_name='database',
            description=(
                f"destroy databases {', '.join(created)}" if created else 'no databases were created'
            ),
            resources=created,
            manual_instructions=destroy_commands(created),
        )
        return StepResult.ok(
            credentials=result.credentials.as_dict(),
            resources=result.databases,
            compensation=compensation,
            setup_instructions=result.setup_instructions,
        )

    async def compensate(self, action: CompensatingAction) -> None:
        if not action.resources:
            return
        await self._service.destroy_databases(action.resources, self._api_token)
