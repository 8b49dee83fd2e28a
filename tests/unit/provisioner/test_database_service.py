"""Unit tests for DatabaseProvisioningService and the database step."""

from __future__ import annotations

import pytest

from flake_provisioner.credentials.turso_cli import InMemoryTursoCLI
from flake_provisioner.errors import (
    ControlPlaneCLIError,
    CredentialInvalidError,
    NamingError,
    ToolNotInstalledError,
    TransientControlPlaneError,
)
from flake_provisioner.provisioning.service import (
    DatabaseCredentials,
    DatabaseProvisioningConfig,
    DatabaseProvisioningService,
    DatabaseStep,
    classify_error,
    validate_credentials,
)

ENVS = ('dev', 'staging', 'prod')


def _config(**overrides) -> DatabaseProvisioningConfig:
    return DatabaseProvisioningConfig(project_name='Shop App', **overrides)


# ── Test: provision ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_provision_creates_one_database_per_environment():
    cli = InMemoryTursoCLI()
    service = DatabaseProvisioningService(cli)

    result = await service.provision(_config(), 'platform-token')

    assert result.success is True
    assert [(db.environment, db.name, db.status) for db in result.databases] == [
        ('dev', 'shop-app-dev', 'created'),
        ('staging', 'shop-app-staging', 'created'),
        ('prod', 'shop-app', 'created'),
    ]
    assert result.credentials.urls['prod'] == 'libsql://shop-app-org.turso.io'
    assert result.credentials.tokens['dev'] == 'db-token-for-shop-app-dev'
    assert any('pnpm db:push' in line for line in result.setup_instructions)


@pytest.mark.asyncio
async def test_provision_is_sequential_per_environment():
    cli = InMemoryTursoCLI()

    await DatabaseProvisioningService(cli).provision(_config(environments=('dev', 'prod')))

    assert cli.calls == [
        ('db', 'list'),
        ('db', 'create', 'shop-app-dev'),
        ('db', 'show', 'shop-app-dev'),
        ('db', 'tokens', 'create', 'shop-app-dev'),
        ('db', 'create', 'shop-app'),
        ('db', 'show', 'shop-app'),
        ('db', 'tokens', 'create', 'shop-app'),
    ]


@pytest.mark.asyncio
async def test_existing_databases_are_reused():
    cli = InMemoryTursoCLI(existing={'shop-app': 'libsql://shop-app-org.turso.io'})

    result = await DatabaseProvisioningService(cli).provision(_config())

    statuses = {db.name: db.status for db in result.databases}
    assert statuses == {'shop-app-dev': 'created', 'shop-app-staging': 'created', 'shop-app': 'existing'}
    assert ('db', 'create', 'shop-app') not in cli.calls


@pytest.mark.asyncio
async def test_failure_destroys_databases_created_in_same_call():
    cli = InMemoryTursoCLI(
        existing={'shop-app-dev': 'libsql://shop-app-dev-org.turso.io'},
        fail_create={'shop-app'},
    )

    result = await DatabaseProvisioningService(cli).provision(_config())

    assert result.success is False
    assert "prod database 'shop-app'" in result.error
    assert result.leftover == ()
    destroyed = [call[2] for call in cli.calls if call[:2] == ('db', 'destroy')]
    assert destroyed == ['shop-app-staging']
    assert 'shop-app-dev' in cli.existing


@pytest.mark.asyncio
async def test_failed_cleanup_is_reported_as_manual_command():
    cli = InMemoryTursoCLI(fail_token={'shop-app'}, fail_destroy={'shop-app-dev'})

    result = await DatabaseProvisioningService(cli).provision(_config())

    assert result.success is False
    assert result.leftover == ('shop-app-dev',)
    assert 'turso db destroy shop-app-dev' in result.remediation


@pytest.mark.asyncio
async def test_skip_provisioning_touches_nothing():
    cli = InMemoryTursoCLI()

    result = await DatabaseProvisioningService(cli).provision(_config(skip_provisioning=True))

    assert result.success is True
    assert result.credentials is None
    assert cli.calls == []


@pytest.mark.asyncio
async def test_invalid_project_name_fails_with_invalid_name():
    cli = InMemoryTursoCLI()

    result = await DatabaseProvisioningService(cli).provision(
        DatabaseProvisioningConfig(project_name='!!')
    )

    assert result.success is False
    assert result.error_type == 'INVALID_NAME'
    assert cli.calls == []


@pytest.mark.asyncio
async def test_existing_mode_uses_explicit_names():
    cli = InMemoryTursoCLI(existing={'legacy-db': 'libsql://legacy-db-org.turso.io'})
    config = DatabaseProvisioningConfig(
        project_name='shop',
        mode='existing',
        environments=('prod',),
        naming={'prod': 'legacy-db'},
    )

    result = await DatabaseProvisioningService(cli).provision(config)

    assert result.success is True
    assert result.databases[0].name == 'legacy-db'
    assert result.databases[0].status == 'existing'


def test_existing_mode_strips_environment_suffix():
    service = DatabaseProvisioningService(InMemoryTursoCLI())

    names = service.resolve_names(DatabaseProvisioningConfig(project_name='shop-staging', mode='existing'))

    assert names == {'dev': 'shop-dev', 'staging': 'shop-staging', 'prod': 'shop'}


def test_existing_mode_requires_name_for_every_environment():
    service = DatabaseProvisioningService(InMemoryTursoCLI())
    config = DatabaseProvisioningConfig(project_name='shop', mode='existing', naming={'prod': 'shop'})

    with pytest.raises(NamingError):
        service.resolve_names(config)


# ── Test: DatabaseStep ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_step_compensation_covers_only_created_databases():
    cli = InMemoryTursoCLI(existing={'shop-app': 'libsql://shop-app-org.turso.io'})
    step = DatabaseStep(DatabaseProvisioningService(cli), _config(), api_token='platform-token')

    result = await step.provision()

    assert result.success is True
    assert result.compensation.resources == ('shop-app-dev', 'shop-app-staging')
    assert result.compensation.manual_instructions == (
        'turso db destroy shop-app-dev',
        'turso db destroy shop-app-staging',
    )
    assert result.credentials['urls']['prod'] == 'libsql://shop-app-org.turso.io'

    await step.compensate(result.compensation)

    assert 'shop-app-dev' not in cli.existing
    assert 'shop-app-staging' not in cli.existing
    assert 'shop-app' in cli.existing


@pytest.mark.asyncio
async def test_step_compensate_raises_when_destroy_fails():
    cli = InMemoryTursoCLI(fail_destroy={'shop-app'})
    step = DatabaseStep(DatabaseProvisioningService(cli), _config())
    result = await step.provision()

    with pytest.raises(Exception, match='shop-app'):
        await step.compensate(result.compensation)


@pytest.mark.asyncio
async def test_step_failure_carries_remediation():
    cli = InMemoryTursoCLI(installed=False)
    step = DatabaseStep(DatabaseProvisioningService(cli), _config())

    result = await step.provision()

    assert result.success is False
    assert result.compensation is None
    assert any('docs.turso.tech' in line for line in result.remediation)


# ── Test: classification and validation ──────────────────────────


@pytest.mark.parametrize(
    ('error', 'expected'),
    [
        (ToolNotInstalledError('turso'), 'TOOL_NOT_INSTALLED'),
        (CredentialInvalidError(401, 'unauthorized'), 'AUTHENTICATION_FAILED'),
        (TransientControlPlaneError(None, 'timed out'), 'NETWORK_ERROR'),
        (ControlPlaneCLIError(('turso', 'db', 'create'), None), 'NETWORK_ERROR'),
        (ControlPlaneCLIError(('turso', 'db', 'create'), 1, '', 'database quota exceeded'), 'QUOTA_EXCEEDED'),
        (ControlPlaneCLIError(('turso', 'db', 'create'), 1, '', 'database already exists'), 'NAMING_CONFLICT'),
        (ControlPlaneCLIError(('turso', 'db', 'create'), 1, '', 'permission denied'), 'PERMISSION_DENIED'),
        (ControlPlaneCLIError(('turso', 'db', 'create'), 1, '', 'you are not logged in'), 'AUTHENTICATION_FAILED'),
        (RuntimeError('something odd'), 'UNKNOWN_ERROR'),
    ],
)
def test_classify_error(error, expected):
    assert classify_error(error) == expected


def test_validate_credentials_reports_missing_and_malformed():
    credentials = DatabaseCredentials(
        urls={'dev': 'libsql://a.turso.io', 'staging': 'https://wrong', 'prod': ''},
        tokens={'dev': 'short', 'staging': 'long-enough-token', 'prod': 'long-enough-token'},
    )

    report = validate_credentials(credentials, ENVS)

    assert report.valid is False
    assert report.errors == (
        'staging: database URL has an unsupported format: https://wrong',
        'prod: database URL is missing',
    )
    assert report.warnings == ('dev: auth token looks too short',)


@pytest.mark.parametrize('url', ['libsql://x', 'postgres://x', 'postgresql://x', 'file:local.db'])
def test_validate_credentials_accepts_known_schemes(url):
    credentials = DatabaseCredentials(urls={'dev': url}, tokens={'dev': 'long-enough-token'})

    assert validate_credentials(credentials, ('dev',)).valid is True
