"""Unit tests for CredentialLifecycleManager.

Covers the reuse / regenerate / login-required / error paths with an
in-memory CLI and a recording platform API double.
"""

from __future__ import annotations

import json

import pytest

from flake_provisioner.credentials.lifecycle import CredentialLifecycleManager, default_token_name
from flake_provisioner.credentials.platform_client import ApiToken, MintedToken
from flake_provisioner.credentials.store import CredentialStore
from flake_provisioner.credentials.turso_cli import InMemoryTursoCLI
from flake_provisioner.errors import (
    ControlPlaneAPIError,
    CredentialInvalidError,
    EmptyManagementTokenError,
    EmptyMintedTokenError,
    ToolNotInstalledError,
    TransientControlPlaneError,
)

HOST = 'devbox'
TOKEN_NAME = f'fluorite-flake-{HOST}'


class RecordingPlatformAPI:
    """Platform API double: validates against a set of live tokens."""

    def __init__(self, *, live_tokens=(), existing_names=(), minted='minted-token-0001'):
        self.live_tokens = set(live_tokens)
        self.existing_names = list(existing_names)
        self.minted = minted
        self.validate_error: Exception | None = None
        self.create_error: Exception | None = None
        self.calls: list[tuple[str, ...]] = []

    async def validate_token(self, token):
        self.calls.append(('validate', token))
        if self.validate_error is not None:
            raise self.validate_error
        if token not in self.live_tokens:
            raise CredentialInvalidError(401, 'invalid token')
        return {'exp': 1999999999}

    async def list_tokens(self, token):
        self.calls.append(('list', token))
        return [ApiToken(name=name, id=f'id-{name}') for name in self.existing_names]

    async def revoke_token(self, token, token_name):
        self.calls.append(('revoke', token_name))
        self.existing_names.remove(token_name)

    async def create_token(self, token, token_name):
        self.calls.append(('create', token_name))
        if self.create_error is not None:
            raise self.create_error
        self.existing_names.append(token_name)
        self.live_tokens.add(self.minted)
        return MintedToken(name=token_name, token=self.minted, id='id-new')


class LogCollector:
    def __init__(self):
        self.entries: list[tuple[str, str]] = []

    def __call__(self, level, message):
        self.entries.append((level, message))

    def levels(self):
        return [level for level, _ in self.entries]


def _manager(settings, *, cli=None, api=None, prompt=None):
    return CredentialLifecycleManager(
        settings=settings,
        store=CredentialStore(settings),
        cli=cli or InMemoryTursoCLI(),
        api=api or RecordingPlatformAPI(),
        hostname=HOST,
        prompt=prompt,
    )


def _write_config(settings, data):
    settings.config_dir.mkdir(parents=True, exist_ok=True)
    settings.config_path.write_text(json.dumps(data), encoding='utf-8')


def _read_config(settings):
    return json.loads(settings.config_path.read_text(encoding='utf-8'))


def test_default_token_name_uses_prefix_and_hostname():
    assert default_token_name('fluorite-flake', 'laptop') == 'fluorite-flake-laptop'


# ── Test: reuse ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_valid_stored_token_is_reused_without_cli_or_mint(settings):
    _write_config(settings, {'turso': {'access_key': 'live-token'}})
    cli = InMemoryTursoCLI()
    api = RecordingPlatformAPI(live_tokens={'live-token'})
    logs = LogCollector()

    result = await _manager(settings, cli=cli, api=api).ensure_credential(logs)

    assert result.status == 'reused'
    assert result.token == 'live-token'
    assert result.token_name == TOKEN_NAME
    assert api.calls == [('validate', 'live-token')]
    assert cli.calls == []
    assert logs.levels()[-1] == 'success'


# ── Test: regenerate ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_invalid_token_is_revoked_and_regenerated_once(settings):
    _write_config(settings, {'theme': 'dark', 'turso': {'access_key': 'dead-token'}})
    api = RecordingPlatformAPI(existing_names=[TOKEN_NAME, 'unrelated'])

    result = await _manager(settings, api=api).ensure_credential()

    assert result.status == 'generated'
    assert result.token == 'minted-token-0001'
    assert [c for c in api.calls if c[0] == 'revoke'] == [('revoke', TOKEN_NAME)]
    assert [c for c in api.calls if c[0] == 'create'] == [('create', TOKEN_NAME)]
    assert 'unrelated' in api.existing_names
    assert _read_config(settings) == {'theme': 'dark', 'turso': {'access_key': 'minted-token-0001'}}


@pytest.mark.asyncio
async def test_absent_token_skips_revoke_when_name_unused(settings):
    api = RecordingPlatformAPI()
    cli = InMemoryTursoCLI(token='mgmt-xyz')

    result = await _manager(settings, cli=cli, api=api).ensure_credential()

    assert result.status == 'generated'
    assert api.calls == [('list', 'mgmt-xyz'), ('create', TOKEN_NAME)]
    assert cli.calls == [('auth', 'status'), ('auth', 'token')]


# ── Test: unknown validation ─────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize(
    'error',
    [
        TransientControlPlaneError(503, 'unavailable'),
        TransientControlPlaneError(None, 'request timed out'),
        ControlPlaneAPIError(400, 'bad request'),
    ],
)
async def test_unknown_validation_keeps_token_and_raises(settings, error):
    _write_config(settings, {'turso': {'access_key': 'maybe-live'}})
    api = RecordingPlatformAPI()
    api.validate_error = error
    cli = InMemoryTursoCLI()
    logs = LogCollector()

    with pytest.raises(TransientControlPlaneError):
        await _manager(settings, cli=cli, api=api).ensure_credential(logs)

    assert api.calls == [('validate', 'maybe-live')]
    assert cli.calls == []
    assert _read_config(settings) == {'turso': {'access_key': 'maybe-live'}}
    assert 'error' in logs.levels()


# ── Test: login required ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_not_logged_in_returns_login_required(settings):
    prompts = []
    cli = InMemoryTursoCLI(logged_in=False)
    api = RecordingPlatformAPI()

    result = await _manager(
        settings, cli=cli, api=api, prompt=lambda message, title: prompts.append(title)
    ).ensure_credential()

    assert result.status == 'login-required'
    assert result.token is None
    assert prompts == ['Turso login required']
    assert api.calls == []
    assert _read_config(settings) == {}


@pytest.mark.asyncio
async def test_suppress_prompts_skips_prompt(settings):
    prompts = []
    cli = InMemoryTursoCLI(logged_in=False)

    result = await _manager(
        settings, cli=cli, prompt=lambda message, title: prompts.append(title)
    ).ensure_credential(suppress_prompts=True)

    assert result.status == 'login-required'
    assert prompts == []


# ── Test: fatal errors ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_missing_cli_raises_tool_not_installed(settings):
    logs = LogCollector()

    with pytest.raises(ToolNotInstalledError):
        await _manager(settings, cli=InMemoryTursoCLI(installed=False)).ensure_credential(logs)

    assert logs.levels()[-1] == 'error'


@pytest.mark.asyncio
async def test_empty_management_token_is_fatal(settings):
    with pytest.raises(EmptyManagementTokenError):
        await _manager(settings, cli=InMemoryTursoCLI(token='   ')).ensure_credential()


@pytest.mark.asyncio
async def test_empty_minted_token_is_fatal_and_not_persisted(settings):
    _write_config(settings, {'turso': {'access_key': 'dead-token'}})

    with pytest.raises(EmptyMintedTokenError):
        await _manager(settings, api=RecordingPlatformAPI(minted='')).ensure_credential()

    assert _read_config(settings) == {'turso': {'access_key': 'dead-token'}}


@pytest.mark.asyncio
async def test_mint_failure_propagates_and_keeps_old_token(settings):
    _write_config(settings, {'turso': {'access_key': 'dead-token'}})
    api = RecordingPlatformAPI()
    api.create_error = TransientControlPlaneError(500, 'boom')

    with pytest.raises(TransientControlPlaneError):
        await _manager(settings, api=api).ensure_credential()

    assert _read_config(settings) == {'turso': {'access_key': 'dead-token'}}


# ── Test: end-to-end scenario ────────────────────────────────────


@pytest.mark.asyncio
async def test_login_then_generate_then_reuse(settings):
    """Absent config, not logged in, then logged in, then reused."""
    cli = InMemoryTursoCLI(logged_in=False)
    api = RecordingPlatformAPI()
    manager = _manager(settings, cli=cli, api=api)

    first = await manager.ensure_credential(suppress_prompts=True)
    assert first.status == 'login-required'
    assert settings.config_path.exists()

    cli.logged_in = True
    second = await manager.ensure_credential()
    assert second.status == 'generated'
    assert _read_config(settings)['turso']['access_key'] == second.token

    api.calls.clear()
    cli.calls.clear()
    third = await manager.ensure_credential()
    assert third.status == 'reused'
    assert third.token == second.token
    assert api.calls == [('validate', second.token)]
    assert cli.calls == []
