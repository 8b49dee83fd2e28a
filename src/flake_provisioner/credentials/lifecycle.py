"""Credential lifecycle: reuse, or regenerate, the scoped platform token.

Flow for ``ensure_credential``::

    start -> validate stored token
               valid   -> [reused]
               unknown -> [error]   (TransientControlPlaneError, token kept)
               invalid / absent
                 -> CLI login check
                      not logged in -> [login-required]
                      logged in     -> revoke + mint -> persist -> [generated]
                      failures      -> [error]   (raised)

A stored token is only replaced after a definitive 401/404. Network blips
and 5xx responses never trigger revocation. The local config keeps the old
token until a new one has been minted and written.

Nothing here writes to the terminal. Progress is reported through the
injected ``on_log(level, message)`` sink and the module logger.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Callable, Literal

from ..errors import (
    CredentialInvalidError,
    EmptyManagementTokenError,
    EmptyMintedTokenError,
    ProvisionerError,
    ToolNotInstalledError,
    TransientControlPlaneError,
)
from ..observability.metrics import CREDENTIAL_OUTCOMES_TOTAL, TOKEN_VALIDATIONS_TOTAL
from ..settings import ProvisionerSettings
from .platform_client import PlatformClient
from .store import CredentialStore
from .turso_cli import ControlPlaneCLI

logger = logging.getLogger(__name__)

LogLevel = Literal["info", "warn", "error", "success"]
LogSink = Callable[[LogLevel, str], None]

CredentialStatus = Literal["reused", "generated", "login-required"]
ValidationState = Literal["valid", "invalid", "unknown"]

_STDLIB_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# ── Messages ─────────────────────────────────────────────────────────

MSG_INITIALIZING = "Initializing Turso Cloud credentials..."
MSG_VALID_TOKEN_REUSED = "Existing access token is valid; reusing it."
MSG_INVALID_TOKEN = "Stored access token is no longer valid; regenerating."
MSG_NO_TOKEN = "No stored access token found; generating a new one."
MSG_VALIDATION_UNAVAILABLE = (
    "Could not verify the stored access token ({status}); "
    "keeping it unchanged. Check your network connection and retry."
)
MSG_LOGIN_REQUIRED_TITLE = "Turso login required"
MSG_LOGIN_REQUIRED = "You are not logged in to the Turso CLI. Run 'turso auth login' in a terminal."
MSG_RETRY_HINT = "After logging in, run the command again."
MSG_LOGIN_CONFIRMED = "Turso CLI login confirmed."
MSG_MANAGEMENT_TOKEN_EMPTY = "'turso auth token' returned an empty token."
MSG_MINTED_TOKEN_EMPTY = "The control plane returned an empty token."
MSG_TOKEN_REVOKED = "Revoked existing token '{name}'."
MSG_TOKEN_REGENERATED = "Created token '{name}'."
MSG_TOKEN_STORED = "Access token saved to {path}."
MSG_READY = "Turso Cloud credentials are ready."
MSG_API_ERROR = "Turso API error ({status})."


@dataclass(frozen=True, slots=True)
class TokenValidation:
    """Tri-state result of validating a stored token.

    ``invalid`` is only produced for a definitive 401/404. Anything else
    that prevents a verdict is ``unknown`` and keeps the token.
    """

    state: ValidationState
    status_code: int | None = None
    error: Exception | None = None

    @property
    def is_valid(self) -> bool:
        return self.state == "valid"

    @property
    def is_invalid(self) -> bool:
        return self.state == "invalid"

    @property
    def is_unknown(self) -> bool:
        return self.state == "unknown"


@dataclass(frozen=True, slots=True)
class CredentialResult:
    """Terminal outcome of ``ensure_credential``."""

    status: CredentialStatus
    token: str | None = None
    token_name: str | None = None


def default_token_name(prefix: str, hostname: str | None = None) -> str:
    """Deterministic scoped token name: ``{prefix}-{hostname}``."""
    return f"{prefix}-{hostname or socket.gethostname()}"


class CredentialLifecycleManager:
    """Decides whether to reuse the stored token or mint a new one.

    All collaborators are injected; instances hold no cached tokens, so
    several managers in one process never share state.
    """

    def __init__(
        self,
        *,
        settings: ProvisionerSettings,
        store: CredentialStore,
        cli: ControlPlaneCLI,
        api: PlatformClient,
        hostname: str | None = None,
        prompt: Callable[[str, str], None] | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._cli = cli
        self._api = api
        self._token_name = default_token_name(settings.token_name_prefix, hostname)
        self._prompt = prompt

    @property
    def token_name(self) -> str:
        return self._token_name

    async def ensure_credential(
        self,
        on_log: LogSink | None = None,
        suppress_prompts: bool = False,
    ) -> CredentialResult:
        """Return a usable platform token, reusing the stored one when valid.

        Raises:
            ToolNotInstalledError: The CLI binary is missing.
            ControlPlaneCLIError: ``auth token`` failed or timed out.
            EmptyManagementTokenError: ``auth token`` printed nothing.
            EmptyMintedTokenError: The control plane minted an empty token.
            TransientControlPlaneError: The stored token could not be verified.
            ControlPlaneAPIError: Listing, revoking or minting failed.
        """
        try:
            result = await self._ensure(on_log, suppress_prompts)
        except ProvisionerError:
            CREDENTIAL_OUTCOMES_TOTAL.labels(status="error").inc()
            raise
        CREDENTIAL_OUTCOMES_TOTAL.labels(status=result.status).inc()
        return result

    async def _ensure(self, on_log: LogSink | None, suppress_prompts: bool) -> CredentialResult:
        self._emit(on_log, "info", MSG_INITIALIZING)

        config_path, data = await asyncio.to_thread(self._store.load)
        current_token = self._store.read_access_key(data)

        if current_token:
            validation = await self.validate_token(current_token, on_log)
            if validation.is_valid:
                self._emit(on_log, "success", MSG_VALID_TOKEN_REUSED)
                self._emit(on_log, "success", MSG_READY)
                return CredentialResult(
                    status="reused",
                    token=current_token,
                    token_name=self._token_name,
                )
            if validation.is_unknown:
                status = validation.status_code if validation.status_code is not None else "network"
                message = MSG_VALIDATION_UNAVAILABLE.format(status=status)
                self._emit(on_log, "error", message)
                raise TransientControlPlaneError(validation.status_code, message) from validation.error
            self._emit(on_log, "warn", MSG_INVALID_TOKEN)
        else:
            self._emit(on_log, "info", MSG_NO_TOKEN)

        management_token = await self._login(on_log, suppress_prompts)
        if management_token is None:
            return CredentialResult(status="login-required", token_name=self._token_name)

        new_token = await self.recreate_token(management_token, on_log)

        updated = self._store.with_access_key(data, new_token)
        await asyncio.to_thread(self._store.save, config_path, updated)
        self._emit(on_log, "success", MSG_TOKEN_STORED.format(path=config_path))
        self._emit(on_log, "success", MSG_READY)
        return CredentialResult(
            status="generated",
            token=new_token,
            token_name=self._token_name,
        )

    async def validate_token(self, token: str, on_log: LogSink | None = None) -> TokenValidation:
        """Classify ``token`` as valid, invalid, or unknown."""
        try:
            await self._api.validate_token(token)
        except CredentialInvalidError as exc:
            validation = TokenValidation(state="invalid", status_code=exc.status_code, error=exc)
        except ProvisionerError as exc:
            status_code = getattr(exc, "status_code", None)
            label = status_code if status_code is not None else "network"
            self._emit(on_log, "warn", MSG_API_ERROR.format(status=label))
            validation = TokenValidation(state="unknown", status_code=status_code, error=exc)
        else:
            validation = TokenValidation(state="valid", status_code=200)

        TOKEN_VALIDATIONS_TOTAL.labels(state=validation.state).inc()
        return validation

    async def _login(self, on_log: LogSink | None, suppress_prompts: bool) -> str | None:
        """Return a management token, or None when the user must log in first."""
        try:
            logged_in = await self._cli.is_logged_in()
        except ToolNotInstalledError as exc:
            self._emit(on_log, "error", str(exc))
            raise

        if not logged_in:
            if not suppress_prompts and self._prompt is not None:
                self._prompt(MSG_LOGIN_REQUIRED, MSG_LOGIN_REQUIRED_TITLE)
            self._emit(on_log, "warn", MSG_LOGIN_REQUIRED)
            self._emit(on_log, "warn", MSG_RETRY_HINT)
            return None

        try:
            management_token = await self._cli.management_token()
        except ProvisionerError as exc:
            self._emit(on_log, "error", str(exc))
            raise
        if not management_token:
            self._emit(on_log, "error", MSG_MANAGEMENT_TOKEN_EMPTY)
            raise EmptyManagementTokenError(MSG_MANAGEMENT_TOKEN_EMPTY)

        self._emit(on_log, "success", MSG_LOGIN_CONFIRMED)
        return management_token

    async def recreate_token(self, management_token: str, on_log: LogSink | None = None) -> str:
        """Revoke any token named like ours, then mint a fresh one."""
        name = self._token_name
        try:
            existing = await self._api.list_tokens(management_token)
            if any(token.name == name for token in existing):
                await self._api.revoke_token(management_token, name)
                self._emit(on_log, "info", MSG_TOKEN_REVOKED.format(name=name))

            minted = await self._api.create_token(management_token, name)
        except ProvisionerError as exc:
            status_code = getattr(exc, "status_code", None)
            label = status_code if status_code is not None else "network"
            self._emit(on_log, "error", MSG_API_ERROR.format(status=label))
            raise

        if not minted.token:
            self._emit(on_log, "error", MSG_MINTED_TOKEN_EMPTY)
            raise EmptyMintedTokenError(MSG_MINTED_TOKEN_EMPTY)

        self._emit(on_log, "success", MSG_TOKEN_REGENERATED.format(name=name))
        return minted.token

    def _emit(self, on_log: LogSink | None, level: LogLevel, message: str) -> None:
        logger.log(_STDLIB_LEVELS[level], message)
        if on_log is not None:
            on_log(level, message)
