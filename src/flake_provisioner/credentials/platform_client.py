"""Async HTTP client for the Turso platform API.

Provides token validate, list, revoke and create operations against the
control-plane REST API. Every call authenticates with the bearer token passed
to the method, so one client can validate a stored token and then manage
tokens with a freshly obtained management token.

Idempotent requests (GET, DELETE) are retried with exponential backoff and
jitter on transient errors, respecting Retry-After on 429. Token creation is
never retried.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import (
    ControlPlaneAPIError,
    TransientControlPlaneError,
    api_error_for_status,
)

logger = logging.getLogger(__name__)

# Status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_IDEMPOTENT_METHODS = frozenset({"GET", "DELETE"})

# Default retry configuration.
_DEFAULT_MAX_RETRIES = 2
_DEFAULT_BASE_DELAY = 0.5  # seconds
_DEFAULT_MAX_DELAY = 8.0  # seconds


@dataclass(frozen=True, slots=True)
class ApiToken:
    """A platform API token as listed by the control plane."""

    name: str
    id: str = ""


@dataclass(frozen=True, slots=True)
class MintedToken:
    """A freshly created platform API token."""

    name: str
    token: str
    id: str = ""


class PlatformClient:
    """Async HTTP client for the control-plane token endpoints.

    The client holds no credentials itself; each call takes the bearer
    token it should authenticate with.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://api.turso.tech",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> PlatformClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("error", payload.get("message", message))
        except (ValueError, KeyError):
            pass

        raise api_error_for_status(resp.status_code, str(message))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str,
    ) -> httpx.Response:
        """Execute an HTTP request, retrying idempotent methods on transient errors."""
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        retries = self._max_retries if method in _IDEMPOTENT_METHODS else 0

        for attempt in range(retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                if attempt < retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "Control plane request timeout (attempt %d/%d), retrying in %.1fs",
                        attempt + 1,
                        retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransientControlPlaneError(None, f"request timed out: {e}") from e
            except httpx.TransportError as e:
                raise TransientControlPlaneError(None, f"network error: {e}") from e
            except httpx.RequestError as e:
                # Redirect loops, undecodable bodies and similar request failures.
                raise TransientControlPlaneError(None, f"request failed: {e}") from e

            if resp.status_code not in _RETRYABLE_STATUS_CODES or attempt >= retries:
                return resp

            delay = self._retry_after_delay(resp, attempt)
            logger.warning(
                "Control plane %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                retries + 1,
                delay,
            )
            await asyncio.sleep(delay)

        # Should not reach here, but guard against it.
        raise TransientControlPlaneError(None, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    def _retry_after_delay(self, resp: httpx.Response, attempt: int) -> float:
        """Use Retry-After header if present, otherwise exponential backoff."""
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    # ── Public API ───────────────────────────────────────────────

    async def validate_token(self, token: str) -> dict[str, Any]:
        """Validate ``token`` against the control plane.

        Returns the validation payload (``{"exp": ...}``) on success.

        Raises:
            CredentialInvalidError: 401/404, the token is definitively invalid.
            TransientControlPlaneError: network failure or 5xx/429.
            ControlPlaneAPIError: any other error status.
        """
        resp = await self._request("GET", "/v1/auth/validate", token=token)
        self._raise_for_status(resp)
        return _json_object(resp)

    async def list_tokens(self, token: str) -> list[ApiToken]:
        """List the platform API tokens visible to ``token``."""
        resp = await self._request("GET", "/v1/auth/api-tokens", token=token)
        self._raise_for_status(resp)

        payload = _json_object(resp)
        raw_tokens = payload.get("tokens", [])
        if not isinstance(raw_tokens, list):
            raise ControlPlaneAPIError(
                status_code=resp.status_code,
                message=f"Expected list of tokens, got {type(raw_tokens).__name__}",
            )
        return [
            ApiToken(name=str(item.get("name", "")), id=str(item.get("id", "")))
            for item in raw_tokens
            if isinstance(item, dict)
        ]

    async def revoke_token(self, token: str, token_name: str) -> None:
        """Revoke the platform API token called ``token_name``."""
        resp = await self._request("DELETE", f"/v1/auth/api-tokens/{token_name}", token=token)
        self._raise_for_status(resp)
        logger.info("Platform token revoked: name=%s", token_name)

    async def create_token(self, token: str, token_name: str) -> MintedToken:
        """Mint a new platform API token called ``token_name``."""
        resp = await self._request("POST", f"/v1/auth/api-tokens/{token_name}", token=token)
        self._raise_for_status(resp)

        payload = _json_object(resp)
        minted = MintedToken(
            name=str(payload.get("name", token_name)),
            token=str(payload.get("token") or ""),
            id=str(payload.get("id", "")),
        )
        logger.info("Platform token created: name=%s", minted.name)
        return minted


def _json_object(resp: httpx.Response) -> dict[str, Any]:
    if not resp.content:
        return {}
    try:
        payload = resp.json()
    except ValueError as e:
        raise ControlPlaneAPIError(resp.status_code, "response is not valid JSON") from e
    if not isinstance(payload, dict):
        raise ControlPlaneAPIError(
            resp.status_code,
            f"Expected JSON object, got {type(payload).__name__}",
        )
    return payload
