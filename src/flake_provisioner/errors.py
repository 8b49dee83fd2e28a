"""Error hierarchy for credential lifecycle and provisioning.

Errors are small and dependency-free so they never carry httpx.Response
objects (or the bearer tokens inside them) past the client boundary.

Taxonomy:
  - ToolNotInstalledError: the control-plane CLI binary is absent. Fatal.
  - ControlPlaneCLIError: the CLI exited non-zero or timed out.
  - EmptyManagementTokenError / EmptyMintedTokenError: fatal, distinct from
    "not logged in".
  - CredentialInvalidError: definitive 401/404 from the control plane.
  - TransientControlPlaneError: 5xx, 429, timeouts, transport failures.
    Never treated as an invalid credential.
"""

from __future__ import annotations


class ProvisionerError(Exception):
    """Base exception for all flake_provisioner errors."""


class CredentialStoreError(ProvisionerError):
    """The local config document is unreadable or not a JSON object."""


class NamingError(ProvisionerError, ValueError):
    """A project name cannot be turned into valid resource names."""


# ── CLI errors ───────────────────────────────────────────────────────


class ToolNotInstalledError(ProvisionerError):
    """Raised when the control-plane CLI binary is not on PATH."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(
            f"The '{tool}' CLI was not found. Install it and run "
            f"'{tool} auth login' before retrying."
        )


class ControlPlaneCLIError(ProvisionerError):
    """A CLI invocation returned non-zero or did not finish in time.

    Attributes:
        command: The argv that was executed (without secrets).
        return_code: Process exit code, ``None`` on timeout.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        command: tuple[str, ...],
        return_code: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = command
        self.return_code = return_code
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr[:200] if stderr else stdout[:200]) or "(no output)"
        joined = " ".join(command)
        if return_code is None:
            message = f"Command timed out: {joined}"
        else:
            message = f"Command failed (exit {return_code}): {joined}: {detail}"
        super().__init__(message)


class EmptyManagementTokenError(ProvisionerError):
    """``auth token`` succeeded but printed nothing."""


class EmptyMintedTokenError(ProvisionerError):
    """The control plane created a token but returned an empty value."""


# ── HTTP API errors ──────────────────────────────────────────────────


class ControlPlaneAPIError(ProvisionerError):
    """Error returned by the control-plane HTTP API.

    ``status_code`` is ``None`` when no response was received at all.
    """

    def __init__(self, status_code: int | None, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        label = status_code if status_code is not None else "network"
        super().__init__(f"Control plane API error {label}: {message}")


class CredentialInvalidError(ControlPlaneAPIError):
    """Definitive unauthorized / not-found response (401 or 404)."""


class TransientControlPlaneError(ControlPlaneAPIError):
    """Network failure, timeout, or a non-definitive status code."""


INVALID_CREDENTIAL_STATUS_CODES = frozenset({401, 404})


def api_error_for_status(status_code: int, message: str) -> ControlPlaneAPIError:
    """Map an HTTP status onto the definitive / transient split."""
    if status_code in INVALID_CREDENTIAL_STATUS_CODES:
        return CredentialInvalidError(status_code, message)
    if status_code >= 500 or status_code == 429:
        return TransientControlPlaneError(status_code, message)
    return ControlPlaneAPIError(status_code, message)
