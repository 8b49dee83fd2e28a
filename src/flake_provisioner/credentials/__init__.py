"""Credential store, control-plane clients and token lifecycle."""

from .lifecycle import (
    CredentialLifecycleManager,
    CredentialResult,
    LogSink,
    TokenValidation,
    default_token_name,
)
from .platform_client import ApiToken, MintedToken, PlatformClient
from .store import CredentialStore
from .turso_cli import (
    CommandResult,
    ControlPlaneCLI,
    DatabaseInfo,
    InMemoryTursoCLI,
    TursoCLI,
    parse_database_list,
)

__all__ = [
    "ApiToken",
    "CommandResult",
    "ControlPlaneCLI",
    "CredentialLifecycleManager",
    "CredentialResult",
    "CredentialStore",
    "DatabaseInfo",
    "InMemoryTursoCLI",
    "LogSink",
    "MintedToken",
    "PlatformClient",
    "TokenValidation",
    "TursoCLI",
    "default_token_name",
    "parse_database_list",
]
