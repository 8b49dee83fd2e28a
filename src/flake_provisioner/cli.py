"""Command line entry point: ``flake-provision``.

Usage:
    flake-provision credentials [--no-prompt]
    flake-provision provision my-app [--location nrt] [--blob --blob-token blob_rw_...]

Environment variables:
    FLAKE_CONFIG_DIR    (optional) Directory of the config file (default: ~/.fluorite)
    TURSO_API_BASE_URL  (optional) Platform API base URL
    TURSO_CLI_PATH      (optional) turso binary (default: "turso")
    BLOB_READ_WRITE_TOKEN (optional) Blob store token when --blob-token is absent
    LOG_LEVEL / LOG_FORMAT (optional) Diagnostics on stderr

Output:
    Status lines to stdout, structured diagnostics to stderr (redacted).
    Exit code 0 on success, 1 on failure, 2 when a Turso login is required,
    3 when the turso CLI is not installed.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Sequence

from .credentials.lifecycle import CredentialLifecycleManager, LogLevel
from .credentials.platform_client import PlatformClient
from .credentials.store import CredentialStore
from .credentials.turso_cli import TursoCLI
from .errors import ProvisionerError, ToolNotInstalledError
from .observability.logging import configure_logging, get_logger
from .provisioning.blob import BlobConfig
from .provisioning.execution import ExecutionResult, ProvisioningRequest, execute_provisioning
from .provisioning.service import DatabaseProvisioningConfig
from .settings import ProvisionerSettings

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOGIN_REQUIRED = 2
EXIT_TOOL_NOT_INSTALLED = 3

_PREFIXES: dict[LogLevel, str] = {
    "info": "    ",
    "success": "[ok]",
    "warn": "[!] ",
    "error": "[x] ",
}


def print_status(level: LogLevel, message: str) -> None:
    print(f"{_PREFIXES[level]} {message}", flush=True)


def print_prompt(message: str, title: str) -> None:
    rule = "-" * max(len(title), len(message))
    print(f"\n{rule}\n{title}\n{message}\n{rule}\n", flush=True)


# ─────────────────────── Wiring ───────────────────────


def build_manager(
    settings: ProvisionerSettings,
    *,
    cli: TursoCLI,
    api: PlatformClient,
) -> CredentialLifecycleManager:
    return CredentialLifecycleManager(
        settings=settings,
        store=CredentialStore(settings),
        cli=cli,
        api=api,
        prompt=print_prompt,
    )


def _platform_client(settings: ProvisionerSettings) -> PlatformClient:
    return PlatformClient(
        base_url=settings.api_base_url,
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )


def _turso_cli(settings: ProvisionerSettings) -> TursoCLI:
    return TursoCLI(cli_path=settings.cli_path, timeout_seconds=settings.cli_timeout_seconds)


# ─────────────────────── Commands ───────────────────────


async def run_credentials(settings: ProvisionerSettings, args: argparse.Namespace) -> int:
    cli = _turso_cli(settings)
    async with _platform_client(settings) as api:
        manager = build_manager(settings, cli=cli, api=api)
        result = await manager.ensure_credential(print_status, suppress_prompts=args.no_prompt)

    if result.status == "login-required":
        print("Status: login required")
        return EXIT_LOGIN_REQUIRED
    print(f"Status: {result.status} (token '{result.token_name}')")
    return EXIT_OK


def request_from_args(settings: ProvisionerSettings, args: argparse.Namespace) -> ProvisioningRequest:
    database = DatabaseProvisioningConfig(
        project_name=args.project,
        environments=settings.environments,
        mode=args.mode,
        location=args.location,
        group=args.group,
        skip_provisioning=args.skip_provisioning,
    )
    blob = None
    if args.blob or args.blob_token:
        blob = BlobConfig(
            project_name=args.project,
            token=args.blob_token or os.environ.get("BLOB_READ_WRITE_TOKEN"),
        )
    return ProvisioningRequest(database=database, blob=blob)


async def run_provision(settings: ProvisionerSettings, args: argparse.Namespace) -> int:
    request = request_from_args(settings, args)
    cli = _turso_cli(settings)
    async with _platform_client(settings) as api:
        manager = build_manager(settings, cli=cli, api=api)
        result = await execute_provisioning(
            request,
            lifecycle=manager,
            cli=cli,
            on_log=print_status,
            suppress_prompts=args.no_prompt,
        )

    report(result)
    if result.login_required:
        return EXIT_LOGIN_REQUIRED
    return EXIT_OK if result.success else EXIT_FAILURE


def report(result: ExecutionResult) -> None:
    """Print the run summary to stdout."""
    print()
    if result.databases:
        print("Databases:")
        for db in result.databases:
            suffix = f"  {db.url}" if db.url else ""
            print(f"  {db.environment:<8} {db.name} ({db.status}){suffix}")

    if result.success:
        print(f"Status: provisioned (run {result.run_id})")
        for line in result.setup_instructions:
            print(f"  {line}")
        return

    print(f"Status: failed (run {result.run_id})")
    if result.error:
        print(f"Cause: {result.error}")
    if result.remediation:
        print("Next steps:")
        for line in result.remediation:
            print(f"  {line}")


# ─────────────────────── Entry point ───────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flake-provision",
        description="Manage Turso credentials and provision project databases",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    creds = sub.add_parser("credentials", help="Reuse or regenerate the stored platform token")
    creds.add_argument("--no-prompt", action="store_true", help="Never show the login prompt")

    prov = sub.add_parser("provision", help="Provision databases (and blob storage) for a project")
    prov.add_argument("project", help="Project name used to derive resource names")
    prov.add_argument("--location", default=None, help="Turso location for new databases")
    prov.add_argument("--group", default=None, help="Turso group for new databases")
    prov.add_argument(
        "--mode",
        choices=("create", "existing"),
        default="create",
        help="Create databases, or reuse the ones named after the project",
    )
    prov.add_argument("--blob", action="store_true", help="Also set up blob storage")
    prov.add_argument("--blob-token", default=None, help="Existing blob_rw_ token to use")
    prov.add_argument(
        "--skip-provisioning",
        action="store_true",
        help="Skip database provisioning",
    )
    prov.add_argument("--no-prompt", action="store_true", help="Never show the login prompt")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = ProvisionerSettings.from_env()
    configure_logging(level=settings.log_level, json_output=settings.log_format == "json")

    errors = settings.validate()
    if errors:
        for error in errors:
            print_status("error", f"Invalid configuration: {error}")
        return EXIT_FAILURE

    command = run_credentials if args.command == "credentials" else run_provision
    try:
        return asyncio.run(command(settings, args))
    except ToolNotInstalledError as exc:
        print_status("error", str(exc))
        return EXIT_TOOL_NOT_INSTALLED
    except ProvisionerError as exc:
        logger.warning("command_failed", command=args.command, error=str(exc))
        print_status("error", str(exc))
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
