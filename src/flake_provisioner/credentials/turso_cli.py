"""Async wrapper around the ``turso`` control-plane CLI.

Commands run through ``asyncio.create_subprocess_exec`` with piped output, no
shell and no stdin, so an interactive login can never block a run. A missing
binary surfaces as ToolNotInstalledError; a non-zero exit or a timeout as
ControlPlaneCLIError.

Database commands authenticate through ``TURSO_API_TOKEN`` when a platform
token is supplied, otherwise through the CLI's own login session.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Protocol

from ..errors import ControlPlaneCLIError, ToolNotInstalledError

logger = logging.getLogger(__name__)

_NOT_LOGGED_IN_RE = re.compile(r"not\s+logged\s+in", re.IGNORECASE)
_LIBSQL_URL_RE = re.compile(r"(libsql://\S+)")


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured output of one CLI invocation."""

    return_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.return_code == 0


@dataclass(frozen=True, slots=True)
class DatabaseInfo:
    """One row of ``turso db list``."""

    name: str
    group: str = "default"
    url: str | None = None


# ── Protocol ─────────────────────────────────────────────────────────


class ControlPlaneCLI(Protocol):
    """Operations the credential and provisioning layers need from the CLI."""

    async def is_logged_in(self) -> bool:
        """Probe login state non-interactively."""
        ...

    async def management_token(self) -> str:
        """Return the management-scoped bearer token (trimmed, may be empty)."""
        ...

    async def list_databases(self, *, api_token: str | None = None) -> list[DatabaseInfo]:
        ...

    async def create_database(
        self,
        name: str,
        *,
        api_token: str | None = None,
        location: str | None = None,
        group: str | None = None,
    ) -> None:
        ...

    async def database_url(self, name: str, *, api_token: str | None = None) -> str:
        ...

    async def create_database_token(self, name: str, *, api_token: str | None = None) -> str:
        ...

    async def destroy_database(self, name: str, *, api_token: str | None = None) -> None:
        ...


# ── Subprocess implementation ────────────────────────────────────────


class TursoCLI:
    """ControlPlaneCLI backed by the real ``turso`` binary."""

    def __init__(self, *, cli_path: str = "turso", timeout_seconds: float = 120.0) -> None:
        self._cli_path = cli_path
        self._timeout = timeout_seconds

    async def run(
        self,
        *args: str,
        api_token: str | None = None,
    ) -> CommandResult:
        """Run one CLI command and capture its output.

        Raises:
            ToolNotInstalledError: If the binary cannot be spawned.
            ControlPlaneCLIError: If the command does not finish in time.
        """
        env = None
        if api_token:
            env = {**os.environ, "TURSO_API_TOKEN": api_token}

        try:
            proc = await asyncio.create_subprocess_exec(
                self._cli_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as exc:
            raise ToolNotInstalledError(self._cli_path) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ControlPlaneCLIError((self._cli_path, *args), None) from exc

        return CommandResult(
            return_code=proc.returncode or 0,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )

    async def _checked(self, *args: str, api_token: str | None = None) -> CommandResult:
        result = await self.run(*args, api_token=api_token)
        if not result.ok:
            raise ControlPlaneCLIError(
                (self._cli_path, *args),
                result.return_code,
                result.stdout,
                result.stderr,
            )
        return result

    async def is_logged_in(self) -> bool:
        result = await self.run("auth", "status")
        if not result.ok:
            return False
        return not _NOT_LOGGED_IN_RE.search(result.stdout + result.stderr)

    async def management_token(self) -> str:
        result = await self._checked("auth", "token")
        return result.stdout.strip()

    async def list_databases(self, *, api_token: str | None = None) -> list[DatabaseInfo]:
        result = await self._checked("db", "list", api_token=api_token)
        return parse_database_list(result.stdout)

    async def create_database(
        self,
        name: str,
        *,
        api_token: str | None = None,
        location: str | None = None,
        group: str | None = None,
    ) -> None:
        args = ["db", "create", name]
        if location:
            args += ["--location", location]
        if group:
            args += ["--group", group]
        await self._checked(*args, api_token=api_token)
        logger.info("Database created: name=%s", name)

    async def database_url(self, name: str, *, api_token: str | None = None) -> str:
        result = await self._checked("db", "show", name, "--url", api_token=api_token)
        return result.stdout.strip()

    async def create_database_token(self, name: str, *, api_token: str | None = None) -> str:
        result = await self._checked("db", "tokens", "create", name, api_token=api_token)
        return result.stdout.strip()

    async def destroy_database(self, name: str, *, api_token: str | None = None) -> None:
        await self._checked("db", "destroy", name, "--yes", api_token=api_token)
        logger.info("Database destroyed: name=%s", name)


def parse_database_list(output: str) -> list[DatabaseInfo]:
    """Parse the fixed-width ``turso db list`` table.

    Header rows (``NAME ... GROUP ... URL``) and separator rows are skipped.
    """
    databases: list[DatabaseInfo] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("-"):
            continue
        if "NAME" in line and "GROUP" in line and "URL" in line:
            continue

        columns = line.split()
        name = columns[0]
        group = columns[1] if len(columns) > 1 and not columns[1].startswith("libsql://") else "default"
        url_match = _LIBSQL_URL_RE.search(line)
        databases.append(
            DatabaseInfo(
                name=name,
                group=group,
                url=url_match.group(1) if url_match else None,
            )
        )
    return databases


# ── In-memory implementation (testing) ───────────────────────────────


@dataclass
class InMemoryTursoCLI:
    """Test CLI that tracks calls and simulates databases.

    ``fail_create`` / ``fail_token`` / ``fail_destroy`` hold database names
    whose corresponding operation raises ControlPlaneCLIError.
    """

    installed: bool = True
    logged_in: bool = True
    token: str = "mgmt-token-0001"
    existing: dict[str, str] = field(default_factory=dict)
    fail_create: set[str] = field(default_factory=set)
    fail_token: set[str] = field(default_factory=set)
    fail_destroy: set[str] = field(default_factory=set)
    calls: list[tuple[str, ...]] = field(default_factory=list)

    def _check_installed(self) -> None:
        if not self.installed:
            raise ToolNotInstalledError("turso")

    def _fail(self, *args: str) -> ControlPlaneCLIError:
        return ControlPlaneCLIError(("turso", *args), 1, "", f"{args[0]} {args[1]} failed")

    async def is_logged_in(self) -> bool:
        self.calls.append(("auth", "status"))
        self._check_installed()
        return self.logged_in

    async def management_token(self) -> str:
        self.calls.append(("auth", "token"))
        self._check_installed()
        return self.token.strip()

    async def list_databases(self, *, api_token: str | None = None) -> list[DatabaseInfo]:
        self.calls.append(("db", "list"))
        self._check_installed()
        return [DatabaseInfo(name=name, url=url) for name, url in self.existing.items()]

    async def create_database(
        self,
        name: str,
        *,
        api_token: str | None = None,
        location: str | None = None,
        group: str | None = None,
    ) -> None:
        self.calls.append(("db", "create", name))
        self._check_installed()
        if name in self.fail_create:
            raise self._fail("db", "create", name)
        self.existing[name] = f"libsql://{name}-org.turso.io"

    async def database_url(self, name: str, *, api_token: str | None = None) -> str:
        self.calls.append(("db", "show", name))
        self._check_installed()
        return self.existing[name]

    async def create_database_token(self, name: str, *, api_token: str | None = None) -> str:
        self.calls.append(("db", "tokens", "create", name))
        self._check_installed()
        if name in self.fail_token:
            raise self._fail("db", "tokens", name)
        return f"db-token-for-{name}"

    async def destroy_database(self, name: str, *, api_token: str | None = None) -> None:
        self.calls.append(("db", "destroy", name))
        self._check_installed()
        if name in self.fail_destroy:
            raise self._fail("db", "destroy", name)
        self.existing.pop(name, None)
