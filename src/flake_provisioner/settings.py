"""Provisioner configuration settings.

ProvisionerSettings is the single configuration object accepted by the
credential lifecycle manager, the provisioning services and the CLI.
It is intentionally a plain dataclass (not env-coupled) so tests can inject
config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_config_dir() -> Path:
    return Path.home() / ".fluorite"


@dataclass(frozen=True, slots=True)
class ProvisionerSettings:
    """Configuration for credential handling and resource provisioning.

    All fields have sensible defaults for a developer workstation.
    """

    # ── Local credential file ──────────────────────────────────────
    config_dir: Path = field(default_factory=_default_config_dir)
    """Per-user directory holding the config document."""

    config_file_name: str = "flake.json"
    """File name of the JSON config document inside config_dir."""

    section_key: str = "turso"
    """Top-level key of the section holding ``access_key``."""

    # ── Control plane ──────────────────────────────────────────────
    token_name_prefix: str = "fluorite-flake"
    """Scoped token names are ``{prefix}-{hostname}``."""

    api_base_url: str = "https://api.turso.tech"
    """Control-plane platform API base URL."""

    cli_path: str = "turso"
    """Name or path of the control-plane CLI binary."""

    http_timeout_seconds: float = 30.0
    http_max_retries: int = 2
    cli_timeout_seconds: float = 120.0

    # ── Provisioning ───────────────────────────────────────────────
    environments: tuple[str, ...] = ("dev", "staging", "prod")
    """Environments that receive their own database."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"
    """``console`` for human-readable output, ``json`` for JSON lines."""

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_file_name

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.config_file_name:
            errors.append("config_file_name is required")
        if not self.section_key:
            errors.append("section_key is required")
        if not self.token_name_prefix:
            errors.append("token_name_prefix is required")
        if not self.api_base_url.startswith(("https://", "http://")):
            errors.append(f"api_base_url must be an http(s) URL: {self.api_base_url!r}")
        if self.http_timeout_seconds <= 0:
            errors.append("http_timeout_seconds must be > 0")
        if self.http_max_retries < 0:
            errors.append("http_max_retries must be >= 0")
        if self.cli_timeout_seconds <= 0:
            errors.append("cli_timeout_seconds must be > 0")
        if not self.environments:
            errors.append("at least one environment is required")
        if self.log_format not in ("console", "json"):
            errors.append(f"log_format must be 'console' or 'json': {self.log_format!r}")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ProvisionerSettings:
        """Build settings from environment variables.

        This is a convenience factory for the CLI. Tests should
        construct ProvisionerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        config_dir_raw = env.get("FLAKE_CONFIG_DIR", "").strip()
        config_dir = Path(config_dir_raw).expanduser() if config_dir_raw else _default_config_dir()

        return cls(
            config_dir=config_dir,
            config_file_name=env.get("FLAKE_CONFIG_FILE", "flake.json"),
            token_name_prefix=env.get("FLAKE_TOKEN_NAME_PREFIX", "fluorite-flake"),
            api_base_url=env.get("TURSO_API_BASE_URL", "https://api.turso.tech"),
            cli_path=env.get("TURSO_CLI_PATH", "turso"),
            http_timeout_seconds=float(env.get("FLAKE_HTTP_TIMEOUT", "30")),
            http_max_retries=int(env.get("FLAKE_HTTP_MAX_RETRIES", "2")),
            cli_timeout_seconds=float(env.get("FLAKE_CLI_TIMEOUT", "120")),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "console"),
        )
