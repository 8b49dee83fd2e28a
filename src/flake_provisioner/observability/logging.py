"""Structured logging configuration for flake_provisioner.

Configures structlog for console or JSON output, correlated by a
provisioning run ID. Stdlib loggers used by the core modules are routed
through the same processor chain.

Usage::

    from flake_provisioner.observability.logging import configure_logging, get_logger

    configure_logging()  # Call once at CLI startup
    logger = get_logger()
    logger.info("step_succeeded", step="database", resources=3)
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar

import structlog

# Context variable for run-scoped correlation ID.
run_id_ctx: ContextVar[str | None] = ContextVar("run_id", default=None)

_configured = False

_REDACT_PATTERNS = (
    (re.compile(r"(Bearer\s+)[^\s\"']+"), r"\1[REDACTED]"),
    (re.compile(r"((?:access_key|token)[\"']?\s*[=:]\s*[\"']?)[^\s,\"']+", re.IGNORECASE), r"\1[REDACTED]"),
)


def redact(text: str) -> str:
    """Mask bearer tokens and ``token=...`` style secrets in a string."""
    for pattern, replacement in _REDACT_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _add_run_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Inject the current run_id from context into every log entry."""
    rid = run_id_ctx.get()
    if rid is not None:
        event_dict["run_id"] = rid
    return event_dict


def _redact_event(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Strip secrets from every string field, tracebacks included, before rendering."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    force: bool = False,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, emit JSON lines. If False, emit
            human-readable console output.
        force: Reconfigure even if already configured (tests).
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _redact_event,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # Diagnostics go to stderr; stdout is reserved for status lines.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet noisy libraries.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
