"""Observability infrastructure for flake_provisioner.

Provides structured logging with secret redaction and Prometheus counters
for credential and provisioning outcomes.
"""

from .logging import configure_logging, get_logger, redact, run_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "redact",
    "run_id_ctx",
]
