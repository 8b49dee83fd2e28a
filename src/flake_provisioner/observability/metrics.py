"""Prometheus metrics for flake_provisioner.

Counters cover the three outcome streams of a provisioning run: credential
lifecycle terminal states, provisioning step results, and compensations
executed during rollback.

Usage::

    from flake_provisioner.observability.metrics import PROVISION_STEPS_TOTAL

    PROVISION_STEPS_TOTAL.labels(step="database", outcome="success").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Credential lifecycle metrics
# ---------------------------------------------------------------------------

CREDENTIAL_OUTCOMES_TOTAL = Counter(
    "flake_credential_outcomes_total",
    "Credential lifecycle terminal states (reused, generated, login-required, error).",
    labelnames=["status"],
    registry=REGISTRY,
)

TOKEN_VALIDATIONS_TOTAL = Counter(
    "flake_token_validations_total",
    "Stored token validation results (valid, invalid, unknown).",
    labelnames=["state"],
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Provisioning metrics
# ---------------------------------------------------------------------------

PROVISION_STEPS_TOTAL = Counter(
    "flake_provision_steps_total",
    "Provisioning step results by step name and outcome.",
    labelnames=["step", "outcome"],
    registry=REGISTRY,
)

COMPENSATIONS_TOTAL = Counter(
    "flake_compensations_total",
    "Compensating actions executed during rollback.",
    labelnames=["step", "outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
