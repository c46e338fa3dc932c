"""Prometheus metrics for retries and notification delivery.

Provides:
- retry_attempts_total: every classified failure seen by the RetryExecutor
- notifications_created_total: notification creates by type and outcome
- fanout_partial_failures_total: fan-outs where at least one recipient failed
- get_metrics_text(): exposition payload for the application shell's /metrics
"""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter, generate_latest

# ── Retry Metrics ────────────────────────────────────────────────────────────

retry_attempts_total = Counter(
    "teamnotes_retry_attempts_total",
    "Failed attempts seen by the retry executor",
    ["code", "outcome"],
)

# ── Notification Metrics ─────────────────────────────────────────────────────

notifications_created_total = Counter(
    "teamnotes_notifications_created_total",
    "Notification create calls",
    ["type", "status"],
)

fanout_partial_failures_total = Counter(
    "teamnotes_fanout_partial_failures_total",
    "Fan-outs where at least one recipient's notification failed",
    ["type"],
)


def get_metrics_text() -> bytes:
    """Render all registered metrics in Prometheus text format."""
    return generate_latest(REGISTRY)
