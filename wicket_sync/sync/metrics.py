"""Prometheus metrics helpers for Wicket sync."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Gauge, Histogram

_org_sync_runs = Counter(
    "wicket_org_sync_runs_total",
    "Organization catalog sync runs by outcome.",
    ["outcome"],
)
_org_sync_records = Counter(
    "wicket_org_sync_records_total",
    "Organization records processed during catalog sync by action.",
    ["action"],
)
_org_sync_duration = Histogram(
    "wicket_org_sync_duration_seconds",
    "Duration of organization catalog sync runs in seconds.",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
)
_org_page_retries = Counter(
    "wicket_org_sync_page_retries_total",
    "Organization page fetch retries after a transient failure.",
)
_connection_syncs = Counter(
    "wicket_connection_syncs_total",
    "Per-person connection syncs by outcome.",
    ["outcome"],
)
_bulk_users = Counter(
    "wicket_bulk_sync_users_total",
    "Users processed by the bulk sync worker by outcome.",
    ["outcome"],
)
_bulk_batches = Counter(
    "wicket_bulk_sync_batches_total",
    "Bulk sync batches processed.",
)
_bulk_in_progress = Gauge(
    "wicket_bulk_sync_in_progress",
    "Whether a bulk user sync currently holds the lease (1) or not (0).",
)


def record_org_sync_run(
    *,
    outcome: Literal["success", "partial", "failure"],
    duration_seconds: float,
    counts: dict[str, int] | None = None,
) -> None:
    """Capture the outcome and record counts of a catalog sync run."""

    _org_sync_runs.labels(outcome=outcome).inc()
    _org_sync_duration.observe(max(0.0, duration_seconds))
    for action in ("created", "updated", "errors"):
        count = (counts or {}).get(action, 0)
        if count:
            _org_sync_records.labels(action=action).inc(count)


def record_org_page_retry() -> None:
    _org_page_retries.inc()


def record_connection_sync(outcome: Literal["success", "failure"]) -> None:
    _connection_syncs.labels(outcome=outcome).inc()


def record_bulk_user(outcome: Literal["success", "error"]) -> None:
    _bulk_users.labels(outcome=outcome).inc()


def record_bulk_batch() -> None:
    _bulk_batches.inc()


def record_bulk_in_progress(active: bool) -> None:
    _bulk_in_progress.set(1 if active else 0)
