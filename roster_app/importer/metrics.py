"""Prometheus metrics helpers for the staff importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_rows_counter = Counter(
    "staff_import_rows_total",
    "Staff import rows processed by outcome.",
    ["outcome"],
)
_batch_counter = Counter(
    "staff_import_batches_total",
    "Staff import batches by final status.",
    ["status"],
)
_batch_duration = Histogram(
    "staff_import_batch_duration_seconds",
    "Duration of staff import batches in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
_deactivated_counter = Counter(
    "staff_full_sync_deactivated_total",
    "Staff records deactivated by full-sync imports.",
)
_dedupe_counter = Counter(
    "staff_dedupe_removed_total",
    "Duplicate staff records removed (or reported in dry-run) by the collapser.",
    ["mode"],
)

RowOutcome = Literal["created", "updated", "skipped", "forbidden", "store_error"]


def record_import_rows(outcome: RowOutcome, count: int = 1) -> None:
    if count > 0:
        _rows_counter.labels(outcome=outcome).inc(count)


def record_import_batch(
    *,
    status: Literal["succeeded", "partially_failed", "failed"],
    duration_seconds: float,
    deactivated: int = 0,
) -> None:
    """Capture metrics for one completed import batch."""

    _batch_counter.labels(status=status).inc()
    _batch_duration.observe(max(duration_seconds, 0.0))
    if deactivated > 0:
        _deactivated_counter.inc(deactivated)


def record_dedupe(*, dry_run: bool, removed: int) -> None:
    if removed > 0:
        _dedupe_counter.labels(mode="dry_run" if dry_run else "applied").inc(removed)
