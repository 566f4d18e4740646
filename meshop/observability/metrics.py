"""Prometheus metrics for the reconcile loop and sidecar restarts."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

reconciliations_total = Counter(
    "meshop_reconciliations_total",
    "Completed reconcile cycles by resulting CR state.",
    ["result"],
)

reconcile_duration_seconds = Histogram(
    "meshop_reconcile_duration_seconds",
    "Wall-clock duration of a reconcile cycle.",
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)

resource_operations_total = Counter(
    "meshop_resource_operations_total",
    "Create-or-update operations on managed mesh resources.",
    ["resource", "result"],
)

sidecar_restarts_total = Counter(
    "meshop_sidecar_restarts_total",
    "Workload restarts issued to re-inject sidecars.",
    ["phase", "success"],
)

restart_runs_total = Counter(
    "meshop_restart_runs_total",
    "Sidecar restart runs by outcome.",
    ["status"],
)
