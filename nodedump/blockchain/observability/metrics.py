# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports state-export metrics in Prometheus format.

Metrics:
- Export runs by outcome, export duration
- Accounts exported in the last run
- Merkle tree build time and depth
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, generate_latest

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# EXPORT METRICS
# ═══════════════════════════════════════════════════════════════════

exports_total = Counter(
    'nodedump_exports_total',
    'Total number of state exports by outcome',
    ['status'],
    registry=metrics_registry
)

export_duration_seconds = Histogram(
    'nodedump_export_duration_seconds',
    'Wall time of a complete state export',
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300],
    registry=metrics_registry
)

accounts_exported = Gauge(
    'nodedump_accounts_exported',
    'Number of accounts in the last successful export',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# MERKLE TREE METRICS
# ═══════════════════════════════════════════════════════════════════

merkle_build_seconds = Histogram(
    'nodedump_merkle_build_seconds',
    'Time to build the Merkle tree and its proofs',
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 60],
    registry=metrics_registry
)

merkle_tree_depth = Gauge(
    'nodedump_merkle_tree_depth',
    'Depth of the last Merkle tree built',
    registry=metrics_registry
)


def record_export(status: str, duration: float, account_count: int = 0):
    """
    Record one export run.

    Args:
        status: "success" or the failing stage
        duration: Seconds spent in the export
        account_count: Accounts exported (success only)
    """
    exports_total.labels(status=status).inc()
    export_duration_seconds.observe(duration)
    if status == "success":
        accounts_exported.set(account_count)


def record_tree(duration: float, depth: int):
    merkle_build_seconds.observe(duration)
    merkle_tree_depth.set(depth)


def get_metrics() -> bytes:
    """Metrics in Prometheus text exposition format."""
    return generate_latest(metrics_registry)


def write_metrics(path: str):
    """Write the text exposition to a file (node_exporter textfile collector)."""
    with open(path, 'wb') as f:
        f.write(get_metrics())
