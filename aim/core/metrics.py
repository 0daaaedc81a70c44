from __future__ import annotations

"""Prometheus metrics for music storage operations.

Labels stay low-cardinality: operation in {upload, delete, presign, invalidate,
stats}, result in {success, error}. Never label by asset id.
"""

from prometheus_client import Counter, Histogram

storage_ops_total = Counter(
    "music_storage_operations_total",
    "Music storage operations by outcome",
    labelnames=("operation", "result"),
)
storage_op_seconds = Histogram(
    "music_storage_operation_seconds",
    "Latency of music storage operations",
    labelnames=("operation",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
variant_writes_total = Counter(
    "music_variant_writes_total",
    "Individual variant object writes",
    labelnames=("bitrate", "result"),
)
variant_deletes_total = Counter(
    "music_variant_deletes_total",
    "Individual variant object deletes",
    labelnames=("bitrate", "result"),
)


def inc_op(operation: str, result: str) -> None:
    storage_ops_total.labels(operation=operation, result=result).inc()


def observe_op_seconds(operation: str, seconds: float) -> None:
    storage_op_seconds.labels(operation=operation).observe(seconds)


def inc_variant_write(bitrate: int, result: str) -> None:
    variant_writes_total.labels(bitrate=str(bitrate), result=result).inc()


def inc_variant_delete(bitrate: int, result: str) -> None:
    variant_deletes_total.labels(bitrate=str(bitrate), result=result).inc()
