from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram

# Low-cardinality labels: operation names only, never object keys
OPERATIONS = Counter(
    "objstore_operations_total",
    "Total object storage backend calls",
    ["operation", "status"],
)

LATENCY = Histogram(
    "objstore_operation_duration_seconds",
    "Object storage backend call latency in seconds",
    ["operation"],
)


class _Outcome:
    __slots__ = ("status",)

    def __init__(self) -> None:
        self.status = "ok"


@contextmanager
def observe(operation: str, *, enabled: bool = True) -> Iterator[_Outcome]:
    """Time a backend call and count it under the status the caller sets.

    An exception escaping the block is counted as ``error`` unless the caller
    already set a more specific status.
    """
    outcome = _Outcome()
    start = time.perf_counter()
    try:
        yield outcome
    except Exception:
        if outcome.status == "ok":
            outcome.status = "error"
        raise
    finally:
        if enabled:
            OPERATIONS.labels(operation=operation, status=outcome.status).inc()
            LATENCY.labels(operation=operation).observe(time.perf_counter() - start)
