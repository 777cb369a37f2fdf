"""
Timing metrics.

One metric = one METRIC_TIMER log event; nothing is aggregated in-process.
Durations use monotonic time; ts_ms stays wall-clock like every other event.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


@contextmanager
def timed(
    name: str,
    *,
    endpoint: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Time the enclosed block and emit exactly one METRIC_TIMER event.

    Exceptions inside the block propagate; the metric is still emitted.
    Yields a mutable details dict so the block can record its outcome:

        with timed("transport_start_attempt", endpoint=ep) as details:
            transport.start()
            details["outcome"] = "ok"
    """
    merged: dict[str, Any] = dict(details or {})
    start_ns = time.monotonic_ns()
    try:
        yield merged
    finally:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "endpoint": endpoint,
            "status": status,
            "details": merged,
        })
