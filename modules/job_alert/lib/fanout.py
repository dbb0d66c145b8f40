"""
Concurrent, best-effort delivery of one alert to many sinks.

Every enabled sink gets its own worker thread and its own deadline. A sink
that raises, returns Failed, or overruns its deadline only affects its own
result entry; the fanout waits for every sink to settle and never raises.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from . import logging_bridge
from .models import Delivered, Failed, JobRecord, NotifyContext, SinkResult, result_to_dict
from .sinks.base import BaseSink

LOG = logging.getLogger(__name__)

# How often a waiting fanout re-checks the stop event.
_POLL_SEC = 0.2


def _invoke(sink: BaseSink, records: tuple[JobRecord, ...], context: NotifyContext) -> SinkResult:
    try:
        result = sink.send(records, context)
    except Exception as e:
        LOG.warning("Sink %s failed: %s", sink.name, e)
        return Failed(sink=sink.name, reason=f"{type(e).__name__}: {e}")
    if not isinstance(result, (Delivered, Failed)):
        return Failed(sink=sink.name, reason=f"sink returned {type(result).__name__}, expected SinkResult")
    return result


def _settle(
    sink: BaseSink,
    fut: Future,
    deadline: float,
    stop_event: threading.Event | None,
) -> SinkResult:
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            fut.cancel()
            return Failed(sink=sink.name, reason=f"timeout after {sink.timeout_sec:g}s")
        if stop_event is not None and stop_event.is_set() and not fut.done():
            fut.cancel()
            return Failed(sink=sink.name, reason="abandoned: shutdown requested")
        try:
            return fut.result(timeout=min(remaining, _POLL_SEC))
        except FutureTimeout:
            continue


def notify(
    to_notify: Sequence[JobRecord],
    sinks: Sequence[BaseSink],
    *,
    context: NotifyContext | None = None,
    stop_event: threading.Event | None = None,
) -> list[SinkResult]:
    """
    Deliver `to_notify` to every enabled sink concurrently.

    Returns exactly one SinkResult per enabled sink, in sink order. Disabled
    sinks are skipped without a result entry.
    """
    enabled = [s for s in sinks if s.enabled]
    if not enabled:
        return []

    records = tuple(to_notify)
    ctx = context or NotifyContext()

    pool = ThreadPoolExecutor(max_workers=len(enabled), thread_name_prefix="fanout")
    try:
        started = time.monotonic()
        pending = [(sink, pool.submit(_invoke, sink, records, ctx)) for sink in enabled]
        # Deadlines are absolute: waiting on a slow sink never eats into another's budget.
        results = [_settle(sink, fut, started + sink.timeout_sec, stop_event) for sink, fut in pending]
    finally:
        # Do not block on abandoned (timed-out) sink threads.
        pool.shutdown(wait=False, cancel_futures=True)

    for r in results:
        if isinstance(r, Failed):
            logging_bridge.error({
                "component": "job_alert.fanout",
                "op": "sink_failed",
                "sink": r.sink,
                "reason": r.reason,
                "records": len(records),
            })

    logging_bridge.activity({
        "component": "job_alert.fanout",
        "op": "notify",
        "records": len(records),
        "results": [result_to_dict(r) for r in results],
        "duration_ms": int((time.monotonic() - started) * 1000),
    })
    return results
