"""Memory helpers for long retargeting batches.

Two tools:

1. ``tracemalloc_snapshot(label)`` — context manager that logs the net heap
   delta of a block.  Used per skeleton when ``RetargetConfig.trace_memory``
   is on, so growth across a long batch shows up in the worker log.

2. ``collect_garbage(label)`` — explicit collection pass run after every pair
   in unattended mode; logs how many unreachable objects were freed.

Usage::

    with tracemalloc_snapshot("skeleton Mannequin_03", enabled=cfg.trace_memory):
        for job in jobs:
            retargeter.retarget_pair(job)
"""
from __future__ import annotations

import contextlib
import gc
import logging
import tracemalloc
from typing import Generator

log = logging.getLogger(__name__)


@contextlib.contextmanager
def tracemalloc_snapshot(label: str, top_n: int = 5,
                         enabled: bool = True) -> Generator[None, None, None]:
    """Capture the heap allocation delta around a code block.

    Logs the net change in KB at INFO and the top-*top_n* growing allocation
    sites at DEBUG.  Safe to nest; only the outermost call stops tracing.
    A disabled snapshot is a plain pass-through.
    """
    if not enabled:
        yield
        return

    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start(10)

    before = tracemalloc.take_snapshot()
    mem_before = sum(s.size for s in before.statistics("filename"))

    try:
        yield
    finally:
        after = tracemalloc.take_snapshot()
        mem_after = sum(s.size for s in after.statistics("filename"))
        diff = mem_after - mem_before
        sign = "+" if diff >= 0 else ""
        log.info("[mem] %s: %s%d KB  (%.2f MB → %.2f MB)",
                 label, sign, diff // 1024,
                 mem_before / 1024 / 1024, mem_after / 1024 / 1024)

        for rank, stat in enumerate(after.compare_to(before, "lineno")[:top_n], 1):
            if stat.size_diff == 0:
                continue
            site = str(stat.traceback[0]) if stat.traceback else "<unknown>"
            log.debug("[mem]  #%-2d  %+8.1f KB  |  %s",
                      rank, stat.size_diff / 1024, site)

        if not already_tracing:
            tracemalloc.stop()


def collect_garbage(label: str = "") -> int:
    """Run a full collection pass and return the number of objects freed."""
    freed = gc.collect()
    log.debug("[mem] gc after %s: %d objects freed", label or "pair", freed)
    return freed
