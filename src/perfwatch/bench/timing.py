"""Timing capture for benchmark iterations.

Runs an operation a fixed number of times, strictly one after another,
and records the wall-clock duration of every call.  Optionally records
how much memory each call allocated, using ``tracemalloc`` for the
Python heap and the process resident set size for RSS.

Operations may be plain callables or return awaitables (coroutines,
futures).  :meth:`Sampler.run` drives awaitables on an event loop owned
by the batch; :meth:`Sampler.arun` awaits them on the caller's loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import resource
import sys
import time
import tracemalloc
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Generic, TypeVar, Union

from perfwatch.bench.stats import StatisticalSummary, summarize
from perfwatch.errors import InvalidInputError

log = logging.getLogger("perfwatch")

T = TypeVar("T")
Operation = Callable[[], Union[T, Awaitable[T]]]


# ---------------------------------------------------------------------------
# Memory snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MemoryDelta:
    """Memory change across one call, in bytes."""

    heap_used: int  # change in tracemalloc traced bytes
    heap_peak: int  # peak traced bytes during the call above the start
    rss: int  # change in resident set size


@dataclass(frozen=True)
class MemoryUsage:
    """Memory counters at one point in time, in bytes."""

    heap_used: int
    heap_peak: int
    rss: int

    @classmethod
    def capture(cls) -> MemoryUsage:
        """Capture current memory counters.

        Heap figures are 0 unless ``tracemalloc`` is tracing.
        """
        if tracemalloc.is_tracing():
            current, peak = tracemalloc.get_traced_memory()
        else:
            current, peak = 0, 0
        return cls(heap_used=current, heap_peak=peak, rss=_current_rss_bytes())

    def delta_to(self, after: MemoryUsage) -> MemoryDelta:
        """Component-wise difference from this snapshot to *after*."""
        return MemoryDelta(
            heap_used=after.heap_used - self.heap_used,
            heap_peak=max(after.heap_peak - self.heap_used, 0),
            rss=after.rss - self.rss,
        )


def _current_rss_bytes() -> int:
    """Current resident set size of this process.

    Reads ``/proc/self/statm`` on Linux.  Elsewhere falls back to the
    peak RSS from ``getrusage``, which only ever grows.
    """
    if sys.platform == "linux":
        try:
            fields = Path("/proc/self/statm").read_text().split()
            return int(fields[1]) * os.sysconf("SC_PAGE_SIZE")
        except (OSError, IndexError, ValueError):
            pass
    # ru_maxrss is in KB on Linux and bytes on macOS.
    maxrss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return maxrss if sys.platform == "darwin" else maxrss * 1024


# ---------------------------------------------------------------------------
# Sample
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sample:
    """One timed execution of the measured operation."""

    duration_ms: float
    memory_delta: MemoryDelta | None = None


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------


class Sampler:
    """Runs an operation repeatedly and records one Sample per call.

    Iterations never overlap.  Every return value is kept, in call
    order, and no samples are discarded; callers that want a warm-up
    should drop the first samples themselves.  If the operation raises,
    the exception propagates and the remaining iterations are skipped.

    Usage::

        sampler = Sampler(track_memory=True)
        outputs, samples = sampler.run(lambda: store.get("key"), 1000)
    """

    def __init__(self, *, track_memory: bool = False) -> None:
        self.track_memory = track_memory

    def run(self, operation: Operation[T], iterations: int) -> tuple[list[T], list[Sample]]:
        """Time *operation* *iterations* times.

        Awaitable results are run to completion on a private event loop
        inside the timed region.  The loop is created before the first
        iteration so its setup is never part of a sample.  Must not be
        called from a running event loop; use :meth:`arun` there.

        Returns:
            ``(outputs, samples)`` in invocation order.
        """
        _check_iterations(iterations)
        outputs: list[T] = []
        samples: list[Sample] = []
        loop = asyncio.new_event_loop()
        started_tracing = self._start_tracing()
        try:
            for _ in range(iterations):
                before = self._snapshot()
                start = time.perf_counter()
                result = operation()
                if inspect.isawaitable(result):
                    result = loop.run_until_complete(_await(result))
                end = time.perf_counter()
                outputs.append(result)
                samples.append(self._make_sample(start, end, before))
        finally:
            loop.close()
            if started_tracing:
                tracemalloc.stop()
        log.debug("Collected %d samples", len(samples))
        return outputs, samples

    async def arun(self, operation: Operation[T], iterations: int) -> tuple[list[T], list[Sample]]:
        """Async variant of :meth:`run`; awaits each iteration in turn."""
        _check_iterations(iterations)
        outputs: list[T] = []
        samples: list[Sample] = []
        started_tracing = self._start_tracing()
        try:
            for _ in range(iterations):
                before = self._snapshot()
                start = time.perf_counter()
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                end = time.perf_counter()
                outputs.append(result)
                samples.append(self._make_sample(start, end, before))
        finally:
            if started_tracing:
                tracemalloc.stop()
        log.debug("Collected %d samples", len(samples))
        return outputs, samples

    def _start_tracing(self) -> bool:
        """Start tracemalloc for this batch if needed.  True if we started it."""
        if self.track_memory and not tracemalloc.is_tracing():
            tracemalloc.start()
            return True
        return False

    def _snapshot(self) -> MemoryUsage | None:
        if not self.track_memory:
            return None
        tracemalloc.reset_peak()
        return MemoryUsage.capture()

    def _make_sample(self, start: float, end: float, before: MemoryUsage | None) -> Sample:
        delta = None
        if before is not None:
            delta = before.delta_to(MemoryUsage.capture())
        return Sample(duration_ms=(end - start) * 1000.0, memory_delta=delta)


def _check_iterations(iterations: int) -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
        raise InvalidInputError(f"iterations must be a positive integer (got {iterations!r})")


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def measure(operation: Operation[T], *, track_memory: bool = True) -> tuple[T, Sample]:
    """Time a single call of *operation*."""
    outputs, samples = Sampler(track_memory=track_memory).run(operation, 1)
    return outputs[0], samples[0]


@dataclass
class BenchmarkOutcome(Generic[T]):
    """Everything produced by :func:`benchmark_function`."""

    outputs: list[T]
    samples: list[Sample]
    stats: StatisticalSummary

    @property
    def durations(self) -> list[float]:
        """Per-iteration durations in milliseconds."""
        return [s.duration_ms for s in self.samples]

    @property
    def max_heap_delta(self) -> int | None:
        """Largest per-iteration heap delta, or None without memory tracking."""
        deltas = [s.memory_delta.heap_used for s in self.samples if s.memory_delta]
        return max(deltas) if deltas else None


def benchmark_function(
    operation: Operation[T],
    iterations: int = 100,
    *,
    track_memory: bool = False,
) -> BenchmarkOutcome[T]:
    """Run *operation* repeatedly and summarize the timings."""
    outputs, samples = Sampler(track_memory=track_memory).run(operation, iterations)
    return BenchmarkOutcome(
        outputs=outputs,
        samples=samples,
        stats=summarize([s.duration_ms for s in samples]),
    )

