"""Statistical reduction of benchmark samples.

Reduces a batch of durations to a fixed summary: mean, median, min,
max, p95, p99 and population standard deviation.

Percentiles use the nearest-rank method: the sorted samples are indexed
at ``floor(n * p)`` with no interpolation between adjacent ranks.  For
``n = 100`` the p95 is the 96th smallest sample (index 95).  Baselines
written by earlier runs were computed this way, so switching to an
interpolated percentile would make them incomparable.

Everything here is pure and side-effect free.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from perfwatch.errors import InvalidInputError, MalformedDataError

if TYPE_CHECKING:
    from perfwatch.bench.timing import Sample


# ---------------------------------------------------------------------------
# StatisticalSummary
# ---------------------------------------------------------------------------

STAT_FIELDS = ("mean", "median", "min", "max", "p95", "p99", "std_dev")

# Field name -> key in persisted reports.
_WIRE_NAMES = {
    "mean": "mean",
    "median": "median",
    "min": "min",
    "max": "max",
    "p95": "p95",
    "p99": "p99",
    "std_dev": "stdDev",
}


@dataclass(frozen=True)
class StatisticalSummary:
    """Summary statistics for one batch of durations (milliseconds)."""

    mean: float
    median: float
    min: float
    max: float
    p95: float
    p99: float
    std_dev: float

    def to_dict(self) -> dict[str, float]:
        """Serialize to the persisted ``stats`` mapping."""
        return {wire: getattr(self, name) for name, wire in _WIRE_NAMES.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatisticalSummary:
        """Deserialize from a persisted ``stats`` mapping.

        Raises:
            MalformedDataError: If a field is missing, not numeric or not
                finite.
        """
        if not isinstance(data, dict):
            raise MalformedDataError(f"stats must be a mapping, got {type(data).__name__}")
        values: dict[str, float] = {}
        for name, wire in _WIRE_NAMES.items():
            value = data.get(wire)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedDataError(f"stats.{wire} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise MalformedDataError(f"stats.{wire} must be finite, got {value!r}")
            values[name] = float(value)
        return cls(**values)


# ---------------------------------------------------------------------------
# Summary computation
# ---------------------------------------------------------------------------


def _nearest_rank(sorted_values: list[float], p: float) -> float:
    """Return the sample at index ``floor(n * p)`` of an ascending list."""
    index = math.floor(len(sorted_values) * p)
    return sorted_values[min(index, len(sorted_values) - 1)]


def summarize(durations: Sequence[float]) -> StatisticalSummary:
    """Reduce a batch of durations to a :class:`StatisticalSummary`.

    Args:
        durations: Non-empty sequence of durations.  Order does not
            matter; a sorted copy is used.

    Returns:
        The summary.  For a single sample every field equals that
        sample and ``std_dev`` is 0.

    Raises:
        InvalidInputError: If *durations* is empty.
    """
    if not durations:
        raise InvalidInputError("Cannot summarize an empty set of durations (zero iterations?)")

    sorted_v = sorted(float(d) for d in durations)
    n = len(sorted_v)
    lo, hi = sorted_v[0], sorted_v[-1]

    # Rounding in the sum can land a hair outside [min, max].
    mean = min(max(math.fsum(sorted_v) / n, lo), hi)
    variance = math.fsum((v - mean) ** 2 for v in sorted_v) / n

    return StatisticalSummary(
        mean=mean,
        median=sorted_v[n // 2],
        min=lo,
        max=hi,
        p95=_nearest_rank(sorted_v, 0.95),
        p99=_nearest_rank(sorted_v, 0.99),
        std_dev=math.sqrt(variance),
    )


# ---------------------------------------------------------------------------
# Threshold checks
# ---------------------------------------------------------------------------


@dataclass
class PerformanceThresholds:
    """Absolute limits a benchmark must stay under.

    Durations are in milliseconds, memory in bytes.  ``None`` disables
    a check.
    """

    max_mean: float | None = None
    max_p95: float | None = None
    max_p99: float | None = None
    max_memory_increase: float | None = None


@dataclass
class ThresholdViolation:
    """One limit that a benchmark failed to stay under."""

    check: str  # "mean", "p95", "p99" or "memory"
    value: float
    limit: float

    def __str__(self) -> str:
        return f"{self.check} {self.value:.2f} is not below the limit of {self.limit:.2f}"


def check_thresholds(
    summary: StatisticalSummary,
    samples: Sequence[Sample],
    thresholds: PerformanceThresholds,
) -> list[ThresholdViolation]:
    """Check a summary (and its raw samples) against absolute limits.

    Each value must be strictly below its limit.  The memory check uses
    the largest per-sample ``heap_used`` delta; samples taken without
    memory tracking are ignored by it.

    Returns:
        The violations found.  Empty list means every check passed.
    """
    violations: list[ThresholdViolation] = []

    for check, value, limit in (
        ("mean", summary.mean, thresholds.max_mean),
        ("p95", summary.p95, thresholds.max_p95),
        ("p99", summary.p99, thresholds.max_p99),
    ):
        if limit is not None and not value < limit:
            violations.append(ThresholdViolation(check=check, value=value, limit=limit))

    if thresholds.max_memory_increase is not None:
        deltas = [s.memory_delta.heap_used for s in samples if s.memory_delta is not None]
        if deltas:
            worst = max(deltas)
            if not worst < thresholds.max_memory_increase:
                violations.append(
                    ThresholdViolation(
                        check="memory",
                        value=float(worst),
                        limit=thresholds.max_memory_increase,
                    )
                )

    return violations
