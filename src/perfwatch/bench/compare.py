"""Baseline comparison analysis.

Aligns a current report with a baseline report by test name and
classifies each matched test from the relative change of its mean:

    regression   mean_change >  threshold
    improvement  mean_change < -threshold
    stable       otherwise

The threshold is symmetric and exclusive: a change of exactly
``+threshold`` is not a regression.  Tests that only exist in the
current report are skipped with a warning (see :func:`find_unmatched`);
tests that only exist in the baseline are ignored.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from perfwatch.bench.results import PerformanceReport
from perfwatch.bench.stats import StatisticalSummary
from perfwatch.errors import NoMatchError

log = logging.getLogger("perfwatch")

DEFAULT_REGRESSION_THRESHOLD = 0.10


# ---------------------------------------------------------------------------
# Per-test comparison result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparisonResult:
    """Comparison of one test between baseline and current."""

    test_name: str
    baseline: StatisticalSummary
    current: StatisticalSummary
    # Relative changes as fractions (0.20 = 20% slower).
    mean_change: float
    median_change: float
    p95_change: float
    p99_change: float
    regression: bool
    improvement: bool

    @property
    def stable(self) -> bool:
        """True if neither a regression nor an improvement."""
        return not self.regression and not self.improvement

    @property
    def status(self) -> str:
        """One of ``regression``, ``improvement`` or ``stable``."""
        if self.regression:
            return "regression"
        if self.improvement:
            return "improvement"
        return "stable"


def relative_change(baseline: float, current: float) -> float:
    """Return ``(current - baseline) / baseline``.

    A zero baseline gives 0.0 if current is also zero, else ±inf.
    """
    if baseline == 0:
        if current == 0:
            return 0.0
        return math.copysign(math.inf, current)
    return (current - baseline) / baseline


# ---------------------------------------------------------------------------
# Comparison logic
# ---------------------------------------------------------------------------


def compare_reports(
    baseline: PerformanceReport,
    current: PerformanceReport,
    regression_threshold: float = DEFAULT_REGRESSION_THRESHOLD,
    *,
    require_match: bool = False,
) -> list[ComparisonResult]:
    """Compare every test in *current* against its baseline counterpart.

    Args:
        baseline: The reference report.
        current: The report being judged.
        regression_threshold: Fractional mean change beyond which a test
            counts as regressed (or, negated, improved).
        require_match: If True, raise instead of returning an empty list
            when the reports share no test names.

    Returns:
        One ComparisonResult per matched test, in the order of
        ``current.results``.

    Raises:
        NoMatchError: If *require_match* is set and nothing matched.
    """
    if not math.isfinite(regression_threshold) or regression_threshold < 0:
        raise ValueError(
            "regression_threshold must be a finite non-negative number "
            f"(got {regression_threshold})"
        )

    comparisons: list[ComparisonResult] = []

    for cur in current.results:
        base = baseline.get(cur.test_name)
        if base is None:
            log.warning("No baseline found for test: %s", cur.test_name)
            continue

        mean_change = relative_change(base.stats.mean, cur.stats.mean)
        comparisons.append(
            ComparisonResult(
                test_name=cur.test_name,
                baseline=base.stats,
                current=cur.stats,
                mean_change=mean_change,
                median_change=relative_change(base.stats.median, cur.stats.median),
                p95_change=relative_change(base.stats.p95, cur.stats.p95),
                p99_change=relative_change(base.stats.p99, cur.stats.p99),
                regression=mean_change > regression_threshold,
                improvement=mean_change < -regression_threshold,
            )
        )

    if not comparisons and require_match:
        raise NoMatchError(
            f"No matching tests found between baseline suite '{baseline.test_suite}' "
            f"and current suite '{current.test_suite}'"
        )

    return comparisons


def find_unmatched(baseline: PerformanceReport, current: PerformanceReport) -> list[str]:
    """Test names in *current* that have no baseline counterpart, in run order."""
    known = set(baseline.test_names)
    return [name for name in current.test_names if name not in known]


def has_regressions(comparisons: list[ComparisonResult]) -> bool:
    """True if any comparison is a regression."""
    return any(c.regression for c in comparisons)
