"""Export benchmark reports and comparisons.

CSV format: one row per TestResult with the summary statistics in
milliseconds, suitable for spreadsheets and pandas.  Fields are quoted
by the ``csv`` module when they contain commas, quotes or newlines.
Numbers are rounded half-up to two decimals (``1.005`` → ``1.01``).

Comparison summary: counts of regressed, improved and stable tests plus
the per-test percentage changes, as plain data for further formatting.
"""

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from perfwatch.bench.compare import ComparisonResult
from perfwatch.bench.results import PerformanceReport, TestResult
from perfwatch.bench.stats import STAT_FIELDS
from perfwatch.errors import InvalidInputError

CSV_HEADER = [
    "Test Name",
    "Timestamp",
    "Mean (ms)",
    "Median (ms)",
    "Min (ms)",
    "Max (ms)",
    "P95 (ms)",
    "P99 (ms)",
    "Std Dev (ms)",
    "Iterations",
]

_TWO_PLACES = Decimal("0.01")


def format_fixed(value: float, where: str = "value") -> str:
    """Render *value* with two decimals, rounding half-up.

    Uses the shortest repr of the float, so ``1.005`` rounds to ``1.01``
    even though its binary value is slightly below 1.005.

    Raises:
        InvalidInputError: If *value* is missing or not finite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{where} is not a number: {value!r}")
    if not math.isfinite(value):
        raise InvalidInputError(f"{where} is not finite: {value!r}")
    return str(Decimal(repr(float(value))).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def _csv_row(result: TestResult) -> list[str]:
    row = [result.test_name, result.timestamp]
    for name in STAT_FIELDS:
        row.append(format_fixed(getattr(result.stats, name), f"{result.test_name}: {name}"))
    row.append(str(result.iterations))
    return row


def export_csv(report: PerformanceReport) -> str:
    """Export a report as CSV text, one row per TestResult.

    Raises:
        InvalidInputError: If a statistic is missing or not finite.
    """
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for result in report.results:
        writer.writerow(_csv_row(result))
    return output.getvalue()


# ---------------------------------------------------------------------------
# Comparison summary
# ---------------------------------------------------------------------------


@dataclass
class ComparisonSummary:
    """Aggregate counts over a list of ComparisonResults."""

    total: int = 0
    regressions: int = 0
    improvements: int = 0
    stable: int = 0
    # (test_name, mean change in percent), in comparison order.
    regressed: list[tuple[str, float]] = field(default_factory=list)
    improved: list[tuple[str, float]] = field(default_factory=list)

    @property
    def verdict(self) -> str:
        """Outcome of the whole run: regressed, improved or stable."""
        if self.regressions:
            return "regressed"
        if self.improvements:
            return "improved"
        return "stable"


def summarize_comparisons(comparisons: list[ComparisonResult]) -> ComparisonSummary:
    """Count regressions, improvements and stable tests."""
    summary = ComparisonSummary(total=len(comparisons))
    for c in comparisons:
        if c.regression:
            summary.regressions += 1
            summary.regressed.append((c.test_name, c.mean_change * 100))
        elif c.improvement:
            summary.improvements += 1
            summary.improved.append((c.test_name, c.mean_change * 100))
        else:
            summary.stable += 1
    return summary
