"""Terminal display formatting for benchmark results.

Produces aligned, human-readable text for single benchmarks, whole
reports and baseline comparisons.  No external dependencies.
"""

from __future__ import annotations

import math

from perfwatch.bench.compare import ComparisonResult
from perfwatch.bench.export import ComparisonSummary, summarize_comparisons
from perfwatch.bench.results import PerformanceReport
from perfwatch.bench.stats import StatisticalSummary

_RULE_WIDTH = 80


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------


def format_duration(ms: float) -> str:
    """Format a duration given in milliseconds with adaptive units."""
    if math.isnan(ms):
        return "N/A"
    if ms < 1:
        return f"{ms * 1000:.2f}µs"
    if ms < 1000:
        return f"{ms:.2f}ms"
    return f"{ms / 1000:.2f}s"


def format_memory(num_bytes: float) -> str:
    """Format a byte count with binary units (B, KB, MB, GB)."""
    units = ["B", "KB", "MB", "GB"]
    size = float(num_bytes)
    unit = 0
    while abs(size) >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {units[unit]}"


def format_percent_change(change: float, threshold: float | None = None) -> str:
    """Format a fractional change as a signed percentage with a direction arrow.

    With *threshold*, the arrow only points up/down once the change is
    beyond it.
    """
    if math.isnan(change):
        return "N/A"
    limit = threshold if threshold is not None else 0.0
    if change > limit:
        arrow = "↗"
    elif change < -limit:
        arrow = "↘"
    else:
        arrow = "→"
    sign = "+" if change > 0 else ""
    return f"{arrow} {sign}{change * 100:.1f}%"


# ---------------------------------------------------------------------------
# Single benchmark / report display
# ---------------------------------------------------------------------------


def format_stats(name: str, stats: StatisticalSummary, iterations: int) -> str:
    """Format the statistics of one benchmark."""
    lines = [
        f"Performance Stats: {name}",
        f"   Iterations: {iterations}",
        f"   Mean:   {format_duration(stats.mean)}",
        f"   Median: {format_duration(stats.median)}",
        f"   Min:    {format_duration(stats.min)}",
        f"   Max:    {format_duration(stats.max)}",
        f"   P95:    {format_duration(stats.p95)}",
        f"   P99:    {format_duration(stats.p99)}",
        f"   StdDev: {format_duration(stats.std_dev)}",
    ]
    return "\n".join(lines)


def format_report(report: PerformanceReport) -> str:
    """Format a whole report as a table, one row per test."""
    env = report.environment
    lines = [
        f"{report.test_suite}",
        "─" * len(report.test_suite),
        f"Timestamp:   {report.timestamp}",
        f"Environment: {env.runtime} on {env.platform} ({env.arch})",
        "",
    ]

    name_width = max([len("Test"), *(len(r.test_name) for r in report.results)])
    header = (
        f"{'Test':<{name_width}s} {'Iter':>6s} {'Mean':>10s} {'Median':>10s} "
        f"{'P95':>10s} {'P99':>10s} {'StdDev':>10s}"
    )
    lines.append(header)
    lines.append("─" * len(header))
    for r in report.results:
        s = r.stats
        lines.append(
            f"{r.test_name:<{name_width}s} {r.iterations:>6d} "
            f"{format_duration(s.mean):>10s} {format_duration(s.median):>10s} "
            f"{format_duration(s.p95):>10s} {format_duration(s.p99):>10s} "
            f"{format_duration(s.std_dev):>10s}"
        )
    if not report.results:
        lines.append("(no results)")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Comparison display
# ---------------------------------------------------------------------------


def _format_report_header(label: str, report: PerformanceReport) -> list[str]:
    env = report.environment
    return [
        f"{label}",
        f"  Test Suite:  {report.test_suite}",
        f"  Timestamp:   {report.timestamp}",
        f"  Environment: {env.runtime} on {env.platform}",
    ]


def _format_one_comparison(comp: ComparisonResult, threshold: float) -> list[str]:
    marker = {"regression": "[REGRESSION]", "improvement": "[IMPROVED]", "stable": "[STABLE]"}
    b, c = comp.baseline, comp.current
    rows = [
        ("Mean", b.mean, c.mean, comp.mean_change),
        ("Median", b.median, c.median, comp.median_change),
        ("P95", b.p95, c.p95, comp.p95_change),
        ("P99", b.p99, c.p99, comp.p99_change),
    ]
    lines = [f"{marker[comp.status]} {comp.test_name}"]
    for label, before, after, change in rows:
        lines.append(
            f"   {label + ':':<8s}{before:.2f}ms → {after:.2f}ms "
            f"{format_percent_change(change, threshold)}"
        )
    return lines


def _format_summary(summary: ComparisonSummary, threshold: float) -> list[str]:
    lines = [
        f"Total tests:  {summary.total}",
        f"  Regressions:  {summary.regressions}",
        f"  Improvements: {summary.improvements}",
        f"  Stable:       {summary.stable}",
        "",
    ]
    if summary.verdict == "regressed":
        lines.append("PERFORMANCE REGRESSIONS DETECTED!")
        lines.append("")
        lines.append("Regressed tests:")
        for name, pct in summary.regressed:
            lines.append(f"  - {name}: {format_percent_change(pct / 100, threshold)}")
    elif summary.verdict == "improved":
        lines.append("Performance improvements detected.")
        lines.append("")
        lines.append("Improved tests:")
        for name, pct in summary.improved:
            lines.append(f"  - {name}: {format_percent_change(pct / 100, threshold)}")
    else:
        lines.append("Performance is stable.")
    return lines


def format_comparison(
    baseline: PerformanceReport,
    current: PerformanceReport,
    comparisons: list[ComparisonResult],
    *,
    threshold: float = 0.10,
    unmatched: list[str] | None = None,
    baseline_label: str = "Baseline",
    current_label: str = "Current",
) -> str:
    """Format a full baseline comparison for the terminal.

    Args:
        baseline: The reference report.
        current: The report being judged.
        comparisons: Output of :func:`perfwatch.bench.compare.compare_reports`.
        threshold: Threshold used for classification (colours the arrows).
        unmatched: Current tests with no baseline counterpart.
        baseline_label: Heading for the baseline block.
        current_label: Heading for the current block.
    """
    lines: list[str] = ["=" * _RULE_WIDTH, "PERFORMANCE COMPARISON", "=" * _RULE_WIDTH, ""]
    lines.extend(_format_report_header(baseline_label, baseline))
    lines.append("")
    lines.extend(_format_report_header(current_label, current))
    lines.append("")

    lines.extend(["-" * _RULE_WIDTH, "DETAILED RESULTS", "-" * _RULE_WIDTH, ""])
    if not comparisons:
        lines.append("No comparisons available.")
        lines.append("")
    for comp in comparisons:
        lines.extend(_format_one_comparison(comp, threshold))
        lines.append("")

    if unmatched:
        lines.append("New tests (no baseline data):")
        for name in unmatched:
            lines.append(f"  - {name}")
        lines.append("")

    lines.extend(["-" * _RULE_WIDTH, "SUMMARY", "-" * _RULE_WIDTH, ""])
    lines.extend(_format_summary(summarize_comparisons(comparisons), threshold))
    lines.append("")
    lines.append("=" * _RULE_WIDTH)
    return "\n".join(lines)
