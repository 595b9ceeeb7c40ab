"""Benchmark suite execution.

Orchestrates:
1. Registration of named benchmarks
2. Sequential sampling of each benchmark
3. Reduction to statistics and threshold checks
4. Persisting the report (plus CSV), optionally as the new baseline
5. Optional comparison against the stored baseline

Benchmarks run one after another in registration order, and the report
lists them in that order.

Usage::

    store = ResultStore("performance-results")
    suite = BenchSuite("store-performance", store)

    @suite.benchmark("read-1000-keys", iterations=50)
    def read_keys():
        return [kv.get(k) for k in keys]

    report = suite.run()
    outcome = suite.finalize(report)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from perfwatch.bench.compare import (
    ComparisonResult,
    compare_reports,
    find_unmatched,
    has_regressions,
)
from perfwatch.bench.config import PerfConfig, apply_env
from perfwatch.bench.display import format_comparison, format_stats
from perfwatch.bench.results import PerformanceReport, ResultMetadata, ResultTracker
from perfwatch.bench.stats import (
    PerformanceThresholds,
    ThresholdViolation,
    check_thresholds,
    summarize,
)
from perfwatch.bench.store import ResultStore
from perfwatch.bench.system import capture_environment, git_branch, git_commit
from perfwatch.bench.timing import Operation, Sample, Sampler

log = logging.getLogger("perfwatch")


# ---------------------------------------------------------------------------
# Benchmark definition
# ---------------------------------------------------------------------------


@dataclass
class Benchmark:
    """A named operation to time."""

    name: str
    operation: Operation[Any]
    iterations: int
    track_memory: bool = False
    thresholds: PerformanceThresholds | None = None
    # Extra numeric metrics, keyed as in results.KNOWN_METRICS.
    metrics: dict[str, float] = field(default_factory=dict)


@dataclass
class SuiteOutcome:
    """What :meth:`BenchSuite.finalize` did."""

    report_path: Path
    csv_path: Path | None = None
    baseline_path: Path | None = None
    comparisons: list[ComparisonResult] | None = None
    violations: dict[str, list[ThresholdViolation]] = field(default_factory=dict)

    @property
    def regressed(self) -> bool:
        """True if a comparison ran and found a regression."""
        return bool(self.comparisons) and has_regressions(self.comparisons or [])


# ---------------------------------------------------------------------------
# BenchSuite
# ---------------------------------------------------------------------------


class BenchSuite:
    """A named collection of benchmarks producing one PerformanceReport."""

    def __init__(
        self,
        name: str,
        store: ResultStore,
        config: PerfConfig | None = None,
        *,
        record_provenance: bool = True,
    ) -> None:
        self.name = name
        self.store = store
        self.config = config if config is not None else apply_env(PerfConfig())
        self.record_provenance = record_provenance
        self.benchmarks: list[Benchmark] = []
        self.violations: dict[str, list[ThresholdViolation]] = {}
        self._tracker = ResultTracker()
        self._commit: str | None = None
        self._branch: str | None = None

    # -- registration ------------------------------------------------------

    def add(
        self,
        name: str,
        operation: Operation[Any],
        *,
        iterations: int | None = None,
        track_memory: bool | None = None,
        thresholds: PerformanceThresholds | None = None,
        metrics: dict[str, float] | None = None,
    ) -> Benchmark:
        """Register a benchmark.  Names must be unique within the suite."""
        if any(b.name == name for b in self.benchmarks):
            raise ValueError(f"Benchmark '{name}' is already registered in suite '{self.name}'")
        bench = Benchmark(
            name=name,
            operation=operation,
            iterations=iterations if iterations is not None else self.config.default_iterations,
            track_memory=(
                track_memory if track_memory is not None else self.config.track_memory
            ),
            thresholds=thresholds,
            metrics=dict(metrics or {}),
        )
        self.benchmarks.append(bench)
        return bench

    def benchmark(self, name: str, **kwargs: Any) -> Callable[[Operation[Any]], Operation[Any]]:
        """Decorator form of :meth:`add`."""

        def decorator(fn: Operation[Any]) -> Operation[Any]:
            self.add(name, fn, **kwargs)
            return fn

        return decorator

    # -- execution ---------------------------------------------------------

    def run(self) -> PerformanceReport:
        """Run every registered benchmark and return the report."""
        self._start()
        for i, bench in enumerate(self.benchmarks, 1):
            log.info(
                "[%d/%d] %s (%d iterations)", i, len(self.benchmarks), bench.name, bench.iterations
            )
            _, samples = Sampler(track_memory=bench.track_memory).run(
                bench.operation, bench.iterations
            )
            self._record(bench, samples)
        return self._report()

    async def arun(self) -> PerformanceReport:
        """Async variant of :meth:`run` for suites with async operations."""
        self._start()
        for i, bench in enumerate(self.benchmarks, 1):
            log.info(
                "[%d/%d] %s (%d iterations)", i, len(self.benchmarks), bench.name, bench.iterations
            )
            _, samples = await Sampler(track_memory=bench.track_memory).arun(
                bench.operation, bench.iterations
            )
            self._record(bench, samples)
        return self._report()

    def _start(self) -> None:
        self._tracker.clear()
        self.violations = {}
        if self.record_provenance:
            self._commit, self._branch = git_commit(), git_branch()
        else:
            self._commit, self._branch = None, None

    def _record(self, bench: Benchmark, samples: list[Sample]) -> None:
        stats = summarize([s.duration_ms for s in samples])
        log.info("%s", format_stats(bench.name, stats, bench.iterations))

        metrics = dict(bench.metrics)
        memory_delta: float | None = None
        deltas = [s.memory_delta for s in samples if s.memory_delta is not None]
        if deltas:
            memory_delta = float(max(d.heap_used for d in deltas))
            metrics.setdefault("heap_peak_bytes", float(max(d.heap_peak for d in deltas)))
            metrics.setdefault("rss_delta_bytes", float(max(d.rss for d in deltas)))
        metadata = None
        if memory_delta is not None or metrics:
            metadata = ResultMetadata(memory_delta=memory_delta, additional_metrics=metrics)

        if bench.thresholds is not None:
            found = check_thresholds(stats, samples, bench.thresholds)
            if found:
                self.violations[bench.name] = found
                for v in found:
                    log.warning("Threshold exceeded in '%s': %s", bench.name, v)

        self._tracker.track(
            bench.name,
            stats,
            len(samples),
            metadata,
            commit=self._commit,
            branch=self._branch,
        )

    def _report(self) -> PerformanceReport:
        return self._tracker.build_report(self.name, capture_environment())

    # -- persistence -------------------------------------------------------

    def finalize(self, report: PerformanceReport) -> SuiteOutcome:
        """Persist *report* and act on the configured toggles.

        Always saves the report.  Also writes a CSV export if
        ``config.export_csv``, saves the report as the new baseline if
        ``config.save_baseline``, and compares against the existing
        baseline if ``config.compare_baseline``.  The comparison runs
        before the baseline is replaced.
        """
        outcome = SuiteOutcome(
            report_path=self.store.save_report(report),
            violations=dict(self.violations),
        )

        if self.config.export_csv:
            outcome.csv_path = self.store.write_csv(report)

        if self.config.compare_baseline:
            baseline = self.store.load_baseline()
            if baseline is None:
                log.warning("No baseline found. Set SAVE_BASELINE=true to create one.")
            else:
                threshold = self.config.regression_threshold
                outcome.comparisons = compare_reports(baseline, report, threshold)
                log.info(
                    "\n%s",
                    format_comparison(
                        baseline,
                        report,
                        outcome.comparisons,
                        threshold=threshold,
                        unmatched=find_unmatched(baseline, report),
                    ),
                )

        if self.config.save_baseline:
            outcome.baseline_path = self.store.save_as_baseline(report)

        return outcome
