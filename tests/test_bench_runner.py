"""Tests for perfwatch.bench.runner — suite execution and finalization."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from perf_test_helpers import make_report

from perfwatch.bench.config import PerfConfig
from perfwatch.bench.runner import BenchSuite
from perfwatch.bench.stats import PerformanceThresholds
from perfwatch.bench.store import ResultStore
from perfwatch.errors import InvalidInputError


class RunnerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.results_dir = Path(self._tmp.name) / "performance-results"
        self.store = ResultStore(self.results_dir)
        self.config = PerfConfig(results_dir=self.results_dir, default_iterations=5)

        commit = patch("perfwatch.bench.runner.git_commit", return_value="abc1234")
        branch = patch("perfwatch.bench.runner.git_branch", return_value="main")
        self.mock_commit = commit.start()
        self.mock_branch = branch.start()
        self.addCleanup(commit.stop)
        self.addCleanup(branch.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def make_suite(self, **config_changes: object) -> BenchSuite:
        for key, value in config_changes.items():
            setattr(self.config, key, value)
        return BenchSuite("ipc-performance", self.store, self.config)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration(RunnerTestCase):
    """Tests for BenchSuite.add() and the decorator."""

    def test_add_uses_config_defaults(self) -> None:
        suite = self.make_suite(track_memory=True)
        bench = suite.add("noop", lambda: None)
        self.assertEqual(bench.iterations, 5)
        self.assertTrue(bench.track_memory)

    def test_add_overrides(self) -> None:
        suite = self.make_suite()
        bench = suite.add("noop", lambda: None, iterations=3, track_memory=False)
        self.assertEqual(bench.iterations, 3)
        self.assertFalse(bench.track_memory)

    def test_duplicate_name_rejected(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None)
        with self.assertRaises(ValueError):
            suite.add("noop", lambda: None)

    def test_decorator_returns_function(self) -> None:
        suite = self.make_suite()

        @suite.benchmark("answer", iterations=2)
        def answer() -> int:
            return 42

        self.assertEqual(answer(), 42)
        self.assertEqual([b.name for b in suite.benchmarks], ["answer"])
        self.assertEqual(suite.benchmarks[0].iterations, 2)


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------


class TestRun(RunnerTestCase):
    """Tests for BenchSuite.run()."""

    def test_report_in_registration_order(self) -> None:
        suite = self.make_suite()
        calls: list[str] = []
        suite.add("second-registered-first", lambda: calls.append("a"), iterations=2)
        suite.add("alpha", lambda: calls.append("b"), iterations=3)

        report = suite.run()

        self.assertEqual(calls, ["a", "a", "b", "b", "b"])
        self.assertEqual(report.test_suite, "ipc-performance")
        self.assertEqual(report.test_names, ["second-registered-first", "alpha"])
        self.assertEqual([r.iterations for r in report.results], [2, 3])
        self.assertTrue(report.environment.runtime)

    def test_provenance_recorded(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None)
        result = suite.run().results[0]
        self.assertEqual(result.commit, "abc1234")
        self.assertEqual(result.branch, "main")

    def test_provenance_disabled(self) -> None:
        suite = BenchSuite("s", self.store, self.config, record_provenance=False)
        suite.add("noop", lambda: None)
        result = suite.run().results[0]
        self.assertIsNone(result.commit)
        self.assertIsNone(result.branch)
        self.mock_commit.assert_not_called()

    def test_no_metadata_by_default(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None)
        self.assertIsNone(suite.run().results[0].metadata)

    def test_memory_metadata(self) -> None:
        suite = self.make_suite()
        kept: list[bytearray] = []
        suite.add("alloc", lambda: kept.append(bytearray(64 * 1024)), track_memory=True)
        metadata = suite.run().results[0].metadata
        assert metadata is not None
        self.assertGreaterEqual(metadata.memory_delta, 64 * 1024)
        self.assertIn("heap_peak_bytes", metadata.additional_metrics)
        self.assertIn("rss_delta_bytes", metadata.additional_metrics)

    def test_custom_metrics(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None, metrics={"payload_bytes": 2048.0})
        metadata = suite.run().results[0].metadata
        assert metadata is not None
        self.assertIsNone(metadata.memory_delta)
        self.assertEqual(metadata.additional_metrics, {"payload_bytes": 2048.0})

    def test_threshold_violation_logged(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None, thresholds=PerformanceThresholds(max_mean=0.0))
        with self.assertLogs("perfwatch", level="WARNING") as cm:
            suite.run()
        self.assertIn("Threshold exceeded in 'noop'", "\n".join(cm.output))
        self.assertEqual([v.check for v in suite.violations["noop"]], ["mean"])

    def test_thresholds_met(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None, thresholds=PerformanceThresholds(max_mean=60_000.0))
        suite.run()
        self.assertEqual(suite.violations, {})

    def test_operation_error_propagates(self) -> None:
        suite = self.make_suite()

        def broken() -> None:
            raise RuntimeError("boom")

        suite.add("broken", broken)
        with self.assertRaises(RuntimeError):
            suite.run()

    def test_zero_iterations(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None, iterations=0)
        with self.assertRaises(InvalidInputError):
            suite.run()

    def test_rerun_starts_fresh(self) -> None:
        suite = self.make_suite()
        suite.add("noop", lambda: None)
        suite.run()
        self.assertEqual(len(suite.run().results), 1)

    def test_async_operation_in_sync_run(self) -> None:
        suite = self.make_suite()

        async def op() -> None:
            await asyncio.sleep(0)

        suite.add("async-op", op, iterations=3)
        self.assertEqual(suite.run().results[0].iterations, 3)


class TestArun(unittest.IsolatedAsyncioTestCase):
    async def test_arun(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ResultStore(tmp)
            suite = BenchSuite(
                "async-suite", store, PerfConfig(results_dir=Path(tmp)), record_provenance=False
            )
            order: list[str] = []

            async def op() -> None:
                order.append("in")
                await asyncio.sleep(0)
                order.append("out")

            suite.add("async-op", op, iterations=2)
            report = await suite.arun()

        self.assertEqual(order, ["in", "out", "in", "out"])
        self.assertEqual(report.test_names, ["async-op"])


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------


class TestFinalize(RunnerTestCase):
    """Tests for BenchSuite.finalize()."""

    def _run(self, suite: BenchSuite):  # type: ignore[no-untyped-def]
        suite.add("noop", lambda: None)
        return suite.run()

    def test_default_saves_report_and_csv(self) -> None:
        suite = self.make_suite()
        report = self._run(suite)
        outcome = suite.finalize(report)

        self.assertEqual(self.store.load_report(outcome.report_path), report)
        self.assertIsNotNone(outcome.csv_path)
        self.assertTrue(outcome.csv_path.is_file())
        self.assertIsNone(outcome.baseline_path)
        self.assertIsNone(outcome.comparisons)
        self.assertFalse(outcome.regressed)
        self.assertFalse(self.store.has_baseline())

    def test_csv_disabled(self) -> None:
        suite = self.make_suite(export_csv=False)
        outcome = suite.finalize(self._run(suite))
        self.assertIsNone(outcome.csv_path)
        self.assertEqual(list(self.results_dir.glob("*.csv")), [])

    def test_save_baseline(self) -> None:
        suite = self.make_suite(save_baseline=True)
        report = self._run(suite)
        outcome = suite.finalize(report)
        self.assertEqual(outcome.baseline_path, self.store.baseline_path)
        self.assertEqual(self.store.load_baseline(), report)

    def test_compare_without_baseline_warns(self) -> None:
        suite = self.make_suite(compare_baseline=True)
        report = self._run(suite)
        with self.assertLogs("perfwatch", level="WARNING") as cm:
            outcome = suite.finalize(report)
        self.assertIn("No baseline found", "\n".join(cm.output))
        self.assertIsNone(outcome.comparisons)

    def test_compare_runs_before_baseline_replaced(self) -> None:
        old_baseline = make_report({"noop": 1e-12})
        self.store.save_as_baseline(old_baseline)

        suite = self.make_suite(compare_baseline=True, save_baseline=True)
        report = self._run(suite)
        outcome = suite.finalize(report)

        assert outcome.comparisons is not None
        self.assertEqual(len(outcome.comparisons), 1)
        self.assertEqual(outcome.comparisons[0].baseline, old_baseline.results[0].stats)
        self.assertTrue(outcome.regressed)
        self.assertEqual(self.store.load_baseline(), report)

    def test_compare_stable(self) -> None:
        suite = self.make_suite(compare_baseline=True)
        report = self._run(suite)
        self.store.save_as_baseline(report)
        outcome = suite.finalize(report)
        assert outcome.comparisons is not None
        self.assertTrue(outcome.comparisons[0].stable)
        self.assertFalse(outcome.regressed)

    def test_violations_carried(self) -> None:
        suite = self.make_suite()
        suite.add("slow", lambda: None, thresholds=PerformanceThresholds(max_p99=0.0))
        with self.assertLogs("perfwatch", level="WARNING"):
            report = suite.run()
        outcome = suite.finalize(report)
        self.assertIn("slow", outcome.violations)
