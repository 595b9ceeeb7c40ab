"""Tests for perfwatch.cli — the perfwatch command."""

from __future__ import annotations

import logging
import tempfile
import unittest
from pathlib import Path

from click.testing import CliRunner, Result
from perf_test_helpers import make_report, set_mtime

from perfwatch import __version__
from perfwatch.bench.store import ResultStore
from perfwatch.cli import main

# Keep the developer's environment out of the config under test.
_CLEAN_ENV = {
    "SAVE_BASELINE": None,
    "COMPARE_BASELINE": None,
    "PERFWATCH_RESULTS_DIR": None,
    "PERFWATCH_THRESHOLD": None,
}


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.results_dir = self.root / "performance-results"
        self.store = ResultStore(self.results_dir)

    def tearDown(self) -> None:
        # setup_logging() binds a handler to the runner's captured stderr.
        logger = logging.getLogger("perfwatch")
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        self._tmp.cleanup()

    def invoke(self, *args: str) -> Result:
        return CliRunner().invoke(
            main, [*args, "--results-dir", str(self.results_dir)], env=_CLEAN_ENV
        )

    def write_report(self, name: str, means: dict[str, float]) -> Path:
        path = self.root / name
        path.write_text(make_report(means).to_json())
        return path


class TestMainGroup(unittest.TestCase):
    def test_help(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        self.assertEqual(result.exit_code, 0)
        for command in ("compare", "list", "show", "export", "baseline", "prune"):
            self.assertIn(command, result.output)

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, result.output)

    def test_compare_help(self) -> None:
        result = CliRunner().invoke(main, ["compare", "--help"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("--threshold", result.output)
        self.assertIn("--results-dir", result.output)


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


class TestCompareFiles(CliTestCase):
    """perfwatch compare BASELINE CURRENT."""

    def test_regression_exits_1(self) -> None:
        base = self.write_report("base.json", {"A": 10.0, "B": 10.0})
        cur = self.write_report("cur.json", {"A": 12.0, "B": 8.5})
        result = self.invoke("compare", str(base), str(cur))
        self.assertEqual(result.exit_code, 1)
        self.assertIn(f"Comparing: {base} vs {cur}", result.output)
        self.assertIn("[REGRESSION] A", result.output)
        self.assertIn("[IMPROVED] B", result.output)
        self.assertIn("PERFORMANCE REGRESSIONS DETECTED!", result.output)

    def test_stable_exits_0(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"A": 10.5, "C": 1.0})
        result = self.invoke("compare", str(base), str(cur))
        self.assertEqual(result.exit_code, 0)
        self.assertIn("[STABLE] A", result.output)
        self.assertIn("New tests (no baseline data):", result.output)
        self.assertIn("Performance is stable.", result.output)

    def test_improvement_exits_0(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"A": 5.0})
        result = self.invoke("compare", str(base), str(cur))
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Performance improvements detected.", result.output)

    def test_threshold_option(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"A": 12.0})
        result = self.invoke("compare", str(base), str(cur), "--threshold", "0.25")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("[STABLE] A", result.output)

    def test_invalid_threshold(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        result = self.invoke("compare", str(base), str(base), "--threshold", "-1")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error:", result.output)

    def test_nan_threshold_rejected(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"A": 50.0})
        result = self.invoke("compare", str(base), str(cur), "--threshold", "nan")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("must be a finite number", result.output)
        self.assertIn("--threshold", result.output)

    def test_nan_threshold_from_environment(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"A": 50.0})
        result = CliRunner().invoke(
            main,
            ["compare", str(base), str(cur), "--results-dir", str(self.results_dir)],
            env={**_CLEAN_ENV, "PERFWATCH_THRESHOLD": "nan"},
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("must be a finite number", result.output)

    def test_nan_baseline_mean_rejected(self) -> None:
        base = self.root / "base.json"
        base.write_text(
            make_report({"A": 10.0}).to_json().replace('"mean": 10.0', '"mean": NaN')
        )
        cur = self.write_report("cur.json", {"A": 50.0})
        result = self.invoke("compare", str(base), str(cur))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Could not parse performance report", result.output)

    def test_no_matching_tests(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        cur = self.write_report("cur.json", {"B": 10.0})
        result = self.invoke("compare", str(base), str(cur))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No matching tests found", result.output)
        self.assertIn("same benchmark suite", result.output)

    def test_missing_file(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        result = self.invoke("compare", str(base), str(self.root / "missing.json"))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("File not found", result.output)
        self.assertIn("run `perfwatch list`", result.output)

    def test_corrupt_file(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        bad = self.root / "bad.json"
        bad.write_text("{oops")
        result = self.invoke("compare", str(base), str(bad))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Could not parse performance report", result.output)

    def test_wrong_argument_count(self) -> None:
        base = self.write_report("base.json", {"A": 10.0})
        result = self.invoke("compare", str(base))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Usage:", result.output)
        self.assertIn("perfwatch compare baseline.json current.json", result.output)


class TestCompareLatest(CliTestCase):
    """perfwatch compare with no arguments."""

    def test_no_baseline(self) -> None:
        self.store.save_report(make_report({"A": 10.0}))
        result = self.invoke("compare")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No baseline found!", result.output)
        self.assertIn("SAVE_BASELINE=true", result.output)

    def test_no_reports(self) -> None:
        self.store.save_as_baseline(make_report({"A": 10.0}))
        result = self.invoke("compare")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No performance results found", result.output)

    def test_latest_against_baseline(self) -> None:
        self.store.save_as_baseline(make_report({"A": 10.0}))
        old = self.store.save_report(make_report({"A": 50.0}))
        new = self.store.save_report(make_report({"A": 10.2}))
        set_mtime(old, 1_700_000_000)
        set_mtime(new, 1_700_000_100)

        result = self.invoke("compare")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Comparing latest run against baseline...", result.output)
        self.assertIn(f"Current: {new.name}", result.output)
        self.assertIn("[STABLE] A", result.output)

    def test_latest_regressed(self) -> None:
        self.store.save_as_baseline(make_report({"A": 10.0}))
        self.store.save_report(make_report({"A": 20.0}))
        result = self.invoke("compare")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("[REGRESSION] A", result.output)

    def test_corrupt_baseline(self) -> None:
        self.store.save_report(make_report({"A": 10.0}))
        self.store.baseline_path.write_text("not json")
        result = self.invoke("compare")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("is not a valid report", result.output)

    def test_results_dir_is_a_file(self) -> None:
        self.results_dir.write_text("")
        result = self.invoke("compare")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not a directory", result.output)


# ---------------------------------------------------------------------------
# Other commands
# ---------------------------------------------------------------------------


class TestList(CliTestCase):
    def test_empty(self) -> None:
        result = self.invoke("list")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("No reports in", result.output)

    def test_lists_newest_first(self) -> None:
        self.store.save_as_baseline(make_report({"A": 1.0}))
        old = self.store.save_report(make_report({"A": 1.0}))
        new = self.store.save_report(make_report({"A": 2.0}))
        set_mtime(old, 1_700_000_000)
        set_mtime(new, 1_700_000_100)

        result = self.invoke("list")

        self.assertEqual(result.exit_code, 0)
        self.assertIn(f"Baseline: {self.store.baseline_path}", result.output)
        self.assertLess(result.output.index(new.name), result.output.index(old.name))


class TestShow(CliTestCase):
    def test_show(self) -> None:
        path = self.write_report("r.json", {"get-settings": 1.5})
        result = self.invoke("show", str(path))
        self.assertEqual(result.exit_code, 0)
        self.assertIn("ipc-performance", result.output)
        self.assertIn("get-settings", result.output)

    def test_show_missing(self) -> None:
        result = self.invoke("show", str(self.root / "missing.json"))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("File not found", result.output)


class TestExport(CliTestCase):
    def test_export_stdout(self) -> None:
        path = self.write_report("r.json", {"get-settings": 1.005})
        result = self.invoke("export", str(path))
        self.assertEqual(result.exit_code, 0)
        self.assertTrue(result.output.startswith("Test Name,Timestamp,Mean (ms)"))
        self.assertIn("get-settings,2026-10-19T12:00:00.000Z,1.01,", result.output)

    def test_export_to_file(self) -> None:
        path = self.write_report("r.json", {"A": 1.0})
        out = self.root / "out.csv"
        result = self.invoke("export", str(path), "-o", str(out))
        self.assertEqual(result.exit_code, 0)
        self.assertIn(f"Exported to {out}", result.output)
        self.assertEqual(len(out.read_text().splitlines()), 2)


class TestBaselineCommand(CliTestCase):
    def test_promote(self) -> None:
        path = self.write_report("r.json", {"A": 3.0})
        result = self.invoke("baseline", str(path))
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Baseline saved:", result.output)
        self.assertEqual(self.store.load_baseline(), make_report({"A": 3.0}))

    def test_promote_corrupt(self) -> None:
        bad = self.root / "bad.json"
        bad.write_text("[]")
        result = self.invoke("baseline", str(bad))
        self.assertEqual(result.exit_code, 1)
        self.assertFalse(self.store.has_baseline())


class TestPrune(CliTestCase):
    def test_prune(self) -> None:
        self.store.save_as_baseline(make_report({"A": 1.0}))
        paths = [self.store.save_report(make_report({"A": float(i)})) for i in range(4)]
        for i, path in enumerate(paths):
            set_mtime(path, 1_700_000_000 + i)

        result = self.invoke("prune", "--keep-last", "1")

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Deleted 3 old result file(s).", result.output)
        self.assertEqual(self.store.list_reports(), [paths[3]])
        self.assertTrue(self.store.has_baseline())

    def test_prune_negative(self) -> None:
        result = self.invoke("prune", "--keep-last", "-1")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("keep_last cannot be negative", result.output)
        self.assertIn("Pass --keep-last 0 or more.", result.output)

    def test_profile_keep_last(self) -> None:
        profile = self.root / "perfwatch.yaml"
        profile.write_text("keep_last: 2\n")
        paths = [self.store.save_report(make_report({"A": float(i)})) for i in range(3)]
        for i, path in enumerate(paths):
            set_mtime(path, 1_700_000_000 + i)
        result = self.invoke("prune", "--profile", str(profile))
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Deleted 1 old result file(s).", result.output)
