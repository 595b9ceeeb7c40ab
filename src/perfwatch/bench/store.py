"""Durable storage for benchmark reports and the baseline.

Layout of a results directory::

    performance-results/
      baseline.json                                  the comparison reference
      ipc-performance_report_2026-10-19T12-00-00-000Z.json
      ipc-performance_2026-10-19T12-00-00-000Z.json  single TestResult
      ipc-performance_2026-10-19T12-00-00-000Z.csv   CSV export

Every save writes a new file; only :meth:`ResultStore.save_as_baseline`
overwrites anything.  The directory is created on first write.

There is no locking.  Two processes saving reports into one directory
is harmless, but two processes saving a baseline race and the last
writer wins.  Callers sharing a directory must serialize writes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from perfwatch.bench.export import export_csv
from perfwatch.bench.results import PerformanceReport, TestResult, utc_timestamp
from perfwatch.errors import ConfigurationError, MalformedDataError

log = logging.getLogger("perfwatch")

BASELINE_FILENAME = "baseline.json"
DEFAULT_KEEP_LAST = 10


def _file_stamp(timestamp: str) -> str:
    """Make an ISO-8601 timestamp safe for use in a file name."""
    return timestamp.replace(":", "-").replace(".", "-")


class ResultStore:
    """Reads and writes reports under one results directory.

    Create one instance per process and pass it to whatever needs it.
    """

    def __init__(self, results_dir: Path | str) -> None:
        self.results_dir = Path(results_dir)

    @property
    def baseline_path(self) -> Path:
        """Fixed location of the baseline report."""
        return self.results_dir / BASELINE_FILENAME

    def __repr__(self) -> str:
        return f"ResultStore({str(self.results_dir)!r})"

    # -- writing -----------------------------------------------------------

    def _ensure_dir(self) -> None:
        if self.results_dir.exists() and not self.results_dir.is_dir():
            raise ConfigurationError(f"Results path is not a directory: {self.results_dir}")
        self.results_dir.mkdir(parents=True, exist_ok=True)

    def _unique_path(self, stem: str, suffix: str) -> Path:
        """A path that does not exist yet, adding ``-N`` on collision."""
        path = self.results_dir / f"{stem}{suffix}"
        counter = 1
        while path.exists():
            path = self.results_dir / f"{stem}-{counter}{suffix}"
            counter += 1
        return path

    def _write_new(self, stem: str, suffix: str, text: str) -> Path:
        self._ensure_dir()
        path = self._unique_path(stem, suffix)
        # "x" mode refuses to clobber a file created since the existence check.
        with open(path, "x", encoding="utf-8") as f:
            f.write(text)
        return path

    def save_report(self, report: PerformanceReport) -> Path:
        """Persist *report* as a new timestamped file and return its path."""
        stem = f"{report.test_suite}_report_{_file_stamp(utc_timestamp())}"
        path = self._write_new(stem, ".json", report.to_json() + "\n")
        log.info("Saved report with %d results to %s", len(report.results), path)
        return path

    def save_test_result(self, test_suite: str, result: TestResult) -> Path:
        """Persist a single TestResult as a new timestamped file."""
        stem = f"{test_suite}_{_file_stamp(utc_timestamp())}"
        path = self._write_new(stem, ".json", json.dumps(result.to_dict(), indent=2) + "\n")
        log.info("Saved result '%s' to %s", result.test_name, path)
        return path

    def save_as_baseline(self, report: PerformanceReport) -> Path:
        """Replace the baseline with *report*."""
        self._ensure_dir()
        self.baseline_path.write_text(report.to_json() + "\n", encoding="utf-8")
        log.info("Baseline saved: %s", self.baseline_path)
        return self.baseline_path

    def write_csv(self, report: PerformanceReport) -> Path:
        """Write the CSV export of *report* to a new timestamped file."""
        text = self.export_csv(report)
        stem = f"{report.test_suite}_{_file_stamp(utc_timestamp())}"
        path = self._write_new(stem, ".csv", text)
        log.info("CSV exported: %s", path)
        return path

    # -- reading -----------------------------------------------------------

    def has_baseline(self) -> bool:
        """True once a baseline has been saved."""
        return self.baseline_path.is_file()

    def load_baseline(self) -> PerformanceReport | None:
        """Load the baseline, or None if none has been saved (or it is corrupt)."""
        return self.load_report(self.baseline_path)

    def load_report(self, path: Path | str) -> PerformanceReport | None:
        """Load a report from *path*.

        Returns None if the file is missing or its content is not a
        valid report.  Corrupt files are logged, never raised.
        """
        path = Path(path)
        if not path.is_file():
            log.debug("No report at %s", path)
            return None
        try:
            return PerformanceReport.from_json(path.read_text(encoding="utf-8"))
        except (MalformedDataError, UnicodeDecodeError) as exc:
            log.warning("Failed to load report from %s: %s", path, exc)
            return None
        except OSError as exc:
            log.warning("Failed to read %s: %s", path, exc)
            return None

    def _records(self) -> list[Path]:
        """Persisted JSON records other than the baseline, newest first."""
        if not self.results_dir.is_dir():
            return []
        records = [
            p
            for p in self.results_dir.glob("*.json")
            if p.name != BASELINE_FILENAME and p.is_file()
        ]
        # Names embed the save time, so they break mtime ties.
        records.sort(key=lambda p: (p.stat().st_mtime_ns, p.name), reverse=True)
        return records

    def list_reports(self) -> list[Path]:
        """Saved report files, most recently modified first."""
        return [p for p in self._records() if "_report_" in p.name]

    def latest_report(self) -> Path | None:
        """The most recently saved report file, if any."""
        reports = self.list_reports()
        return reports[0] if reports else None

    # -- maintenance -------------------------------------------------------

    def prune_reports(self, keep_last: int = DEFAULT_KEEP_LAST) -> list[Path]:
        """Delete all but the *keep_last* newest records.

        The baseline is never deleted.  Files that cannot be removed are
        logged and skipped.

        Returns:
            Paths that were deleted.
        """
        if keep_last < 0:
            raise ValueError(f"keep_last must be non-negative (got {keep_last})")

        deleted: list[Path] = []
        for path in self._records()[keep_last:]:
            try:
                path.unlink()
            except OSError as exc:
                log.error("Failed to delete %s: %s", path.name, exc)
                continue
            log.info("Deleted old result: %s", path.name)
            deleted.append(path)

        if deleted:
            log.info("Cleaned up %d old result files", len(deleted))
        return deleted

    def export_csv(self, report: PerformanceReport) -> str:
        """CSV text for *report* (see :func:`perfwatch.bench.export.export_csv`)."""
        return export_csv(report)
