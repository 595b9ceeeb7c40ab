"""Benchmark result data structures and serialization.

Hierarchy::

    PerformanceReport (one run of a benchmark suite)
      → environment: Environment
      → results: list[TestResult]
        → stats: StatisticalSummary
        → metadata: ResultMetadata | None

Persisted form (JSON, camelCase keys)::

    {
      "testSuite": "ipc-performance",
      "timestamp": "2026-10-19T12:00:00.000Z",
      "environment": {"runtime": "CPython 3.12.4", "platform": "linux", "arch": "x86_64"},
      "results": [
        {
          "testName": "get-settings",
          "timestamp": "...",
          "commit": "abc1234",
          "branch": "main",
          "stats": {"mean": 1.2, "median": 1.1, ..., "stdDev": 0.3},
          "iterations": 100,
          "metadata": {"memoryDelta": 2048, "additionalMetrics": {"items": 500}}
        }
      ]
    }

Optional keys are omitted when absent.  Values are written unrounded
so that a saved report loads back equal to the original.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from perfwatch.bench.stats import StatisticalSummary
from perfwatch.errors import MalformedDataError

log = logging.getLogger("perfwatch")

# Recognised keys of ``metadata.additionalMetrics``.  Other keys are
# kept, but logged, so typos show up in verbose output.
KNOWN_METRICS: dict[str, str] = {
    "throughput_ops_per_s": "Operations completed per second",
    "payload_bytes": "Size of the payload handled by each call",
    "items": "Number of items processed by each call",
    "heap_peak_bytes": "Largest per-call tracemalloc peak above the starting level",
    "rss_delta_bytes": "Largest per-call change in resident set size",
}


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _require(data: dict[str, Any], key: str, kind: type | tuple[type, ...], where: str) -> Any:
    value = data.get(key)
    if isinstance(value, bool) and kind is not bool or not isinstance(value, kind):
        raise MalformedDataError(f"{where}.{key} is missing or has the wrong type: {value!r}")
    return value


def _require_mapping(data: Any, where: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedDataError(f"{where} must be a mapping, got {type(data).__name__}")
    return data


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResultMetadata:
    """Numeric side-channel attached to a TestResult."""

    memory_delta: float | None = None
    additional_metrics: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in self.additional_metrics:
            if key not in KNOWN_METRICS:
                log.debug("Unrecognised metric key %r", key)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (sparse: omits empty fields)."""
        d: dict[str, Any] = {}
        if self.memory_delta is not None:
            d["memoryDelta"] = self.memory_delta
        if self.additional_metrics:
            d["additionalMetrics"] = dict(self.additional_metrics)
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResultMetadata:
        """Deserialize from a dict."""
        data = _require_mapping(data, "metadata")
        memory_delta = data.get("memoryDelta")
        if memory_delta is not None:
            memory_delta = _require(data, "memoryDelta", (int, float), "metadata")
        metrics = _require_mapping(data.get("additionalMetrics", {}), "metadata.additionalMetrics")
        for key, value in metrics.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedDataError(
                    f"metadata.additionalMetrics.{key} must be a number, got {value!r}"
                )
        return cls(memory_delta=memory_delta, additional_metrics=dict(metrics))


# ---------------------------------------------------------------------------
# TestResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TestResult:
    """One named benchmark outcome."""

    __test__ = False  # not a pytest test class

    test_name: str
    timestamp: str
    stats: StatisticalSummary
    iterations: int
    commit: str | None = None
    branch: str | None = None
    metadata: ResultMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "testName": self.test_name,
            "timestamp": self.timestamp,
        }
        if self.commit is not None:
            d["commit"] = self.commit
        if self.branch is not None:
            d["branch"] = self.branch
        d["stats"] = self.stats.to_dict()
        d["iterations"] = self.iterations
        if self.metadata is not None:
            d["metadata"] = self.metadata.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestResult:
        """Deserialize from a dict, ignoring unknown fields.

        Raises:
            MalformedDataError: If required fields are missing or mistyped.
        """
        data = _require_mapping(data, "result")
        metadata = data.get("metadata")
        return cls(
            test_name=_require(data, "testName", str, "result"),
            timestamp=_require(data, "timestamp", str, "result"),
            stats=StatisticalSummary.from_dict(data.get("stats")),  # type: ignore[arg-type]
            iterations=_require(data, "iterations", int, "result"),
            commit=data.get("commit"),
            branch=data.get("branch"),
            metadata=ResultMetadata.from_dict(metadata) if metadata is not None else None,
        )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Environment:
    """Runtime, OS and CPU architecture a report was produced on."""

    runtime: str = ""
    platform: str = ""
    arch: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialize to a JSON-compatible dict."""
        return {"runtime": self.runtime, "platform": self.platform, "arch": self.arch}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Environment:
        """Deserialize from a dict.  Accepts ``node`` as a legacy key for runtime."""
        data = _require_mapping(data, "environment")
        return cls(
            runtime=str(data.get("runtime", data.get("node", ""))),
            platform=str(data.get("platform", "")),
            arch=str(data.get("arch", "")),
        )


@dataclass(frozen=True)
class PerformanceReport:
    """A named, timestamped batch of TestResults from one suite run."""

    test_suite: str
    timestamp: str
    environment: Environment = field(default_factory=Environment)
    results: tuple[TestResult, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence but store a tuple so the report stays immutable.
        object.__setattr__(self, "results", tuple(self.results))
        seen: set[str] = set()
        for r in self.results:
            if r.test_name in seen:
                log.warning(
                    "Duplicate test name %r in suite %r; comparisons use the first one",
                    r.test_name,
                    self.test_suite,
                )
            seen.add(r.test_name)

    @property
    def test_names(self) -> list[str]:
        """Test names in run order."""
        return [r.test_name for r in self.results]

    def get(self, test_name: str) -> TestResult | None:
        """First result with this test name, or None."""
        for r in self.results:
            if r.test_name == test_name:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "testSuite": self.test_suite,
            "timestamp": self.timestamp,
            "environment": self.environment.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceReport:
        """Deserialize from a dict.

        Raises:
            MalformedDataError: If the document does not match the schema.
        """
        data = _require_mapping(data, "report")
        results = _require(data, "results", list, "report")
        return cls(
            test_suite=_require(data, "testSuite", str, "report"),
            timestamp=_require(data, "timestamp", str, "report"),
            environment=Environment.from_dict(data.get("environment", {})),
            results=tuple(TestResult.from_dict(r) for r in results),
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> PerformanceReport:
        """Deserialize from a JSON string.

        Raises:
            MalformedDataError: If the text is not valid JSON or does not
                match the schema.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedDataError(f"Invalid JSON: {exc}") from exc
        return cls.from_dict(data)


# ---------------------------------------------------------------------------
# ResultTracker
# ---------------------------------------------------------------------------


class ResultTracker:
    """Collects TestResults for a suite in the order they finish."""

    def __init__(self) -> None:
        self._results: list[TestResult] = []

    def track(
        self,
        test_name: str,
        stats: StatisticalSummary,
        iterations: int,
        metadata: ResultMetadata | None = None,
        *,
        commit: str | None = None,
        branch: str | None = None,
    ) -> TestResult:
        """Record a finished benchmark and return its TestResult."""
        result = TestResult(
            test_name=test_name,
            timestamp=utc_timestamp(),
            stats=stats,
            iterations=iterations,
            commit=commit,
            branch=branch,
            metadata=metadata,
        )
        self._results.append(result)
        return result

    @property
    def results(self) -> list[TestResult]:
        """Tracked results, oldest first."""
        return list(self._results)

    def clear(self) -> None:
        """Forget all tracked results."""
        self._results.clear()

    def __len__(self) -> int:
        return len(self._results)

    def build_report(self, test_suite: str, environment: Environment) -> PerformanceReport:
        """Bundle the tracked results into a PerformanceReport."""
        return PerformanceReport(
            test_suite=test_suite,
            timestamp=utc_timestamp(),
            environment=environment,
            results=tuple(self._results),
        )
