"""Exception hierarchy for perfwatch.

Storage-layer read failures are normally recovered into ``None`` by
:class:`perfwatch.bench.store.ResultStore`; the other errors propagate
to the caller and are turned into a diagnostic by the CLI.

Every error carries a ``hint``: a short corrective action the CLI prints
under the message.  Subclasses set a default; a raise site can pass a
more specific one.
"""

from __future__ import annotations


class PerfwatchError(Exception):
    """Base class for all perfwatch errors."""

    hint: str | None = "Run `perfwatch --help` for usage."

    def __init__(self, message: str = "", *, hint: str | None = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class ConfigurationError(PerfwatchError):
    """The results directory or an explicit report path is unusable."""

    hint = (
        "Check --results-dir, --threshold and --profile (or PERFWATCH_RESULTS_DIR "
        "and PERFWATCH_THRESHOLD)."
    )


class MalformedDataError(PerfwatchError, ValueError):
    """A persisted report could not be parsed."""

    hint = "Re-run your benchmarks to regenerate the report."


class NoMatchError(PerfwatchError):
    """Baseline and current reports share no test names."""

    hint = "Check that both reports come from the same benchmark suite."


class InvalidInputError(PerfwatchError, ValueError):
    """A computation was given input it cannot work with.

    Raised for empty sample sets, non-positive iteration counts, and
    non-finite statistics handed to the exporter.  Indicates a caller
    bug, so it should not be caught and ignored.
    """

    hint = "Re-run your benchmarks to regenerate the report."
