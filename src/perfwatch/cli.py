"""Command-line interface for perfwatch.

Subcommands:
    perfwatch compare    Compare the latest report (or two files) against a baseline
    perfwatch list       List stored reports, newest first
    perfwatch show       Display one report
    perfwatch export     Export a report as CSV
    perfwatch baseline   Promote a stored report to be the baseline
    perfwatch prune      Delete old reports, keeping the newest N
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import click

from perfwatch import __version__
from perfwatch.bench.config import PerfConfig, load_config, resolve_results_dir, validate_config
from perfwatch.bench.results import PerformanceReport
from perfwatch.bench.store import ResultStore
from perfwatch.errors import ConfigurationError, NoMatchError, PerfwatchError
from perfwatch.logging import get_logger, setup_logging

log = get_logger("cli")

_USAGE = """\
Usage:
  perfwatch compare                          # Compare latest report with baseline
  perfwatch compare baseline.json current.json  # Compare two report files"""


def _fail(message: str, hint: str | None = None) -> NoReturn:
    """Print a diagnostic (and optional corrective command) and exit 1."""
    click.echo(f"Error: {message}", err=True)
    if hint:
        click.echo(f"   {hint}", err=True)
    raise SystemExit(1)


def _open_store(
    results_dir: Path | None,
    profile_path: Path | None,
    threshold: float | None = None,
) -> tuple[PerfConfig, ResultStore]:
    """Resolve configuration and open the ResultStore it points at."""
    config = load_config(
        profile_path,
        cli_overrides={"results_dir": results_dir, "regression_threshold": threshold},
    )
    for err in validate_config(config):
        if err.severity == "warning":
            log.warning("Config warning: %s: %s", err.field, err.message)
        elif err.field != "results_dir":
            raise ConfigurationError(f"{err.field}: {err.message}")
    return config, ResultStore(resolve_results_dir(config))


def _load_explicit(store: ResultStore, path: Path) -> PerformanceReport:
    """Load a report named on the command line, failing loudly."""
    if not path.is_file():
        raise ConfigurationError(
            f"File not found: {path}",
            hint="Check the path, or run `perfwatch list` to see stored reports.",
        )
    report = store.load_report(path)
    if report is None:
        _fail(
            f"Could not parse performance report: {path}",
            "Pass a report JSON written by perfwatch; run `perfwatch list` to see stored ones.",
        )
    return report


def _common_options(fn):  # type: ignore[no-untyped-def]
    """Options shared by every subcommand."""
    fn = click.option("--log-file", type=click.Path(path_type=Path), default=None)(fn)
    fn = click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")(fn)
    fn = click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")(fn)
    fn = click.option(
        "--profile",
        "profile_path",
        type=click.Path(path_type=Path),
        default=None,
        help="YAML profile with perfwatch settings.",
    )(fn)
    fn = click.option(
        "--results-dir",
        type=click.Path(path_type=Path),
        default=None,
        help="Results directory (default: ./performance-results).",
    )(fn)
    return fn


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """perfwatch — time operations, keep a baseline, catch performance regressions."""


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


@main.command("compare")
@click.argument("reports", nargs=-1, type=click.Path(path_type=Path))
@click.option(
    "--threshold",
    type=float,
    default=None,
    help="Fractional mean change that counts as a regression (default: 0.10).",
)
@_common_options
def compare(
    reports: tuple[Path, ...],
    threshold: float | None,
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Compare performance reports and flag regressions.

    With no arguments, compares the most recent stored report against
    the baseline.  With two arguments, compares the two report files,
    treating the first as the baseline.

    Exits 0 when nothing regressed and 1 otherwise.

    \b
    Examples:
        perfwatch compare
        perfwatch compare old_report.json new_report.json --threshold 0.15
    """
    from perfwatch.bench.compare import compare_reports, find_unmatched, has_regressions
    from perfwatch.bench.display import format_comparison

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    if len(reports) not in (0, 2):
        click.echo(_USAGE, err=True)
        raise SystemExit(1)

    try:
        config, store = _open_store(results_dir, profile_path, threshold)

        if len(reports) == 2:
            click.echo(f"Comparing: {reports[0]} vs {reports[1]}")
            baseline = _load_explicit(store, reports[0])
            current = _load_explicit(store, reports[1])
            labels = (f"Baseline: {reports[0].name}", f"Current: {reports[1].name}")
        else:
            if not store.has_baseline():
                _fail(
                    "No baseline found!",
                    "Run your benchmarks with SAVE_BASELINE=true to create one.",
                )
            latest = store.latest_report()
            if latest is None:
                _fail(
                    f"No performance results found in {store.results_dir}!",
                    "Run your benchmarks to generate results.",
                )
            click.echo("Comparing latest run against baseline...")
            loaded = store.load_baseline()
            if loaded is None:
                _fail(
                    f"Baseline {store.baseline_path} is not a valid report.",
                    "Re-run your benchmarks with SAVE_BASELINE=true to replace it.",
                )
            baseline = loaded
            current = _load_explicit(store, latest)
            labels = (f"Baseline: {store.baseline_path.name}", f"Current: {latest.name}")

        comparisons = compare_reports(
            baseline, current, config.regression_threshold, require_match=True
        )
    except NoMatchError as exc:
        _fail(
            f"No matching tests found between the two reports ({exc})",
            exc.hint,
        )
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)

    click.echo(
        format_comparison(
            baseline,
            current,
            comparisons,
            threshold=config.regression_threshold,
            unmatched=find_unmatched(baseline, current),
            baseline_label=labels[0],
            current_label=labels[1],
        )
    )
    if has_regressions(comparisons):
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@main.command("list")
@_common_options
def list_cmd(
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """List stored reports, most recent first."""
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    try:
        _, store = _open_store(results_dir, profile_path)
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)

    reports = store.list_reports()
    if store.has_baseline():
        click.echo(f"Baseline: {store.baseline_path}")
    if not reports:
        click.echo(f"No reports in {store.results_dir}")
        return
    for path in reports:
        click.echo(str(path))


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@main.command("show")
@click.argument("report_path", type=click.Path(path_type=Path))
@_common_options
def show(
    report_path: Path,
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Display the results in REPORT_PATH."""
    from perfwatch.bench.display import format_report

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    try:
        _, store = _open_store(results_dir, profile_path)
        report = _load_explicit(store, report_path)
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)
    click.echo(format_report(report))


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@main.command("export")
@click.argument("report_path", type=click.Path(path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (default: stdout).",
)
@_common_options
def export(
    report_path: Path,
    output: Path | None,
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Export the report in REPORT_PATH as CSV.

    \b
    Examples:
        perfwatch export performance-results/baseline.json > baseline.csv
        perfwatch export report.json -o report.csv
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    try:
        _, store = _open_store(results_dir, profile_path)
        report = _load_explicit(store, report_path)
        text = store.export_csv(report)
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)

    if output:
        output.write_text(text)
        click.echo(f"Exported to {output}")
    else:
        click.echo(text, nl=False)


# ---------------------------------------------------------------------------
# baseline
# ---------------------------------------------------------------------------


@main.command("baseline")
@click.argument("report_path", type=click.Path(path_type=Path))
@_common_options
def baseline_cmd(
    report_path: Path,
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Make the report in REPORT_PATH the new baseline.

    Replaces any existing baseline.
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    try:
        _, store = _open_store(results_dir, profile_path)
        report = _load_explicit(store, report_path)
        path = store.save_as_baseline(report)
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)
    click.echo(f"Baseline saved: {path}")


# ---------------------------------------------------------------------------
# prune
# ---------------------------------------------------------------------------


@main.command("prune")
@click.option(
    "--keep-last",
    type=int,
    default=None,
    help="Number of most recent results to keep (default: 10).",
)
@_common_options
def prune(
    keep_last: int | None,
    results_dir: Path | None,
    profile_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Delete old results, keeping the newest ones and the baseline."""
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    try:
        config, store = _open_store(results_dir, profile_path)
        if keep_last is not None:
            config.keep_last = keep_last
        for err in validate_config(config):
            if err.field == "keep_last":
                raise ConfigurationError(err.message, hint="Pass --keep-last 0 or more.")
        deleted = store.prune_reports(config.keep_last)
    except PerfwatchError as exc:
        _fail(str(exc), exc.hint)
    click.echo(f"Deleted {len(deleted)} old result file(s).")


if __name__ == "__main__":
    main()
