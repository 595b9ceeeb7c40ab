"""Benchmark configuration and profile loading.

Handles:
- Loading settings from a YAML profile.
- Applying environment toggles (``SAVE_BASELINE``, ``COMPARE_BASELINE``,
  ``PERFWATCH_RESULTS_DIR``, ``PERFWATCH_THRESHOLD``).
- Merging CLI options on top.
- Validating the final configuration.

Precedence, lowest to highest: defaults, profile, environment, CLI.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from perfwatch.errors import ConfigurationError

log = logging.getLogger("perfwatch")

DEFAULT_RESULTS_DIR = "performance-results"

ENV_SAVE_BASELINE = "SAVE_BASELINE"
ENV_COMPARE_BASELINE = "COMPARE_BASELINE"
ENV_RESULTS_DIR = "PERFWATCH_RESULTS_DIR"
ENV_THRESHOLD = "PERFWATCH_THRESHOLD"

_TRUE_VALUES = {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# PerfConfig
# ---------------------------------------------------------------------------


@dataclass
class PerfConfig:
    """Resolved configuration for producing and comparing reports."""

    results_dir: Path = field(default_factory=lambda: Path(DEFAULT_RESULTS_DIR))
    regression_threshold: float = 0.10
    keep_last: int = 10

    # Producing side
    default_iterations: int = 100
    track_memory: bool = False
    export_csv: bool = True
    save_baseline: bool = False
    compare_baseline: bool = False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: PerfConfig) -> list[ValidationError]:
    """Validate a configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.results_dir.exists() and not config.results_dir.is_dir():
        errors.append(
            ValidationError(
                field="results_dir",
                message=f"Results path exists but is not a directory: {config.results_dir}",
            )
        )

    if not math.isfinite(config.regression_threshold):
        errors.append(
            ValidationError(
                field="regression_threshold",
                message=(
                    "Regression threshold must be a finite number "
                    f"(got {config.regression_threshold})."
                ),
            )
        )
    elif config.regression_threshold <= 0:
        errors.append(
            ValidationError(
                field="regression_threshold",
                message=(
                    f"Regression threshold must be positive (got {config.regression_threshold})."
                ),
            )
        )
    elif config.regression_threshold >= 1:
        errors.append(
            ValidationError(
                field="regression_threshold",
                message=(
                    f"Regression threshold is a fraction; {config.regression_threshold} "
                    f"means {config.regression_threshold * 100:.0f}%."
                ),
                severity="warning",
            )
        )

    if config.keep_last < 0:
        errors.append(
            ValidationError(
                field="keep_last",
                message=f"keep_last cannot be negative (got {config.keep_last}).",
            )
        )

    if config.default_iterations < 1:
        errors.append(
            ValidationError(
                field="default_iterations",
                message=f"Need at least 1 iteration (got {config.default_iterations}).",
            )
        )

    return errors


def resolve_results_dir(config: PerfConfig) -> Path:
    """Return the results directory, or raise if it cannot be used.

    Raises:
        ConfigurationError: If any validation error concerns the results
            directory.
    """
    for err in validate_config(config):
        if err.field == "results_dir" and err.severity == "error":
            raise ConfigurationError(err.message)
    return config.results_dir


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a profile from a YAML file.

    Profile format::

        results_dir: performance-results
        regression_threshold: 0.10
        keep_last: 10
        default_iterations: 100
        track_memory: true
        export_csv: true

    Raises:
        ConfigurationError: If the file is missing or not a YAML mapping.
    """
    if not profile_path.exists():
        raise ConfigurationError(f"Profile not found: {profile_path}")

    try:
        data = yaml.safe_load(profile_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {profile_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def config_from_profile(
    profile_data: Mapping[str, Any],
    *,
    cli_overrides: Mapping[str, Any] | None = None,
) -> PerfConfig:
    """Build a PerfConfig from a parsed profile plus CLI overrides.

    CLI values that are None are treated as "not given".
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    merged = {**profile_data, **cli}

    config = PerfConfig()
    known = set(PerfConfig.__dataclass_fields__)
    for key, value in merged.items():
        if key not in known:
            log.warning("Ignoring unknown profile key '%s'", key)
            continue
        setattr(config, key, _coerce(key, value))
    return config


def apply_env(config: PerfConfig, environ: Mapping[str, str] | None = None) -> PerfConfig:
    """Apply environment toggles to *config* in place and return it."""
    env = os.environ if environ is None else environ

    if _is_true(env.get(ENV_SAVE_BASELINE)):
        config.save_baseline = True
    if _is_true(env.get(ENV_COMPARE_BASELINE)):
        config.compare_baseline = True
    if env.get(ENV_RESULTS_DIR):
        config.results_dir = Path(env[ENV_RESULTS_DIR])
    if env.get(ENV_THRESHOLD):
        config.regression_threshold = _coerce("regression_threshold", env[ENV_THRESHOLD])
    return config


def load_config(
    profile_path: Path | None = None,
    *,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> PerfConfig:
    """Build the effective configuration from all sources."""
    profile = load_profile(profile_path) if profile_path else {}
    config = config_from_profile(profile)
    apply_env(config, environ)
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    for key, value in cli.items():
        setattr(config, key, _coerce(key, value))
    return config


def _is_true(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw profile/env value to the type of the PerfConfig field."""
    try:
        if key == "results_dir":
            return Path(value)
        if key == "regression_threshold":
            return float(value)
        if key in ("keep_last", "default_iterations"):
            return int(value)
        if isinstance(value, str):
            return _is_true(value)
        return bool(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for '{key}': {value!r}") from exc
