"""Load, validate, and hot-reload the health data sync configuration.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk after an update, no restart required.

Usage::

    from src.healthsync.config_loader import get_sync_config

    config = get_sync_config()
    config.sync.background_throttle_hours     # 24
    config.completeness.gold_threshold        # 80
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger("amach.healthsync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncPolicyConfig:
    """Date windows, throttling and pacing of sync runs."""

    default_range_days: int = 365
    background_window_days: int = 7
    background_throttle_hours: int = 24
    completion_dwell_seconds: float = 1.5
    max_concurrent_fetches: int = 4


@dataclass(frozen=True)
class ProgressWindowConfig:
    """Slice of the overall progress bar owned by the fetch stage."""

    fetch_start: float = 0.10
    fetch_end: float = 0.40

    def rescale(self, fraction: float) -> float:
        """Map a 0..1 fetch fraction into ``[fetch_start, fetch_end]``."""
        fraction = min(max(fraction, 0.0), 1.0)
        return self.fetch_start + fraction * (self.fetch_end - self.fetch_start)


@dataclass(frozen=True)
class CompletenessRubric:
    """Weights and thresholds of the completeness score."""

    core_metric_count: int = 9
    core_complete_threshold: int = 7
    core_weight: float = 50.0
    other_points_per_metric: float = 2.0
    other_cap: float = 30.0
    days_weight: float = 20.0
    full_credit_days: int = 90
    gold_threshold: int = 80
    silver_threshold: int = 60
    bronze_threshold: int = 40


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    This is the single in-memory representation of sync_config.yaml.

    Attributes:
        version:      Config schema version string.
        sync:         Date windows, throttling, pacing.
        progress:     Fetch-stage progress window.
        completeness: Completeness rubric.
    """

    version: str = "1.0"
    sync: SyncPolicyConfig = field(default_factory=SyncPolicyConfig)
    progress: ProgressWindowConfig = field(default_factory=ProgressWindowConfig)
    completeness: CompletenessRubric = field(default_factory=CompletenessRubric)
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    import yaml  # pyyaml

    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Missing keys fall back to the dataclass defaults; present keys must
    have the right type and range.

    Raises:
        ConfigValidationError: Listing every invalid field found.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, name: str, default, cast=float, minimum=None):
        value = section.get(key, default)
        try:
            value = cast(value)
        except (TypeError, ValueError):
            errors.append(f"{name}.{key} must be a number, got {value!r}")
            return default
        if minimum is not None and value < minimum:
            errors.append(f"{name}.{key} = {value} must be >= {minimum}")
        return value

    version = str(raw.get("version", "1.0"))

    # ── Sync policy ──
    sp_raw = raw.get("sync") or {}
    sp_default = SyncPolicyConfig()
    sync = SyncPolicyConfig(
        default_range_days=_number(
            sp_raw, "default_range_days", "sync", sp_default.default_range_days, int, 1
        ),
        background_window_days=_number(
            sp_raw, "background_window_days", "sync",
            sp_default.background_window_days, int, 1,
        ),
        background_throttle_hours=_number(
            sp_raw, "background_throttle_hours", "sync",
            sp_default.background_throttle_hours, int, 0,
        ),
        completion_dwell_seconds=_number(
            sp_raw, "completion_dwell_seconds", "sync",
            sp_default.completion_dwell_seconds, float, 0,
        ),
        max_concurrent_fetches=_number(
            sp_raw, "max_concurrent_fetches", "sync",
            sp_default.max_concurrent_fetches, int, 1,
        ),
    )

    # ── Progress window ──
    pw_raw = raw.get("progress") or {}
    progress = ProgressWindowConfig(
        fetch_start=_number(pw_raw, "fetch_start", "progress", 0.10, float, 0),
        fetch_end=_number(pw_raw, "fetch_end", "progress", 0.40, float, 0),
    )
    if not (0.0 <= progress.fetch_start <= progress.fetch_end <= 1.0):
        errors.append(
            "progress window must satisfy 0 <= fetch_start <= fetch_end <= 1, got "
            f"[{progress.fetch_start}, {progress.fetch_end}]"
        )

    # ── Completeness rubric ──
    cr_raw = raw.get("completeness") or {}
    tiers_raw = cr_raw.get("tiers") or {}
    cr_default = CompletenessRubric()
    rubric = CompletenessRubric(
        core_metric_count=_number(
            cr_raw, "core_metric_count", "completeness", cr_default.core_metric_count, int, 1
        ),
        core_complete_threshold=_number(
            cr_raw, "core_complete_threshold", "completeness",
            cr_default.core_complete_threshold, int, 0,
        ),
        core_weight=_number(cr_raw, "core_weight", "completeness", cr_default.core_weight),
        other_points_per_metric=_number(
            cr_raw, "other_points_per_metric", "completeness",
            cr_default.other_points_per_metric,
        ),
        other_cap=_number(cr_raw, "other_cap", "completeness", cr_default.other_cap),
        days_weight=_number(cr_raw, "days_weight", "completeness", cr_default.days_weight),
        full_credit_days=_number(
            cr_raw, "full_credit_days", "completeness", cr_default.full_credit_days, int, 1
        ),
        gold_threshold=_number(tiers_raw, "gold", "completeness.tiers", 80, int, 0),
        silver_threshold=_number(tiers_raw, "silver", "completeness.tiers", 60, int, 0),
        bronze_threshold=_number(tiers_raw, "bronze", "completeness.tiers", 40, int, 0),
    )
    if rubric.core_complete_threshold > rubric.core_metric_count:
        errors.append(
            "completeness.core_complete_threshold cannot exceed core_metric_count"
        )
    if not (rubric.gold_threshold >= rubric.silver_threshold >= rubric.bronze_threshold):
        errors.append("completeness.tiers must be ordered gold >= silver >= bronze")

    total_weight = rubric.core_weight + rubric.other_cap + rubric.days_weight
    if total_weight != 100:
        logger.warning(
            "Completeness weights sum to %.1f (expected 100). Scores are still "
            "clamped to 0..100.",
            total_weight,
        )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        sync=sync,
        progress=progress,
        completeness=rubric,
        _raw=raw,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.

    Returns:
        Validated SyncConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global cache with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the cached SyncConfig, loading it on first call.

    Thread-safe.  Use ``reload_sync_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
