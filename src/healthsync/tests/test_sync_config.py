"""Tests for sync_config.yaml loading and validation."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from src.healthsync.config_loader import (
    ConfigValidationError,
    ProgressWindowConfig,
    SyncConfig,
    _validate_and_build,
    get_sync_config,
    load_sync_config,
    reload_sync_config,
)


class TestConfigLoading:
    """Tests for loading the bundled sync_config.yaml."""

    def test_load_default_config(self) -> None:
        config = load_sync_config()
        assert config.version == "1.0"
        assert config.sync.default_range_days == 365
        assert config.sync.background_window_days == 7
        assert config.sync.background_throttle_hours == 24
        assert config.sync.completion_dwell_seconds == 1.5
        assert config.sync.max_concurrent_fetches == 4

    def test_progress_window(self) -> None:
        config = load_sync_config()
        assert config.progress.fetch_start == pytest.approx(0.10)
        assert config.progress.fetch_end == pytest.approx(0.40)

    def test_rubric_weights_sum_to_one_hundred(self) -> None:
        rubric = load_sync_config().completeness
        assert rubric.core_weight + rubric.other_cap + rubric.days_weight == 100
        assert (rubric.gold_threshold, rubric.silver_threshold, rubric.bronze_threshold) == (80, 60, 40)
        assert rubric.core_complete_threshold == 7
        assert rubric.core_metric_count == 9

    def test_get_sync_config_is_cached(self) -> None:
        assert get_sync_config() is get_sync_config()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_sync_config(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("sync: [unclosed\n")
        with pytest.raises(ConfigValidationError):
            load_sync_config(path)


class TestValidation:
    def test_empty_config_uses_defaults(self) -> None:
        config = _validate_and_build({})
        assert isinstance(config, SyncConfig)
        assert config.sync.default_range_days == 365
        assert config.completeness.full_credit_days == 90

    def test_errors_are_accumulated(self) -> None:
        raw = {
            "sync": {"default_range_days": "a year", "max_concurrent_fetches": 0},
            "completeness": {"tiers": {"gold": 50, "silver": 60, "bronze": 40}},
        }
        with pytest.raises(ConfigValidationError) as exc_info:
            _validate_and_build(raw)
        message = str(exc_info.value)
        assert "3 validation error(s)" in message
        assert "sync.default_range_days" in message
        assert "sync.max_concurrent_fetches" in message
        assert "gold >= silver >= bronze" in message

    def test_inverted_progress_window(self) -> None:
        with pytest.raises(ConfigValidationError, match="progress window"):
            _validate_and_build({"progress": {"fetch_start": 0.5, "fetch_end": 0.2}})

    def test_core_threshold_cannot_exceed_core_count(self) -> None:
        with pytest.raises(ConfigValidationError, match="core_complete_threshold"):
            _validate_and_build({"completeness": {"core_complete_threshold": 10}})

    def test_reload_replaces_cache(self, tmp_path: Path) -> None:
        path = tmp_path / "sync_config.yaml"
        path.write_text(textwrap.dedent("""\
            version: "2.0"
            sync:
              background_throttle_hours: 12
        """))
        try:
            config = reload_sync_config(path)
            assert config.version == "2.0"
            assert get_sync_config().sync.background_throttle_hours == 12
        finally:
            reload_sync_config()
        assert get_sync_config().version == "1.0"


class TestProgressWindow:
    @pytest.mark.parametrize(
        "fraction, expected",
        [(0.0, 0.10), (0.5, 0.25), (1.0, 0.40), (2.0, 0.40), (-1.0, 0.10)],
    )
    def test_rescale(self, fraction: float, expected: float) -> None:
        assert ProgressWindowConfig().rescale(fraction) == pytest.approx(expected)
