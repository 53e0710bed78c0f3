"""Tests for the metric registry and key normalization."""

from __future__ import annotations

import pytest

from src.healthsync.metrics import (
    CORE_METRICS,
    METRIC_REGISTRY,
    AggregationCategory,
    FetchShape,
    MetricKind,
    display_name,
    lookup,
    normalize_metric_key,
)


class TestRegistry:
    def test_every_kind_has_a_row(self) -> None:
        assert set(METRIC_REGISTRY) == set(MetricKind)

    def test_nine_core_metrics(self) -> None:
        assert len(CORE_METRICS) == 9
        assert MetricKind.VO2_MAX.value in CORE_METRICS
        assert MetricKind.SLEEP_ANALYSIS.value in CORE_METRICS
        assert MetricKind.BLOOD_OXYGEN.value not in CORE_METRICS

    @pytest.mark.parametrize(
        "kind",
        [
            MetricKind.STEP_COUNT,
            MetricKind.FLIGHTS_CLIMBED,
            MetricKind.ACTIVE_ENERGY,
            MetricKind.EXERCISE_TIME,
            MetricKind.DISTANCE_WALKING_RUNNING,
            MetricKind.DISTANCE_CYCLING,
            MetricKind.DISTANCE_SWIMMING,
        ],
    )
    def test_cumulative_kinds(self, kind: MetricKind) -> None:
        assert METRIC_REGISTRY[kind].category is AggregationCategory.CUMULATIVE

    @pytest.mark.parametrize(
        "kind",
        [
            MetricKind.HEART_RATE,
            MetricKind.HEART_RATE_VARIABILITY,
            MetricKind.RESTING_HEART_RATE,
            MetricKind.RESPIRATORY_RATE,
            MetricKind.BLOOD_OXYGEN,
            MetricKind.BODY_TEMPERATURE,
        ],
    )
    def test_discrete_kinds(self, kind: MetricKind) -> None:
        assert METRIC_REGISTRY[kind].category is AggregationCategory.DISCRETE

    def test_body_mass_averages(self) -> None:
        assert METRIC_REGISTRY[MetricKind.BODY_MASS].category is AggregationCategory.AVERAGE

    def test_sleep_and_mindful_are_category_shaped(self) -> None:
        assert METRIC_REGISTRY[MetricKind.SLEEP_ANALYSIS].shape is FetchShape.CATEGORY
        assert METRIC_REGISTRY[MetricKind.MINDFUL_MINUTES].shape is FetchShape.CATEGORY
        assert METRIC_REGISTRY[MetricKind.MINDFUL_MINUTES].category is AggregationCategory.AVERAGE

    def test_workouts_are_workout_shaped(self) -> None:
        definition = METRIC_REGISTRY[MetricKind.WORKOUTS]
        assert definition.shape is FetchShape.WORKOUT
        assert definition.category is AggregationCategory.WORKOUT

    def test_lookup_untracked_returns_none(self) -> None:
        assert lookup("HKQuantityTypeIdentifierNotARealMetric") is None

    def test_lookup_accepts_raw_identifier(self) -> None:
        definition = lookup("HKQuantityTypeIdentifierStepCount")
        assert definition is not None
        assert definition.kind is MetricKind.STEP_COUNT


class TestNormalization:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("HKQuantityTypeIdentifierStepCount", "StepCount"),
            ("HKCategoryTypeIdentifierSleepAnalysis", "SleepAnalysis"),
            ("HKWorkoutTypeIdentifier", "workout"),
            ("StepCount", "StepCount"),
        ],
    )
    def test_normalize_metric_key(self, raw: str, expected: str) -> None:
        assert normalize_metric_key(raw) == expected

    def test_normalize_accepts_enum(self) -> None:
        assert normalize_metric_key(MetricKind.HEART_RATE) == "HeartRate"

    def test_definition_key_is_normalized(self) -> None:
        assert METRIC_REGISTRY[MetricKind.VO2_MAX].key == "VO2Max"

    def test_display_name(self) -> None:
        assert display_name("HKQuantityTypeIdentifierRestingHeartRate") == "RestingHeartRate"
        assert display_name("HKWorkoutTypeIdentifier") == "HKWorkoutTypeIdentifier"
