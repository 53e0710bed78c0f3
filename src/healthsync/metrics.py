"""Registry of tracked health metrics.

Every metric kind the pipeline reads is listed once in ``METRIC_REGISTRY``
together with how it is fetched (quantity, category or workout samples), how
it is aggregated per day, and whether it belongs to the core set that anchors
the completeness rubric.

Kind identifiers are the platform type identifiers exactly as the source
reports them.  ``normalize_metric_key()`` is the only place those identifiers
are turned into the short keys that appear in daily summaries, manifests and
API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

_QUANTITY_PREFIX = "HKQuantityTypeIdentifier"
_CATEGORY_PREFIX = "HKCategoryTypeIdentifier"
_WORKOUT_PREFIX = "HKWorkoutTypeIdentifier"


class MetricKind(str, Enum):
    """Tracked metric kinds, valued by their platform type identifier."""

    # Core metrics (completeness anchor)
    STEP_COUNT = "HKQuantityTypeIdentifierStepCount"
    HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
    HEART_RATE_VARIABILITY = "HKQuantityTypeIdentifierHeartRateVariabilitySDNN"
    RESTING_HEART_RATE = "HKQuantityTypeIdentifierRestingHeartRate"
    SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"
    ACTIVE_ENERGY = "HKQuantityTypeIdentifierActiveEnergyBurned"
    EXERCISE_TIME = "HKQuantityTypeIdentifierAppleExerciseTime"
    VO2_MAX = "HKQuantityTypeIdentifierVO2Max"
    RESPIRATORY_RATE = "HKQuantityTypeIdentifierRespiratoryRate"

    # Body measurements
    BODY_MASS = "HKQuantityTypeIdentifierBodyMass"
    BODY_FAT_PERCENTAGE = "HKQuantityTypeIdentifierBodyFatPercentage"
    LEAN_BODY_MASS = "HKQuantityTypeIdentifierLeanBodyMass"
    HEIGHT = "HKQuantityTypeIdentifierHeight"
    BODY_MASS_INDEX = "HKQuantityTypeIdentifierBodyMassIndex"
    WAIST_CIRCUMFERENCE = "HKQuantityTypeIdentifierWaistCircumference"

    # Activity
    DISTANCE_WALKING_RUNNING = "HKQuantityTypeIdentifierDistanceWalkingRunning"
    DISTANCE_CYCLING = "HKQuantityTypeIdentifierDistanceCycling"
    DISTANCE_SWIMMING = "HKQuantityTypeIdentifierDistanceSwimming"
    FLIGHTS_CLIMBED = "HKQuantityTypeIdentifierFlightsClimbed"
    STAND_TIME = "HKQuantityTypeIdentifierAppleStandTime"
    MOVE_TIME = "HKQuantityTypeIdentifierAppleMoveTime"

    # Vitals
    BLOOD_PRESSURE_SYSTOLIC = "HKQuantityTypeIdentifierBloodPressureSystolic"
    BLOOD_PRESSURE_DIASTOLIC = "HKQuantityTypeIdentifierBloodPressureDiastolic"
    BLOOD_OXYGEN = "HKQuantityTypeIdentifierOxygenSaturation"
    BODY_TEMPERATURE = "HKQuantityTypeIdentifierBodyTemperature"

    # Nutrition
    DIETARY_ENERGY = "HKQuantityTypeIdentifierDietaryEnergyConsumed"
    DIETARY_PROTEIN = "HKQuantityTypeIdentifierDietaryProtein"
    DIETARY_CARBS = "HKQuantityTypeIdentifierDietaryCarbohydrates"
    DIETARY_FAT = "HKQuantityTypeIdentifierDietaryFatTotal"
    DIETARY_FIBER = "HKQuantityTypeIdentifierDietaryFiber"
    DIETARY_SUGAR = "HKQuantityTypeIdentifierDietarySugar"
    DIETARY_WATER = "HKQuantityTypeIdentifierDietaryWater"
    DIETARY_CAFFEINE = "HKQuantityTypeIdentifierDietaryCaffeine"

    # Mindfulness
    MINDFUL_MINUTES = "HKCategoryTypeIdentifierMindfulSession"

    # Workouts (synthetic kind, one point per workout)
    WORKOUTS = "HKWorkoutTypeIdentifier"


class AggregationCategory(str, Enum):
    """How a metric's samples are folded into one per-day summary."""

    CUMULATIVE = "cumulative"  # total = sum
    DISCRETE = "discrete"      # avg + min + max
    AVERAGE = "average"        # avg only
    SLEEP = "sleep"            # stage minutes, grouped by end date
    WORKOUT = "workout"        # recorded as individual points, not aggregated


class FetchShape(str, Enum):
    """Which retrieval shape the sample source uses for a metric."""

    QUANTITY = "quantity"
    CATEGORY = "category"
    WORKOUT = "workout"


@dataclass(frozen=True)
class MetricDefinition:
    """One row of the metric registry.

    Attributes:
        kind:     The metric kind.
        category: Daily aggregation policy.
        shape:    Retrieval shape used by the sample source.
        is_core:  True for the 9 metrics that gate GOLD/SILVER tiers.
        unit:     Unit label for quantity samples (None for category/workout).
    """

    kind: MetricKind
    category: AggregationCategory
    shape: FetchShape = FetchShape.QUANTITY
    is_core: bool = False
    unit: str | None = None

    @property
    def key(self) -> str:
        return normalize_metric_key(self.kind)


def _quantity(
    kind: MetricKind,
    category: AggregationCategory,
    unit: str,
    is_core: bool = False,
) -> MetricDefinition:
    return MetricDefinition(kind=kind, category=category, unit=unit, is_core=is_core)


_C = AggregationCategory.CUMULATIVE
_D = AggregationCategory.DISCRETE
_A = AggregationCategory.AVERAGE

METRIC_REGISTRY: dict[MetricKind, MetricDefinition] = {
    definition.kind: definition
    for definition in (
        # Core
        _quantity(MetricKind.STEP_COUNT, _C, "count", is_core=True),
        _quantity(MetricKind.HEART_RATE, _D, "count/min", is_core=True),
        _quantity(MetricKind.HEART_RATE_VARIABILITY, _D, "ms", is_core=True),
        _quantity(MetricKind.RESTING_HEART_RATE, _D, "count/min", is_core=True),
        MetricDefinition(
            kind=MetricKind.SLEEP_ANALYSIS,
            category=AggregationCategory.SLEEP,
            shape=FetchShape.CATEGORY,
            is_core=True,
        ),
        _quantity(MetricKind.ACTIVE_ENERGY, _C, "kcal", is_core=True),
        _quantity(MetricKind.EXERCISE_TIME, _C, "min", is_core=True),
        _quantity(MetricKind.VO2_MAX, _A, "ml/(kg*min)", is_core=True),
        _quantity(MetricKind.RESPIRATORY_RATE, _D, "count/min", is_core=True),
        # Body
        _quantity(MetricKind.BODY_MASS, _A, "kg"),
        _quantity(MetricKind.BODY_FAT_PERCENTAGE, _A, "%"),
        _quantity(MetricKind.LEAN_BODY_MASS, _A, "kg"),
        _quantity(MetricKind.HEIGHT, _A, "m"),
        _quantity(MetricKind.BODY_MASS_INDEX, _A, "count"),
        _quantity(MetricKind.WAIST_CIRCUMFERENCE, _A, "m"),
        # Activity
        _quantity(MetricKind.DISTANCE_WALKING_RUNNING, _C, "m"),
        _quantity(MetricKind.DISTANCE_CYCLING, _C, "m"),
        _quantity(MetricKind.DISTANCE_SWIMMING, _C, "m"),
        _quantity(MetricKind.FLIGHTS_CLIMBED, _C, "count"),
        _quantity(MetricKind.STAND_TIME, _A, "min"),
        _quantity(MetricKind.MOVE_TIME, _A, "min"),
        # Vitals
        _quantity(MetricKind.BLOOD_PRESSURE_SYSTOLIC, _A, "mmHg"),
        _quantity(MetricKind.BLOOD_PRESSURE_DIASTOLIC, _A, "mmHg"),
        _quantity(MetricKind.BLOOD_OXYGEN, _D, "%"),
        _quantity(MetricKind.BODY_TEMPERATURE, _D, "degC"),
        # Nutrition
        _quantity(MetricKind.DIETARY_ENERGY, _A, "kcal"),
        _quantity(MetricKind.DIETARY_PROTEIN, _A, "g"),
        _quantity(MetricKind.DIETARY_CARBS, _A, "g"),
        _quantity(MetricKind.DIETARY_FAT, _A, "g"),
        _quantity(MetricKind.DIETARY_FIBER, _A, "g"),
        _quantity(MetricKind.DIETARY_SUGAR, _A, "g"),
        _quantity(MetricKind.DIETARY_WATER, _A, "L"),
        _quantity(MetricKind.DIETARY_CAFFEINE, _A, "mg"),
        # Mindfulness
        MetricDefinition(
            kind=MetricKind.MINDFUL_MINUTES,
            category=_A,
            shape=FetchShape.CATEGORY,
        ),
        # Workouts
        MetricDefinition(
            kind=MetricKind.WORKOUTS,
            category=AggregationCategory.WORKOUT,
            shape=FetchShape.WORKOUT,
        ),
    )
}

CORE_METRICS: frozenset[str] = frozenset(
    definition.kind.value for definition in METRIC_REGISTRY.values() if definition.is_core
)


def normalize_metric_key(metric_kind: str) -> str:
    """Strip platform type-name prefixes from a metric identifier.

    >>> normalize_metric_key("HKQuantityTypeIdentifierStepCount")
    'StepCount'
    >>> normalize_metric_key("HKWorkoutTypeIdentifier")
    'workout'

    Already-normalized keys pass through unchanged.
    """
    value = metric_kind.value if isinstance(metric_kind, MetricKind) else metric_kind
    return (
        value.replace(_QUANTITY_PREFIX, "")
        .replace(_CATEGORY_PREFIX, "")
        .replace(_WORKOUT_PREFIX, "workout")
    )


def display_name(metric_kind: str) -> str:
    """Short human-readable label used in progress messages."""
    value = metric_kind.value if isinstance(metric_kind, MetricKind) else metric_kind
    return value.split("Identifier")[-1] or value


def lookup(metric_kind: str) -> MetricDefinition | None:
    """Return the registry row for a kind identifier, or None if untracked."""
    try:
        return METRIC_REGISTRY[MetricKind(metric_kind)]
    except ValueError:
        return None
