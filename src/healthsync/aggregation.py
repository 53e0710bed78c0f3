"""Daily aggregation engine.

Turns the fetched raw points (metric kind -> DataPoints) into one
DailySummary per local calendar day.  Pure: no I/O, no shared state.

Non-sleep metrics are grouped by the day each sample *started*; sleep is
grouped by the day each sample *ended*, so a night that starts at 23:30 is
attributed to the morning it ends.  Workouts stay as individual points and
are not summarized.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import tzinfo
from typing import Callable, Iterable, Mapping

from src.healthsync.base import DailySummary, DataPoint, MetricSummary, SleepSummary, date_key
from src.healthsync.metrics import AggregationCategory, lookup, normalize_metric_key

logger = logging.getLogger("amach.healthsync.aggregation")


# ---------------------------------------------------------------------------
# Per-category policies
# ---------------------------------------------------------------------------

#: Category -> function(values) -> MetricSummary.  SLEEP and WORKOUT have no
#: entry: sleep has its own fold below and workouts are never summarized.
AGGREGATION_POLICIES: dict[AggregationCategory, Callable[[list[float]], MetricSummary]] = {
    AggregationCategory.CUMULATIVE: MetricSummary.cumulative,
    AggregationCategory.DISCRETE: MetricSummary.discrete,
    AggregationCategory.AVERAGE: MetricSummary.average,
}


def category_for(metric_kind: str) -> AggregationCategory:
    """Aggregation category of a kind; untracked kinds average."""
    definition = lookup(metric_kind)
    return definition.category if definition else AggregationCategory.AVERAGE


def summarize_values(
    values: list[float], category: AggregationCategory
) -> MetricSummary | None:
    """Apply the category policy to one (day, metric) group of values."""
    if not values:
        return None
    policy = AGGREGATION_POLICIES.get(category, MetricSummary.average)
    return policy(values)


# ---------------------------------------------------------------------------
# Sleep stages
# ---------------------------------------------------------------------------

IN_BED = "inBed"
AWAKE = "awake"
CORE = "core"
DEEP = "deep"
REM = "rem"
ASLEEP = "asleep"

# Checked in order: label substring or the platform's numeric stage code
_STAGE_RULES: tuple[tuple[str, str, str], ...] = (
    ("inbed", "0", IN_BED),
    ("awake", "2", AWAKE),
    ("core", "3", CORE),
    ("deep", "4", DEEP),
    ("rem", "5", REM),
    ("asleep", "1", ASLEEP),
)


def classify_sleep_stage(label: str) -> str | None:
    """Map a sleep sample label to a stage constant, or None if unknown."""
    lowered = label.strip().lower()
    for fragment, code, stage in _STAGE_RULES:
        if fragment in lowered or lowered == code:
            return stage
    return None


def fold_sleep_sample(sleep: SleepSummary, point: DataPoint) -> None:
    """Add one sleep sample's whole minutes to the day's SleepSummary."""
    stage = classify_sleep_stage(point.value)
    if stage is None:
        logger.debug("Ignoring sleep sample with unknown stage %r", point.value)
        return

    minutes = int((point.end_time - point.start_time).total_seconds() // 60)

    if stage == IN_BED:
        sleep.in_bed_minutes += minutes
    elif stage == AWAKE:
        sleep.awake_minutes += minutes
    elif stage in (CORE, ASLEEP):
        # Generic "asleep" is counted as core sleep
        sleep.core_minutes += minutes
        sleep.total_asleep_minutes += minutes
    elif stage == DEEP:
        sleep.deep_minutes += minutes
        sleep.total_asleep_minutes += minutes
    elif stage == REM:
        sleep.rem_minutes += minutes
        sleep.total_asleep_minutes += minutes


def aggregate_sleep(
    points: Iterable[DataPoint],
    summaries: dict[str, DailySummary],
    tz: tzinfo | None = None,
) -> None:
    """Fold sleep samples into ``summaries``, grouped by wake-up day."""
    by_date: dict[str, list[DataPoint]] = defaultdict(list)
    for point in points:
        by_date[date_key(point.end_time, tz)].append(point)

    for day, day_points in by_date.items():
        summary = summaries.setdefault(day, DailySummary())
        sleep = SleepSummary()
        for point in day_points:
            fold_sleep_sample(sleep, point)
        sleep.compute_efficiency()
        summary.sleep = sleep


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_daily_summaries(
    all_points: Mapping[str, list[DataPoint]],
    tz: tzinfo | None = None,
) -> dict[str, DailySummary]:
    """Aggregate raw points into per-day summaries.

    Args:
        all_points: Metric kind identifier -> its DataPoints.
        tz:         Zone used to pick the calendar day of aware timestamps.
                    Defaults to the system zone.

    Returns:
        ``YYYY-MM-DD`` -> DailySummary.  A day exists once any point falls
        on it, even if every value of that day was non-numeric.
    """
    summaries: dict[str, DailySummary] = {}

    for metric_kind, points in all_points.items():
        category = category_for(metric_kind)

        if category is AggregationCategory.SLEEP:
            aggregate_sleep(points, summaries, tz)
            continue

        by_date: dict[str, list[DataPoint]] = defaultdict(list)
        for point in points:
            by_date[date_key(point.start_time, tz)].append(point)

        key = normalize_metric_key(metric_kind)
        for day, day_points in by_date.items():
            summary = summaries.setdefault(day, DailySummary())
            if category is AggregationCategory.WORKOUT:
                continue

            values = [v for v in (p.numeric_value for p in day_points) if v is not None]
            metric_summary = summarize_values(values, category)
            if metric_summary is not None:
                summary.metrics[key] = metric_summary

    logger.debug(
        "Aggregated %d metric kinds into %d daily summaries",
        len(all_points), len(summaries),
    )
    return summaries
