"""Today snapshot and per-day trends read straight from a sample source.

These are the read-only views shown next to the sync controls.  They reuse
the aggregation policies so a trend point for a day always matches that
day's entry in an uploaded payload.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from src.healthsync.aggregation import build_daily_summaries
from src.healthsync.base import MetricSummary, SampleSource, Statistic
from src.healthsync.metrics import AggregationCategory, MetricKind, lookup, normalize_metric_key

logger = logging.getLogger("amach.healthsync.dashboard")


class TrendPeriod(str, Enum):
    WEEK = "7D"
    MONTH = "30D"
    QUARTER = "3M"

    @property
    def days(self) -> int:
        return {"7D": 7, "30D": 30, "3M": 90}[self.value]


@dataclass(frozen=True)
class TodaySnapshot:
    """Current-day statistics since local midnight.

    Missing statistics read as 0.0.  ``sleep_efficiency`` is None when last
    night has no in-bed time.
    """

    steps: float = 0.0
    active_energy: float = 0.0
    exercise_minutes: float = 0.0
    heart_rate_avg: float = 0.0
    heart_rate_min: float = 0.0
    heart_rate_max: float = 0.0
    hrv: float = 0.0
    resting_heart_rate: float = 0.0
    vo2_max: float = 0.0
    respiratory_rate: float = 0.0
    sleep_hours: float = 0.0
    sleep_efficiency: float | None = None

    def to_json(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TrendPoint:
    day: date
    value: float

    def to_json(self) -> dict:
        return {"date": self.day.isoformat(), "value": self.value}


# (snapshot field, metric kind, statistic)
_TODAY_STATISTICS: tuple[tuple[str, MetricKind, Statistic], ...] = (
    ("steps", MetricKind.STEP_COUNT, Statistic.SUM),
    ("active_energy", MetricKind.ACTIVE_ENERGY, Statistic.SUM),
    ("exercise_minutes", MetricKind.EXERCISE_TIME, Statistic.SUM),
    ("heart_rate_avg", MetricKind.HEART_RATE, Statistic.AVERAGE),
    ("heart_rate_min", MetricKind.HEART_RATE, Statistic.MIN),
    ("heart_rate_max", MetricKind.HEART_RATE, Statistic.MAX),
    ("hrv", MetricKind.HEART_RATE_VARIABILITY, Statistic.AVERAGE),
    ("resting_heart_rate", MetricKind.RESTING_HEART_RATE, Statistic.MOST_RECENT),
    ("vo2_max", MetricKind.VO2_MAX, Statistic.MOST_RECENT),
    ("respiratory_rate", MetricKind.RESPIRATORY_RATE, Statistic.AVERAGE),
)

# Last night's sleep is looked up from noon of the previous day
_SLEEP_LOOKBACK = timedelta(hours=12)


def _local_now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now().astimezone()


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


async def _last_night_sleep(
    source: SampleSource, midnight: datetime, now: datetime
) -> tuple[float, float | None]:
    points = await source.fetch(
        MetricKind.SLEEP_ANALYSIS.value, midnight - _SLEEP_LOOKBACK, now
    )
    summaries = build_daily_summaries(
        {MetricKind.SLEEP_ANALYSIS.value: points}, tz=now.tzinfo
    )
    today = summaries.get(midnight.date().isoformat())
    if today is None or today.sleep is None:
        return 0.0, None
    return today.sleep.total_asleep_minutes / 60.0, today.sleep.efficiency


async def fetch_today(source: SampleSource, now: datetime | None = None) -> TodaySnapshot:
    """Fetch the current-day statistics concurrently and join them."""
    now = _local_now(now)
    midnight = _start_of_day(now)

    results = await asyncio.gather(
        *(
            source.statistic(kind, midnight, now, statistic)
            for _, kind, statistic in _TODAY_STATISTICS
        ),
        _last_night_sleep(source, midnight, now),
    )

    values = {
        field_name: float(value or 0.0)
        for (field_name, _, _), value in zip(_TODAY_STATISTICS, results[:-1])
    }
    sleep_hours, sleep_efficiency = results[-1]
    return TodaySnapshot(
        **values, sleep_hours=sleep_hours, sleep_efficiency=sleep_efficiency
    )


def _trend_value(summary: MetricSummary) -> float:
    return summary.total if summary.total is not None else summary.avg


async def fetch_daily_trend(
    source: SampleSource,
    kind: MetricKind | str,
    days: int | TrendPeriod,
    now: datetime | None = None,
) -> list[TrendPoint]:
    """One point per day with data over the last ``days`` days, oldest first.

    Cumulative metrics trend their daily total, others their daily average.
    Sleep trends hours asleep.
    """
    if isinstance(days, TrendPeriod):
        days = days.days
    if days < 1:
        raise ValueError("days must be at least 1")

    kind_id = kind.value if isinstance(kind, MetricKind) else kind
    now = _local_now(now)
    start = _start_of_day(now) - timedelta(days=days - 1)
    window_start = start.date()

    points = await source.fetch(kind_id, start, now)
    summaries = build_daily_summaries({kind_id: points}, tz=now.tzinfo)

    definition = lookup(kind_id)
    is_sleep = definition is not None and definition.category is AggregationCategory.SLEEP
    key = normalize_metric_key(kind_id)

    trend: list[TrendPoint] = []
    for day_key in sorted(summaries):
        day = date.fromisoformat(day_key)
        if day < window_start:
            continue
        summary = summaries[day_key]
        if is_sleep:
            if summary.sleep is None:
                continue
            trend.append(TrendPoint(day, summary.sleep.total_asleep_minutes / 60.0))
            continue
        metric = summary.metrics.get(key)
        if metric is not None:
            trend.append(TrendPoint(day, _trend_value(metric)))

    logger.debug("Trend for %s over %d days: %d points", key, days, len(trend))
    return trend
