"""Base classes and canonical data models for the health-data sync pipeline.

Every sample source must subclass SampleSource and return DataPoint lists.
DataPoint / MetricSummary / SleepSummary / DailySummary are the single
source of truth consumed by the aggregation engine, manifest builder, sync
orchestrator and API layer.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum

from src.healthsync.metrics import FetchShape, MetricKind, lookup

logger = logging.getLogger("amach.healthsync")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class HealthSyncError(Exception):
    """Base class for all pipeline errors.  ``str(exc)`` is user-facing."""


class SampleSourceError(HealthSyncError):
    """A single metric could not be read (permission, capability, I/O)."""


class SourceUnavailableError(HealthSyncError):
    """The sample source cannot serve anything at all."""

    def __init__(self, message: str = "Health data source is not available") -> None:
        super().__init__(message)


class RemoteStoreError(HealthSyncError):
    """The remote store rejected a request or could not be reached."""


# ---------------------------------------------------------------------------
# Raw samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataPoint:
    """One timestamped sample as produced by a sample source.

    Attributes:
        metric_kind: Platform type identifier (see ``MetricKind``).
        value:       Numeric value as text, or a categorical label
                     (sleep stage name, workout activity name).
        start_time:  Sample start.
        end_time:    Sample end.
        source:      Name of the app/device that recorded the sample.
        device:      Hardware name, when the source reports one.
    """

    metric_kind: str
    value: str
    start_time: datetime
    end_time: datetime
    source: str | None = None
    device: str | None = None

    @property
    def numeric_value(self) -> float | None:
        return _safe_float(self.value)

    def to_json(self) -> dict:
        return {
            "type": self.metric_kind,
            "value": self.value,
            "startDate": self.start_time.isoformat(),
            "endDate": self.end_time.isoformat(),
            "source": self.source,
            "device": self.device,
        }


# ---------------------------------------------------------------------------
# Daily summaries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricSummary:
    """Per-day summary of one metric.

    Exactly one shape is populated: ``total`` for cumulative metrics, or
    ``avg`` (with ``min``/``max`` for discrete metrics) for everything else.
    Use the ``cumulative()`` / ``discrete()`` / ``average()`` constructors.
    """

    count: int
    total: float | None = None
    avg: float | None = None
    min: float | None = None
    max: float | None = None

    def __post_init__(self) -> None:
        if (self.total is None) == (self.avg is None):
            raise ValueError("MetricSummary needs exactly one of total or avg")

    @classmethod
    def cumulative(cls, values: list[float]) -> "MetricSummary":
        return cls(count=len(values), total=sum(values))

    @classmethod
    def discrete(cls, values: list[float]) -> "MetricSummary":
        return cls(
            count=len(values),
            avg=sum(values) / len(values),
            min=min(values),
            max=max(values),
        )

    @classmethod
    def average(cls, values: list[float]) -> "MetricSummary":
        return cls(count=len(values), avg=sum(values) / len(values))

    def to_json(self) -> dict:
        data: dict = {"count": self.count}
        for name in ("total", "avg", "min", "max"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_json(cls, data: dict) -> "MetricSummary":
        return cls(
            count=int(data.get("count", 0)),
            total=data.get("total"),
            avg=data.get("avg"),
            min=data.get("min"),
            max=data.get("max"),
        )


@dataclass
class SleepSummary:
    """Sleep stage minutes attributed to one wake-up day.

    ``efficiency`` is ``total_asleep_minutes / in_bed_minutes`` and stays
    None when nothing was recorded in bed: absent means unmeasurable, while
    0.0 would mean measured and bad.
    """

    total_asleep_minutes: int = 0
    in_bed_minutes: int = 0
    awake_minutes: int = 0
    core_minutes: int = 0
    deep_minutes: int = 0
    rem_minutes: int = 0
    efficiency: float | None = None

    def compute_efficiency(self) -> None:
        if self.in_bed_minutes > 0:
            self.efficiency = self.total_asleep_minutes / self.in_bed_minutes
        else:
            self.efficiency = None

    def to_json(self) -> dict:
        data: dict = {
            "total": self.total_asleep_minutes,
            "inBed": self.in_bed_minutes,
            "awake": self.awake_minutes,
            "core": self.core_minutes,
            "deep": self.deep_minutes,
            "rem": self.rem_minutes,
        }
        if self.efficiency is not None:
            data["efficiency"] = self.efficiency
        return data

    @classmethod
    def from_json(cls, data: dict) -> "SleepSummary":
        return cls(
            total_asleep_minutes=int(data.get("total", 0)),
            in_bed_minutes=int(data.get("inBed", 0)),
            awake_minutes=int(data.get("awake", 0)),
            core_minutes=int(data.get("core", 0)),
            deep_minutes=int(data.get("deep", 0)),
            rem_minutes=int(data.get("rem", 0)),
            efficiency=data.get("efficiency"),
        )


@dataclass
class DailySummary:
    """All metric summaries for one local calendar day.

    Attributes:
        metrics: Normalized metric key -> MetricSummary.
        sleep:   Sleep attributed to this day (the day it ended), if any.
    """

    metrics: dict[str, MetricSummary] = field(default_factory=dict)
    sleep: SleepSummary | None = None

    def to_json(self) -> dict:
        data: dict = {"metrics": {k: v.to_json() for k, v in self.metrics.items()}}
        if self.sleep is not None:
            data["sleep"] = self.sleep.to_json()
        return data

    @classmethod
    def from_json(cls, data: dict) -> "DailySummary":
        sleep_raw = data.get("sleep")
        return cls(
            metrics={
                key: MetricSummary.from_json(value)
                for key, value in (data.get("metrics") or {}).items()
            },
            sleep=SleepSummary.from_json(sleep_raw) if sleep_raw else None,
        )


# ---------------------------------------------------------------------------
# Abstract sample source
# ---------------------------------------------------------------------------


class Statistic(str, Enum):
    """Single-value statistics a source can compute over a time window."""

    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    MOST_RECENT = "most_recent"


class SampleSource(ABC):
    """Abstract base class for health sample sources.

    A source wraps the platform health store.  It is stateless from the
    pipeline's point of view and is called once per tracked metric per sync.

    Subclasses must implement:
        - fetch_quantity_samples()
        - fetch_category_samples()
        - fetch_workouts()

    Optional overrides:
        - is_available()  (default True)
        - statistic()     (default computes from fetch_quantity_samples)
    """

    #: Slug used by the adapter registry.
    SOURCE_ID: str = "unknown"

    #: Human-readable name for logging and UI.
    DISPLAY_NAME: str = "Unknown Source"

    def is_available(self) -> bool:
        """Return False when the source cannot serve any data at all."""
        return True

    async def fetch(
        self, metric_kind: str, start: datetime, end: datetime
    ) -> list[DataPoint]:
        """Fetch all samples of one metric kind in ``[start, end]``.

        Dispatches to the retrieval shape registered for the kind.  Untracked
        kinds return an empty list.

        Raises:
            SampleSourceError: If this one metric cannot be read.
        """
        definition = lookup(metric_kind)
        if definition is None:
            logger.debug("Untracked metric kind %r, nothing to fetch", metric_kind)
            return []

        if definition.shape is FetchShape.CATEGORY:
            return await self.fetch_category_samples(definition.kind, start, end)
        if definition.shape is FetchShape.WORKOUT:
            return await self.fetch_workouts(start, end)
        return await self.fetch_quantity_samples(definition.kind, definition.unit, start, end)

    @abstractmethod
    async def fetch_quantity_samples(
        self,
        metric_kind: MetricKind,
        unit: str | None,
        start: datetime,
        end: datetime,
    ) -> list[DataPoint]:
        """Fetch numeric samples for a quantity metric.

        Args:
            metric_kind: The quantity kind.
            unit:        Unit the values should be expressed in.
            start:       Window start (inclusive).
            end:         Window end (inclusive).

        Returns:
            DataPoints sorted by start time, ``value`` holding the number.
        """

    @abstractmethod
    async def fetch_category_samples(
        self, metric_kind: MetricKind, start: datetime, end: datetime
    ) -> list[DataPoint]:
        """Fetch label samples for a category metric.

        Sleep samples carry the stage name as ``value`` (``inBed``,
        ``asleep``, ``awake``, ``core``, ``deep``, ``rem``).
        """

    @abstractmethod
    async def fetch_workouts(self, start: datetime, end: datetime) -> list[DataPoint]:
        """Fetch workouts as ``HKWorkoutTypeIdentifier`` points.

        ``value`` is the workout's activity name (e.g. ``Running``).
        """

    async def statistic(
        self,
        metric_kind: MetricKind,
        start: datetime,
        end: datetime,
        statistic: Statistic,
    ) -> float | None:
        """Compute one statistic of a quantity metric over a window.

        Returns None when the window has no numeric samples.
        """
        definition = lookup(metric_kind)
        unit = definition.unit if definition else None
        points = await self.fetch_quantity_samples(metric_kind, unit, start, end)
        numeric = [(p, p.numeric_value) for p in points]
        numeric = [(p, v) for p, v in numeric if v is not None]
        if not numeric:
            return None

        values = [v for _, v in numeric]
        if statistic is Statistic.SUM:
            return sum(values)
        if statistic is Statistic.AVERAGE:
            return sum(values) / len(values)
        if statistic is Statistic.MIN:
            return min(values)
        if statistic is Statistic.MAX:
            return max(values)
        return max(numeric, key=lambda pv: pv[0].end_time)[1]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _safe_float(value: object) -> float | None:
    """Safely coerce a value to a finite float, returning None on failure."""
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def local_date(moment: datetime, tz: tzinfo | None = None) -> date:
    """Return the local calendar day of a timestamp.

    Aware datetimes are converted to ``tz`` (the system zone when None);
    naive datetimes are taken to be local already.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def date_key(moment: datetime, tz: tzinfo | None = None) -> str:
    """``YYYY-MM-DD`` key of a timestamp's local calendar day."""
    return local_date(moment, tz).isoformat()


def as_aware(moment: datetime) -> datetime:
    """Return ``moment`` with a timezone; naive values are taken as local time."""
    return moment if moment.tzinfo is not None else moment.astimezone()
