"""Apple Health export sample source.

Apple does not provide a server-side API: data leaves the phone as the
``export.xml`` file inside Apple Health's "Export All Health Data" archive.
This adapter loads that file and serves it through the SampleSource
interface, so the sync pipeline can run against a real export exactly as it
would against the live health store.

Records are indexed by type on first use.  Sleep category values are mapped
to stage names, and workouts become ``HKWorkoutTypeIdentifier`` points whose
value is the activity name.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from xml.etree import ElementTree as ET

from src.healthsync.base import DataPoint, SampleSource, SampleSourceError, as_aware
from src.healthsync.metrics import MetricKind

logger = logging.getLogger("amach.healthsync.apple_health")

# Sleep analysis category values → stage names consumed by the aggregation engine
_SLEEP_STAGE_MAP: dict[str, str] = {
    "HKCategoryValueSleepAnalysisInBed": "inBed",
    "HKCategoryValueSleepAnalysisAsleep": "asleep",
    "HKCategoryValueSleepAnalysisAsleepUnspecified": "asleep",
    "HKCategoryValueSleepAnalysisAwake": "awake",
    "HKCategoryValueSleepAnalysisAsleepCore": "core",
    "HKCategoryValueSleepAnalysisAsleepDeep": "deep",
    "HKCategoryValueSleepAnalysisAsleepREM": "rem",
}

# Other category values exported as symbolic names
_CATEGORY_VALUE_MAP: dict[str, str] = {
    "HKCategoryValueNotApplicable": "0",
}

# HKWorkoutActivityType → display name
_WORKOUT_NAME_MAP: dict[str, str] = {
    "HKWorkoutActivityTypeRunning": "Running",
    "HKWorkoutActivityTypeCycling": "Cycling",
    "HKWorkoutActivityTypeWalking": "Walking",
    "HKWorkoutActivityTypeSwimming": "Swimming",
    "HKWorkoutActivityTypeHiking": "Hiking",
    "HKWorkoutActivityTypeYoga": "Yoga",
    "HKWorkoutActivityTypeFunctionalStrengthTraining": "Strength Training",
    "HKWorkoutActivityTypeTraditionalStrengthTraining": "Weight Training",
    "HKWorkoutActivityTypeCrossTraining": "Cross Training",
    "HKWorkoutActivityTypeElliptical": "Elliptical",
    "HKWorkoutActivityTypeRowing": "Rowing",
    "HKWorkoutActivityTypeStairClimbing": "Stair Climbing",
    "HKWorkoutActivityTypeHighIntensityIntervalTraining": "HIIT",
    "HKWorkoutActivityTypeDance": "Dance",
    "HKWorkoutActivityTypePilates": "Pilates",
    "HKWorkoutActivityTypeBoxing": "Boxing",
    "HKWorkoutActivityTypeKickboxing": "Kickboxing",
    "HKWorkoutActivityTypeMartialArts": "Martial Arts",
    "HKWorkoutActivityTypeTennis": "Tennis",
    "HKWorkoutActivityTypeBadminton": "Badminton",
    "HKWorkoutActivityTypeBasketball": "Basketball",
    "HKWorkoutActivityTypeSoccer": "Soccer",
    "HKWorkoutActivityTypeGolf": "Golf",
}

# device="<<HKDevice: 0x...>, name:Apple Watch, manufacturer:Apple Inc., ...>"
_DEVICE_NAME_RE = re.compile(r"name:([^,>]+)")

_EXPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def workout_name(activity_type: str) -> str:
    """Display name of an HKWorkoutActivityType, ``Workout`` if unknown."""
    return _WORKOUT_NAME_MAP.get(activity_type, "Workout")


def sleep_stage(value: str) -> str:
    """Stage name of a sleep analysis category value (``core`` if unknown)."""
    return _SLEEP_STAGE_MAP.get(value, "core")


def _parse_export_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, _EXPORT_DATE_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Could not parse export datetime: %r", value)
        return None


def _device_name(raw: str | None) -> str | None:
    if not raw:
        return None
    match = _DEVICE_NAME_RE.search(raw)
    return match.group(1).strip() if match else None


class AppleHealthExportSource(SampleSource):
    """SampleSource backed by an Apple Health ``export.xml``.

    Pass either the XML bytes or a path to the file.  A missing file makes
    the source unavailable; malformed XML raises SampleSourceError on first
    use.
    """

    SOURCE_ID = "apple_health_export"
    DISPLAY_NAME = "Apple Health export"

    def __init__(
        self,
        path: Path | str | None = None,
        xml_bytes: bytes | None = None,
    ) -> None:
        if path is None and xml_bytes is None:
            raise ValueError("AppleHealthExportSource needs a path or xml_bytes")
        self._path = Path(path) if path is not None else None
        self._xml_bytes = xml_bytes
        self._index: dict[str, list[DataPoint]] | None = None

    def is_available(self) -> bool:
        if self._xml_bytes is not None:
            return True
        return self._path is not None and self._path.is_file()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, list[DataPoint]]:
        if self._index is not None:
            return self._index

        data = self._xml_bytes
        if data is None:
            try:
                data = self._path.read_bytes()
            except OSError as exc:
                raise SampleSourceError(f"Cannot read Apple Health export: {exc}") from exc

        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            logger.error("Apple Health XML parse error: %s", exc)
            raise SampleSourceError(f"Invalid Apple Health XML: {exc}") from exc

        index: dict[str, list[DataPoint]] = defaultdict(list)
        skipped = 0

        for record in root.iter("Record"):
            rec_type = record.get("type", "")
            start = _parse_export_datetime(record.get("startDate"))
            end = _parse_export_datetime(record.get("endDate")) or start
            value = record.get("value")
            if not rec_type or start is None or value is None:
                skipped += 1
                continue

            if rec_type == MetricKind.SLEEP_ANALYSIS.value:
                value = sleep_stage(value)
            else:
                value = _CATEGORY_VALUE_MAP.get(value, value)

            index[rec_type].append(
                DataPoint(
                    metric_kind=rec_type,
                    value=value,
                    start_time=start,
                    end_time=end,
                    source=record.get("sourceName"),
                    device=_device_name(record.get("device")),
                )
            )

        for workout in root.iter("Workout"):
            start = _parse_export_datetime(workout.get("startDate"))
            end = _parse_export_datetime(workout.get("endDate")) or start
            if start is None:
                skipped += 1
                continue
            index[MetricKind.WORKOUTS.value].append(
                DataPoint(
                    metric_kind=MetricKind.WORKOUTS.value,
                    value=workout_name(workout.get("workoutActivityType", "")),
                    start_time=start,
                    end_time=end,
                    source=workout.get("sourceName"),
                    device=_device_name(workout.get("device")),
                )
            )

        for points in index.values():
            points.sort(key=lambda p: p.start_time)

        logger.info(
            "Apple Health export: indexed %d records across %d types (%d skipped)",
            sum(len(p) for p in index.values()), len(index), skipped,
        )
        self._index = dict(index)
        return self._index

    def _window(self, type_id: str, start: datetime, end: datetime) -> list[DataPoint]:
        start, end = as_aware(start), as_aware(end)
        return [
            p for p in self._load().get(type_id, [])
            if start <= as_aware(p.start_time) <= end
        ]

    # ------------------------------------------------------------------
    # SampleSource interface
    # ------------------------------------------------------------------

    async def fetch_quantity_samples(
        self,
        metric_kind: MetricKind,
        unit: str | None,
        start: datetime,
        end: datetime,
    ) -> list[DataPoint]:
        """Quantity records in the window, values as exported."""
        return self._window(metric_kind.value, start, end)

    async def fetch_category_samples(
        self, metric_kind: MetricKind, start: datetime, end: datetime
    ) -> list[DataPoint]:
        return self._window(metric_kind.value, start, end)

    async def fetch_workouts(self, start: datetime, end: datetime) -> list[DataPoint]:
        return self._window(MetricKind.WORKOUTS.value, start, end)
