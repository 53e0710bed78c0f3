"""Transfer manifest and upload payload.

The manifest describes what a payload contains: date range, metrics present,
completeness, record count, and which kind of device recorded the samples.
It is built once per sync attempt and never modified afterwards; the payload
that carries it is what the orchestrator retains for retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Mapping

from src.healthsync.base import DailySummary, DataPoint
from src.healthsync.completeness import CompletenessResult
from src.healthsync.metrics import normalize_metric_key

logger = logging.getLogger("amach.healthsync.manifest")

MANIFEST_VERSION = 1

#: Data type tag the remote store files full exports under.
PAYLOAD_DATA_TYPE = "apple-health-full-export"

WATCH = "watch"
PHONE = "phone"
OTHER = "other"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str

    def to_json(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class CompletenessInfo:
    """Completeness fields as shipped in the manifest, plus the record count."""

    score: int
    tier: str
    core_complete: bool
    days_covered: int
    record_count: int

    def to_json(self) -> dict:
        return {
            "score": self.score,
            "tier": self.tier,
            "coreComplete": self.core_complete,
            "daysCovered": self.days_covered,
            "recordCount": self.record_count,
        }


@dataclass(frozen=True)
class SourceDistribution:
    """Percent of samples recorded by a watch, a phone, or anything else."""

    watch: int
    phone: int
    other: int

    def to_json(self) -> dict:
        return {"watch": self.watch, "phone": self.phone, "other": self.other}


@dataclass(frozen=True)
class Manifest:
    """Metadata document describing one payload.

    Attributes:
        version:         Manifest schema version.
        export_date:     ``YYYY-MM-DD`` the export was built.
        upload_date:     ISO-8601 UTC timestamp of the build.
        date_range:      Exported range as ``YYYY-MM-DD`` strings.
        metrics_present: Sorted normalized keys of metrics with data.
        completeness:    Score, tier, core flag, days covered, record count.
        sources:         Watch / phone / other percentages.
    """

    version: int
    export_date: str
    upload_date: str
    date_range: DateRange
    metrics_present: tuple[str, ...]
    completeness: CompletenessInfo
    sources: SourceDistribution

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "exportDate": self.export_date,
            "uploadDate": self.upload_date,
            "dateRange": self.date_range.to_json(),
            "metricsPresent": list(self.metrics_present),
            "completeness": self.completeness.to_json(),
            "sources": self.sources.to_json(),
        }

    @classmethod
    def from_json(cls, data: dict) -> "Manifest":
        comp = data.get("completeness") or {}
        src = data.get("sources") or {}
        rng = data.get("dateRange") or {}
        return cls(
            version=int(data.get("version", MANIFEST_VERSION)),
            export_date=data.get("exportDate", ""),
            upload_date=data.get("uploadDate", ""),
            date_range=DateRange(start=rng.get("start", ""), end=rng.get("end", "")),
            metrics_present=tuple(data.get("metricsPresent") or ()),
            completeness=CompletenessInfo(
                score=int(comp.get("score", 0)),
                tier=comp.get("tier", "NONE"),
                core_complete=bool(comp.get("coreComplete", False)),
                days_covered=int(comp.get("daysCovered", 0)),
                record_count=int(comp.get("recordCount", 0)),
            ),
            sources=SourceDistribution(
                watch=int(src.get("watch", 0)),
                phone=int(src.get("phone", 0)),
                other=int(src.get("other", 0)),
            ),
        )

    def storage_metadata(self, platform: str = "ios") -> dict[str, str]:
        """String tags attached to the stored object."""
        return {
            "version": str(self.version),
            "dateRange": f"{self.date_range.start}_{self.date_range.end}",
            "metricsCount": str(len(self.metrics_present)),
            "completenessScore": str(self.completeness.score),
            "tier": self.completeness.tier,
            "platform": platform,
        }


@dataclass(frozen=True)
class Payload:
    """The unit shipped to the remote store."""

    manifest: Manifest
    daily_summaries: Mapping[str, DailySummary] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "manifest": self.manifest.to_json(),
            "dailySummaries": {
                day: summary.to_json()
                for day, summary in sorted(self.daily_summaries.items())
            },
        }

    @classmethod
    def from_json(cls, data: dict) -> "Payload":
        return cls(
            manifest=Manifest.from_json(data.get("manifest") or {}),
            daily_summaries={
                day: DailySummary.from_json(summary)
                for day, summary in (data.get("dailySummaries") or {}).items()
            },
        )


# ---------------------------------------------------------------------------
# Source distribution
# ---------------------------------------------------------------------------


def classify_source(point: DataPoint) -> str:
    """Classify a point as recorded by a watch, a phone, or something else."""
    name = (point.source or point.device or "").lower()
    if "watch" in name:
        return WATCH
    if "iphone" in name or "phone" in name:
        return PHONE
    return OTHER


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def source_percentages(counts: Mapping[str, int]) -> SourceDistribution:
    """Turn watch/phone/other counts into whole percentages.

    Each bucket is rounded half up from ``count * 100 / total`` (total
    floored at 1).  Rounding can push the sum to 101 or 102; the excess is
    taken off the largest bucket so the result never exceeds 100.
    """
    total = max(1, sum(counts.get(k, 0) for k in (WATCH, PHONE, OTHER)))
    pct = {k: _round_half_up(counts.get(k, 0) * 100 / total) for k in (WATCH, PHONE, OTHER)}

    excess = sum(pct.values()) - 100
    if excess > 0:
        largest = max(pct, key=lambda k: pct[k])
        pct[largest] -= excess

    return SourceDistribution(watch=pct[WATCH], phone=pct[PHONE], other=pct[OTHER])


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_manifest(
    metrics_present: Iterable[str],
    start: datetime,
    end: datetime,
    completeness: CompletenessResult,
    raw_data: Mapping[str, list[DataPoint]],
    now: datetime | None = None,
) -> Manifest:
    """Assemble the manifest for one sync attempt.

    Args:
        metrics_present: Metric kinds that yielded data (raw or normalized).
        start:           Start of the exported range.
        end:             End of the exported range.
        completeness:    Scorer output for the same metrics and range.
        raw_data:        Fetched points, used for record and source counts.
        now:             Build time (UTC now if None).

    Returns:
        Manifest.
    """
    now = now or datetime.now(timezone.utc)

    counts = {WATCH: 0, PHONE: 0, OTHER: 0}
    record_count = 0
    for points in raw_data.values():
        for point in points:
            record_count += 1
            counts[classify_source(point)] += 1

    manifest = Manifest(
        version=MANIFEST_VERSION,
        export_date=now.date().isoformat(),
        upload_date=now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        date_range=DateRange(
            start=start.date().isoformat(),
            end=end.date().isoformat(),
        ),
        metrics_present=tuple(sorted({normalize_metric_key(m) for m in metrics_present})),
        completeness=CompletenessInfo(
            score=completeness.score,
            tier=completeness.tier.value,
            core_complete=completeness.core_complete,
            days_covered=completeness.days_covered,
            record_count=record_count,
        ),
        sources=source_percentages(counts),
    )
    logger.debug(
        "Built manifest: %d metrics, %d records, tier=%s",
        len(manifest.metrics_present), record_count, manifest.completeness.tier,
    )
    return manifest


def build_payload(manifest: Manifest, daily_summaries: Mapping[str, DailySummary]) -> Payload:
    """Wrap a manifest and its daily summaries into an upload payload."""
    return Payload(manifest=manifest, daily_summaries=dict(daily_summaries))
