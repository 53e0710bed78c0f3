"""Pydantic models for the sync API: requests, status, results, snapshots."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import Field, field_validator, model_validator

from src.healthsync.base import as_aware
from src.models.base import AmachBase, CamelModel


# ---------- Requests ----------


class SyncRangeRequest(AmachBase):
    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _localize(cls, value: datetime | None) -> datetime | None:
        return as_aware(value) if value is not None else None

    @model_validator(mode="after")
    def _check_order(self) -> "SyncRangeRequest":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class WalletKeyCreate(CamelModel):
    wallet_address: str = Field(min_length=1)
    encryption_key: str = Field(min_length=1)
    signature: str
    timestamp: int


# ---------- Responses ----------


class SyncStateRead(AmachBase):
    status: str  # idle | syncing | error
    progress: float
    message: str | None = None


class SyncResultRead(CamelModel):
    success: bool
    storj_uri: str | None = None
    content_hash: str | None = None
    tier: str | None = None
    score: int | None = None
    metrics_count: int | None = None
    days_covered: int | None = None
    error: str | None = None


class SyncStatusRead(CamelModel):
    state: SyncStateRead
    is_running: bool
    last_sync_date: datetime | None = None
    last_result: SyncResultRead | None = None
    has_pending_payload: bool = False
    wallet_connected: bool = False


class BackgroundSyncRead(AmachBase):
    synced: bool


class IdentityRead(CamelModel):
    connected: bool
    wallet_address: str | None = None


class TodaySnapshotRead(CamelModel):
    steps: float
    active_energy: float
    exercise_minutes: float
    heart_rate_avg: float
    heart_rate_min: float
    heart_rate_max: float
    hrv: float
    resting_heart_rate: float
    vo2_max: float
    respiratory_rate: float
    sleep_hours: float
    sleep_efficiency: float | None = None


class TrendPointRead(AmachBase):
    day: date = Field(serialization_alias="date")
    value: float


class UploadRead(CamelModel):
    uri: str
    content_hash: str
    size: int
    upload_date: datetime
    data_type: str
    tier: str | None = None
    metrics_count: int | None = None
    date_range_start: str | None = None
    date_range_end: str | None = None


class AttestationRead(CamelModel):
    content_hash: str
    data_type: str
    start_date: datetime
    end_date: datetime
    recorded_at: datetime
    score: int = Field(description="Completeness score, 0-100")
    record_count: int
    core_complete: bool
    tier: str
    tier_min_score: int
