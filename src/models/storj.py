"""Pydantic models for the storage backend's ``/api/storj`` and ``/api/attestations`` endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from src.healthsync.completeness import Tier, tier_from_attestation
from src.models.base import CamelModel

T = TypeVar("T")

_DATA_TYPE_NAMES = {0: "DEXA", 1: "Bloodwork", 2: "Apple Health", 3: "CGM"}


# ---------- Response envelope ----------


class StorjEnvelope(BaseModel, Generic[T]):
    success: bool
    result: T | None = None
    error: str | None = None


class StorjErrorBody(BaseModel):
    error: str


# ---------- Results ----------


class StorjStoreResult(CamelModel):
    storj_uri: str
    content_hash: str
    size: int | None = None


class StorjListItem(CamelModel):
    """One stored object as listed by the backend."""

    uri: str
    content_hash: str
    size: int = 0
    uploaded_at: float = Field(description="Unix time in milliseconds")
    data_type: str
    metadata: dict[str, str] | None = None

    def _meta(self, *keys: str) -> str | None:
        if not self.metadata:
            return None
        for key in keys:
            if key in self.metadata:
                return self.metadata[key]
        return None

    @property
    def upload_date(self) -> datetime:
        return datetime.fromtimestamp(self.uploaded_at / 1000, tz=timezone.utc)

    @property
    def tier(self) -> str | None:
        return self._meta("tier")

    @property
    def metrics_count(self) -> int | None:
        raw = self._meta("metricsCount", "metricscount")
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None

    @property
    def date_range(self) -> tuple[str, str] | None:
        """``(start, end)`` from the ``start_end`` dateRange tag."""
        raw = self._meta("dateRange", "daterange")
        if raw is None:
            return None
        parts = raw.split("_")
        if len(parts) != 2:
            return None
        return parts[0], parts[1]


# ---------- Request bodies ----------


class StorjRequest(CamelModel):
    action: str
    user_address: str
    encryption_key: dict[str, Any]
    data: dict[str, Any] | None = None
    data_type: str | None = None
    storj_uri: str | None = None
    options: dict[str, Any] | None = None


# ---------- Attestations ----------


class AttestationRequest(CamelModel):
    user_address: str


class AttestationInfo(CamelModel):
    """One on-chain attestation of an uploaded dataset."""

    content_hash: str
    data_type: int
    start_date: float
    end_date: float
    completeness_score: int = Field(description="Basis points, 0-10000")
    record_count: int = 0
    core_complete: bool = False
    timestamp: float

    @property
    def tier(self) -> Tier:
        return tier_from_attestation(self.completeness_score, self.core_complete)

    @property
    def data_type_name(self) -> str:
        return _DATA_TYPE_NAMES.get(self.data_type, "Unknown")


class AttestationList(BaseModel):
    attestations: list[AttestationInfo] = Field(default_factory=list)
