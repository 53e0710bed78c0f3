"""Sync endpoints: run, retry and observe health data syncs for the connected wallet."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from src.dependencies import Orchestrator, Session, Source, Storj
from src.healthsync.base import RemoteStoreError, SampleSourceError, SourceUnavailableError
from src.healthsync.dashboard import TrendPeriod, fetch_daily_trend, fetch_today
from src.healthsync.manifest import PAYLOAD_DATA_TYPE
from src.healthsync.metrics import MetricKind
from src.healthsync.sync.identity import WalletEncryptionKey
from src.healthsync.sync.orchestrator import SyncError, SyncInProgressError
from src.models.sync import (
    AttestationRead,
    BackgroundSyncRead,
    IdentityRead,
    SyncRangeRequest,
    SyncResultRead,
    SyncStatusRead,
    TodaySnapshotRead,
    TrendPointRead,
    UploadRead,
    WalletKeyCreate,
)

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger("amach.routers.sync")


def _conflict() -> HTTPException:
    return HTTPException(status_code=409, detail=str(SyncInProgressError()))


# ---------- Status ----------

@router.get("/status", response_model=SyncStatusRead)
async def get_status(orchestrator: Orchestrator, session: Session) -> Any:
    result = orchestrator.last_result
    return SyncStatusRead(
        state=orchestrator.state.to_json(),
        is_running=orchestrator.is_running,
        last_sync_date=orchestrator.last_sync_date,
        last_result=SyncResultRead.model_validate(result) if result else None,
        has_pending_payload=orchestrator.has_pending_payload,
        wallet_connected=session.is_connected,
    )


# ---------- Runs ----------

@router.post("", response_model=SyncResultRead)
async def run_sync(orchestrator: Orchestrator, body: SyncRangeRequest | None = None) -> Any:
    """Run a full sync and return its result.

    A failed run is still a 200: the result carries ``success: false`` and
    the error message, and a failed upload can be retried.
    """
    body = body or SyncRangeRequest()
    try:
        result = await orchestrator.perform_full_sync(body.start, body.end)
    except SyncInProgressError:
        raise _conflict()
    return SyncResultRead.model_validate(result)


@router.post("/retry", response_model=SyncResultRead)
async def retry_sync(orchestrator: Orchestrator) -> Any:
    try:
        result = await orchestrator.retry_sync()
    except SyncInProgressError:
        raise _conflict()
    return SyncResultRead.model_validate(result)


@router.post("/background", response_model=BackgroundSyncRead)
async def background_sync(orchestrator: Orchestrator) -> Any:
    try:
        synced = await orchestrator.perform_background_sync()
    except SyncInProgressError:
        raise _conflict()
    return BackgroundSyncRead(synced=synced)


# ---------- Identity ----------

@router.put("/identity", response_model=IdentityRead)
async def connect_identity(session: Session, body: WalletKeyCreate) -> Any:
    session.connect(
        WalletEncryptionKey(
            wallet_address=body.wallet_address,
            encryption_key=body.encryption_key,
            signature=body.signature,
            timestamp=body.timestamp,
        )
    )
    return IdentityRead(connected=True, wallet_address=session.address)


@router.delete("/identity", response_model=IdentityRead)
async def disconnect_identity(session: Session) -> Any:
    session.disconnect()
    return IdentityRead(connected=False)


# ---------- Dashboard ----------

@router.get("/today", response_model=TodaySnapshotRead)
async def get_today(source: Source) -> Any:
    if not source.is_available():
        raise HTTPException(status_code=503, detail=str(SourceUnavailableError()))
    try:
        snapshot = await fetch_today(source)
    except SampleSourceError as exc:
        logger.warning("Today snapshot failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return TodaySnapshotRead.model_validate(snapshot)


@router.get("/trend", response_model=list[TrendPointRead])
async def get_trend(
    source: Source,
    kind: MetricKind = Query(default=MetricKind.STEP_COUNT),
    period: TrendPeriod = Query(default=TrendPeriod.WEEK),
) -> Any:
    if not source.is_available():
        raise HTTPException(status_code=503, detail=str(SourceUnavailableError()))
    try:
        points = await fetch_daily_trend(source, kind, period)
    except SampleSourceError as exc:
        logger.warning("Trend for %s failed: %s", kind.value, exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return [TrendPointRead(day=p.day, value=p.value) for p in points]


# ---------- Stored exports ----------

@router.get("/uploads", response_model=list[UploadRead])
async def list_uploads(session: Session, storj: Storj) -> Any:
    key = session.current_key()
    if key is None:
        raise HTTPException(status_code=401, detail=str(SyncError.wallet_not_connected()))
    try:
        items = await storj.list(key, data_type=PAYLOAD_DATA_TYPE)
    except RemoteStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    uploads = []
    for item in items:
        date_range = item.date_range
        uploads.append(
            UploadRead(
                uri=item.uri,
                content_hash=item.content_hash,
                size=item.size,
                upload_date=item.upload_date,
                data_type=item.data_type,
                tier=item.tier,
                metrics_count=item.metrics_count,
                date_range_start=date_range[0] if date_range else None,
                date_range_end=date_range[1] if date_range else None,
            )
        )
    return uploads


@router.get("/attestations", response_model=list[AttestationRead])
async def list_attestations(session: Session, storj: Storj) -> Any:
    """On-chain attestations for the connected wallet, newest first."""
    address = session.address
    if address is None:
        raise HTTPException(status_code=401, detail=str(SyncError.wallet_not_connected()))
    try:
        attestations = await storj.attestations(address)
    except RemoteStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    result = []
    for item in sorted(attestations, key=lambda a: a.timestamp, reverse=True):
        tier = item.tier
        result.append(
            AttestationRead(
                content_hash=item.content_hash,
                data_type=item.data_type_name,
                start_date=datetime.fromtimestamp(item.start_date, tz=timezone.utc),
                end_date=datetime.fromtimestamp(item.end_date, tz=timezone.utc),
                recorded_at=datetime.fromtimestamp(item.timestamp, tz=timezone.utc),
                score=item.completeness_score // 100,
                record_count=item.record_count,
                core_complete=item.core_complete,
                tier=tier.value,
                tier_min_score=tier.min_score,
            )
        )
    return result
