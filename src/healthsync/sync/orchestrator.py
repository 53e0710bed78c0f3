"""Health data sync orchestrator.

Drives one sync attempt through its stages and owns the resulting state:

1. Check the wallet key (no collaborator is called without one)
2. Fetch every metric kind from the sample source
3. Aggregate daily summaries
4. Score completeness
5. Build the manifest and payload (payload kept as "pending")
6. Upload to the remote store
7. Record the sync date and result, clear the pending payload

Every state change is yielded from ``run_full_sync()`` / ``run_retry()`` so a
caller (or a test) can observe the exact sequence::

    async for state in orchestrator.run_full_sync():
        render(state)

When an upload fails, the pending payload survives and ``retry_sync()``
re-enters at the upload stage with the same payload; nothing is fetched or
recomputed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import AsyncIterator, Callable, Union

from src.healthsync.aggregation import build_daily_summaries
from src.healthsync.base import DataPoint, HealthSyncError, SampleSource, as_aware
from src.healthsync.completeness import score_completeness
from src.healthsync.config_loader import SyncConfig, get_sync_config
from src.healthsync.fetch import MetricFetcher
from src.healthsync.manifest import Payload, build_manifest, build_payload
from src.healthsync.sync.identity import KeyProvider, WalletEncryptionKey
from src.healthsync.sync.remote import RemoteStore
from src.healthsync.sync.state_store import (
    InMemorySyncStateStore,
    PersistedSyncState,
    SyncStateStore,
)

logger = logging.getLogger("amach.healthsync.sync.orchestrator")

MSG_STARTING = "Starting sync..."
MSG_FETCHING = "Fetching health data..."
MSG_AGGREGATING = "Aggregating daily summaries..."
MSG_SCORING = "Calculating completeness..."
MSG_UPLOADING = "Encrypting and uploading..."
MSG_RETRYING = "Retrying upload..."
MSG_ATTESTING = "Creating attestation..."
MSG_COMPLETE = "Sync complete!"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    """Nothing in flight."""

    @property
    def progress(self) -> float:
        return 0.0

    @property
    def message(self) -> str | None:
        return None

    def to_json(self) -> dict:
        return {"status": "idle", "progress": 0.0, "message": None}


@dataclass(frozen=True)
class Syncing:
    """A stage is running; ``progress`` is 0.0–1.0."""

    progress: float
    message: str

    def to_json(self) -> dict:
        return {"status": "syncing", "progress": self.progress, "message": self.message}


@dataclass(frozen=True)
class Error:
    """The last attempt failed; ``message`` is shown to the user as-is."""

    message: str

    @property
    def progress(self) -> float:
        return 0.0

    def to_json(self) -> dict:
        return {"status": "error", "progress": 0.0, "message": self.message}


SyncState = Union[Idle, Syncing, Error]


# ---------------------------------------------------------------------------
# Results / errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync attempt.

    On failure only ``success`` and ``error`` are set.
    """

    success: bool
    storj_uri: str | None = None
    content_hash: str | None = None
    tier: str | None = None
    score: int | None = None
    metrics_count: int | None = None
    days_covered: int | None = None
    error: str | None = None

    @classmethod
    def failure(cls, message: str) -> "SyncResult":
        return cls(success=False, error=message)

    def to_json(self) -> dict:
        return {
            "success": self.success,
            "storjUri": self.storj_uri,
            "contentHash": self.content_hash,
            "tier": self.tier,
            "score": self.score,
            "metricsCount": self.metrics_count,
            "daysCovered": self.days_covered,
            "error": self.error,
        }


class SyncError(HealthSyncError):
    """A pipeline stage failed; the message is user-facing."""

    @classmethod
    def wallet_not_connected(cls) -> "SyncError":
        return cls("Please connect your wallet to sync health data")

    @classmethod
    def no_data_available(cls) -> "SyncError":
        return cls("No health data available to sync")

    @classmethod
    def upload_failed(cls, message: str) -> "SyncError":
        return cls(f"Upload failed: {message}")

    @classmethod
    def no_pending_sync(cls) -> "SyncError":
        return cls("No pending sync to retry")


class SyncInProgressError(HealthSyncError):
    """A sync attempt was started while another one is running."""

    def __init__(self) -> None:
        super().__init__("A sync is already in progress")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SyncOrchestrator:
    """Run full, retry and background syncs for one identity.

    All collaborators are injected; nothing here is global.  Only one attempt
    may run at a time; a second one raises SyncInProgressError.

    Usage::

        orchestrator = SyncOrchestrator(
            source=AppleHealthExportSource(export_path),
            remote_store=StorjClient(settings=settings),
            key_provider=wallet_session,
            state_store=FileSyncStateStore(settings.state_file),
        )
        result = await orchestrator.perform_full_sync()
    """

    def __init__(
        self,
        source: SampleSource,
        remote_store: RemoteStore,
        key_provider: KeyProvider,
        state_store: SyncStateStore | None = None,
        config: SyncConfig | None = None,
        fetcher: MetricFetcher | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
        platform: str = "ios",
    ) -> None:
        """Initialize the orchestrator.

        Args:
            source:       Sample source read during the fetch stage.
            remote_store: Store the payload is uploaded to.
            key_provider: Supplies the wallet encryption key.
            state_store:  Persists ``last_sync_date`` (in memory if None).
            config:       Sync configuration (the bundled YAML if None).
            fetcher:      Fan-out to use (built from ``source`` if None).
            clock:        Returns "now"; timezone-aware UTC by default.
            tz:           Zone for calendar-day grouping (system zone if None).
            platform:     Value of the ``platform`` upload tag.
        """
        self._config = config or get_sync_config()
        self._remote_store = remote_store
        self._key_provider = key_provider
        self._state_store = state_store or InMemorySyncStateStore()
        self._fetcher = fetcher or MetricFetcher(
            source, max_concurrent=self._config.sync.max_concurrent_fetches
        )
        self._clock = clock or _utc_now
        self._tz = tz
        self._platform = platform

        self._state: SyncState = Idle()
        self._last_sync_date: datetime | None = self._state_store.load().last_sync_date
        self._last_result: SyncResult | None = None
        self._pending_payload: Payload | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_sync_date(self) -> datetime | None:
        return self._last_sync_date

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    @property
    def has_pending_payload(self) -> bool:
        return self._pending_payload is not None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def run_full_sync(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AsyncIterator[SyncState]:
        """Run a full sync, yielding every state transition.

        Args:
            start: Range start (``end`` minus the default range if None).
            end:   Range end (now if None).

        Raises:
            SyncInProgressError: If another attempt is running.
        """
        self._begin()
        try:
            # Naive bounds are local time, like the sample source reads them
            end = as_aware(end) if end else self._clock()
            start = (
                as_aware(start)
                if start
                else end - timedelta(days=self._config.sync.default_range_days)
            )
            yield self._transition(Syncing(0.0, MSG_STARTING))

            try:
                key = self._require_key()
                # A fresh sync supersedes whatever was left from a failed upload
                self._pending_payload = None

                yield self._transition(Syncing(self._config.progress.fetch_start, MSG_FETCHING))
                raw_data: dict[str, list[DataPoint]] = {}
                async for event in self._fetcher.iter_fetch(start, end):
                    if event.points:
                        raw_data[event.metric_kind] = list(event.points)
                    yield self._transition(
                        Syncing(self._config.progress.rescale(event.fraction), event.label)
                    )

                if not raw_data:
                    raise SyncError.no_data_available()

                yield self._transition(Syncing(0.45, MSG_AGGREGATING))
                summaries = build_daily_summaries(raw_data, tz=self._tz)

                yield self._transition(Syncing(0.5, MSG_SCORING))
                completeness = score_completeness(
                    raw_data.keys(), start, end, self._config.completeness
                )
                manifest = build_manifest(
                    raw_data.keys(), start, end, completeness, raw_data, now=self._clock()
                )
                payload = build_payload(manifest, summaries)
                self._pending_payload = payload
                logger.info(
                    "Built payload: %d days, %d metrics, score=%d tier=%s",
                    len(summaries), len(manifest.metrics_present),
                    completeness.score, completeness.tier.value,
                )

                async for state in self._upload(payload, key, MSG_UPLOADING):
                    yield state

            except Exception as exc:
                yield self._fail(exc)
        finally:
            self._running = False

    async def perform_full_sync(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SyncResult:
        """Run a full sync to completion and return its result."""
        async for _ in self.run_full_sync(start, end):
            pass
        return self._require_result()

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def run_retry(self) -> AsyncIterator[SyncState]:
        """Re-upload the pending payload, yielding every state transition.

        Raises:
            SyncInProgressError: If another attempt is running.
        """
        self._begin()
        try:
            try:
                payload = self._pending_payload
                if payload is None:
                    raise SyncError.no_pending_sync()
                key = self._require_key()

                async for state in self._upload(payload, key, MSG_RETRYING):
                    yield state

            except Exception as exc:
                yield self._fail(exc)
        finally:
            self._running = False

    async def retry_sync(self) -> SyncResult:
        """Retry the last failed upload and return its result."""
        async for _ in self.run_retry():
            pass
        return self._require_result()

    # ------------------------------------------------------------------
    # Background sync
    # ------------------------------------------------------------------

    async def perform_background_sync(self) -> bool:
        """Throttled sync of the most recent days.

        Never prompts for a wallet: without a key nothing happens and False
        is returned.  When the last successful sync is younger than the
        throttle window, returns True ("already synced") without calling
        any collaborator.

        Returns:
            True if the data is synced (now or recently), False otherwise.
        """
        if self._key_provider.current_key() is None:
            logger.info("Background sync skipped: wallet not connected")
            return False

        policy = self._config.sync
        now = self._clock()
        if self._last_sync_date is not None and (
            now - self._last_sync_date < timedelta(hours=policy.background_throttle_hours)
        ):
            logger.info(
                "Background sync skipped: last sync at %s", self._last_sync_date.isoformat()
            )
            return True

        start = now - timedelta(days=policy.background_window_days)
        result = await self.perform_full_sync(start, now)
        return result.success

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self) -> None:
        if self._running:
            raise SyncInProgressError()
        self._running = True

    def _transition(self, state: SyncState) -> SyncState:
        self._state = state
        logger.debug("Sync state → %s", state)
        return state

    def _require_result(self) -> SyncResult:
        if self._last_result is None:
            raise HealthSyncError("Sync finished without a result")
        return self._last_result

    def _require_key(self) -> WalletEncryptionKey:
        key = self._key_provider.current_key()
        if key is None:
            raise SyncError.wallet_not_connected()
        return key

    def _fail(self, exc: Exception) -> SyncState:
        if isinstance(exc, HealthSyncError):
            logger.warning("Sync failed: %s", exc)
        else:
            logger.exception("Sync failed with unexpected error")
        message = str(exc) or exc.__class__.__name__
        self._last_result = SyncResult.failure(message)
        return self._transition(Error(message))

    async def _upload(
        self, payload: Payload, key: WalletEncryptionKey, message: str
    ) -> AsyncIterator[SyncState]:
        """Upload stage through completion; shared by full sync and retry."""
        yield self._transition(Syncing(0.6, message))

        manifest = payload.manifest
        try:
            stored = await self._remote_store.store(
                payload, key, manifest.storage_metadata(self._platform)
            )
        except Exception as exc:
            raise SyncError.upload_failed(str(exc) or exc.__class__.__name__) from exc

        # Attestation is produced by the backend as a side effect of storage
        yield self._transition(Syncing(0.9, MSG_ATTESTING))
        yield self._transition(Syncing(1.0, MSG_COMPLETE))

        now = self._clock()
        self._last_sync_date = now
        self._state_store.save(PersistedSyncState(last_sync_date=now))

        self._last_result = SyncResult(
            success=True,
            storj_uri=stored.storj_uri,
            content_hash=stored.content_hash,
            tier=manifest.completeness.tier,
            score=manifest.completeness.score,
            metrics_count=len(manifest.metrics_present),
            days_covered=manifest.completeness.days_covered,
        )
        self._pending_payload = None
        logger.info(
            "Sync complete: %s (tier=%s, score=%d)",
            stored.storj_uri, manifest.completeness.tier, manifest.completeness.score,
        )

        dwell = self._config.sync.completion_dwell_seconds
        if dwell > 0:
            await asyncio.sleep(dwell)
        yield self._transition(Idle())
