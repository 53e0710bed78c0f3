"""Shared fixtures and fakes for health sync pipeline tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.healthsync.base import DataPoint, SampleSource, SampleSourceError
from src.healthsync.config_loader import SyncConfig, SyncPolicyConfig, load_sync_config
from src.healthsync.metrics import MetricKind
from src.healthsync.sync.identity import WalletEncryptionKey, WalletSession
from src.healthsync.sync.remote import StoreResult

# Fixed clock: all timestamps are UTC so calendar days are deterministic
TEST_NOW = datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)
TEST_START = TEST_NOW - timedelta(days=90)
TEST_WALLET = "0x1234567890abcdef1234567890abcdef12345678"
TEST_STORJ_URI = "storj://amach-health/0x1234/export-abc123.json.enc"
TEST_CONTENT_HASH = "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"

# The 9 core metric kinds
CORE_KINDS = [
    MetricKind.STEP_COUNT,
    MetricKind.HEART_RATE,
    MetricKind.HEART_RATE_VARIABILITY,
    MetricKind.RESTING_HEART_RATE,
    MetricKind.SLEEP_ANALYSIS,
    MetricKind.ACTIVE_ENERGY,
    MetricKind.EXERCISE_TIME,
    MetricKind.VO2_MAX,
    MetricKind.RESPIRATORY_RATE,
]


def point(
    kind: MetricKind | str,
    value: str,
    start: datetime,
    end: datetime | None = None,
    source: str | None = "Apple Watch",
    device: str | None = None,
) -> DataPoint:
    """Build a DataPoint; ``end`` defaults to ``start``."""
    kind_id = kind.value if isinstance(kind, MetricKind) else kind
    return DataPoint(
        metric_kind=kind_id,
        value=value,
        start_time=start,
        end_time=end or start,
        source=source,
        device=device,
    )


class FakeSampleSource(SampleSource):
    """In-memory SampleSource.

    ``data`` maps metric kind identifiers to points; a kind mapped to an
    exception instance raises it when fetched.  Every fetched kind is
    recorded in ``calls``.
    """

    SOURCE_ID = "fake"
    DISPLAY_NAME = "Fake source"

    def __init__(self, data: dict | None = None, available: bool = True) -> None:
        self.data = data or {}
        self.available = available
        self.calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    def _get(self, kind_id: str, start: datetime, end: datetime) -> list[DataPoint]:
        self.calls.append(kind_id)
        entry = self.data.get(kind_id, [])
        if isinstance(entry, Exception):
            raise entry
        return [p for p in entry if start <= p.start_time <= end]

    async def fetch_quantity_samples(self, metric_kind, unit, start, end):
        return self._get(metric_kind.value, start, end)

    async def fetch_category_samples(self, metric_kind, start, end):
        return self._get(metric_kind.value, start, end)

    async def fetch_workouts(self, start, end):
        return self._get(MetricKind.WORKOUTS.value, start, end)


def core_data(day: datetime = TEST_NOW - timedelta(hours=4), count: int = 7) -> dict:
    """One plausible sample for each of the first ``count`` core metric kinds."""
    values = {
        MetricKind.STEP_COUNT: "8500",
        MetricKind.HEART_RATE: "72",
        MetricKind.HEART_RATE_VARIABILITY: "48.5",
        MetricKind.RESTING_HEART_RATE: "58",
        MetricKind.SLEEP_ANALYSIS: "deep",
        MetricKind.ACTIVE_ENERGY: "520",
        MetricKind.EXERCISE_TIME: "35",
        MetricKind.VO2_MAX: "44.1",
        MetricKind.RESPIRATORY_RATE: "14.5",
    }
    data: dict = {}
    for kind in CORE_KINDS[:count]:
        data[kind.value] = [point(kind, values[kind], day, day + timedelta(minutes=30))]
    return data


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """The bundled config with the completion dwell disabled."""
    config = load_sync_config()
    config.sync = SyncPolicyConfig(
        default_range_days=config.sync.default_range_days,
        background_window_days=config.sync.background_window_days,
        background_throttle_hours=config.sync.background_throttle_hours,
        completion_dwell_seconds=0.0,
        max_concurrent_fetches=config.sync.max_concurrent_fetches,
    )
    return config


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def wallet_key() -> WalletEncryptionKey:
    return WalletEncryptionKey(
        wallet_address=TEST_WALLET,
        encryption_key="a3f1c9e2" * 8,
        signature="0xsig",
        timestamp=1771848000,
    )


@pytest.fixture
def wallet_session(wallet_key: WalletEncryptionKey) -> WalletSession:
    return WalletSession(wallet_key)


@pytest.fixture
def remote_store() -> AsyncMock:
    """Remote store whose ``store`` succeeds with a fixed address."""
    store = AsyncMock()
    store.store.return_value = StoreResult(
        storj_uri=TEST_STORJ_URI, content_hash=TEST_CONTENT_HASH, size=2048
    )
    return store


@pytest.fixture
def fake_source() -> FakeSampleSource:
    return FakeSampleSource(core_data())


@pytest.fixture
def failing_metric_source() -> FakeSampleSource:
    data = core_data()
    data[MetricKind.HEART_RATE.value] = SampleSourceError("Authorization not determined")
    return FakeSampleSource(data)
