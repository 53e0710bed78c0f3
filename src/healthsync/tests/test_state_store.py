"""Tests for persisted sync state and the wallet session."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from src.healthsync.sync.identity import WalletEncryptionKey, WalletSession
from src.healthsync.sync.state_store import (
    FileSyncStateStore,
    InMemorySyncStateStore,
    PersistedSyncState,
)
from src.healthsync.tests.conftest import TEST_NOW, TEST_WALLET


class TestFileSyncStateStore:
    def test_missing_file_loads_empty_state(self, tmp_path: Path) -> None:
        store = FileSyncStateStore(tmp_path / "state.json")
        assert store.load().last_sync_date is None

    def test_save_then_load(self, tmp_path: Path) -> None:
        store = FileSyncStateStore(tmp_path / "state.json")
        store.save(PersistedSyncState(last_sync_date=TEST_NOW))
        assert FileSyncStateStore(tmp_path / "state.json").load().last_sync_date == TEST_NOW

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / ".amach" / "nested" / "state.json"
        FileSyncStateStore(path).save(PersistedSyncState(last_sync_date=TEST_NOW))
        assert json.loads(path.read_text()) == {"last_sync_date": "2026-02-23T12:00:00+00:00"}
        assert not path.with_suffix(".json.tmp").exists()

    def test_corrupt_file_loads_empty_state(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert FileSyncStateStore(path).load().last_sync_date is None

    def test_non_object_document(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("[1, 2, 3]")
        assert FileSyncStateStore(path).load().last_sync_date is None

    def test_unparseable_date_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"last_sync_date": "yesterday"}))
        assert FileSyncStateStore(path).load().last_sync_date is None

    def test_cleared_date_round_trips(self, tmp_path: Path) -> None:
        store = FileSyncStateStore(tmp_path / "state.json")
        store.save(PersistedSyncState(last_sync_date=TEST_NOW))
        store.save(PersistedSyncState())
        assert store.load().last_sync_date is None


class TestInMemorySyncStateStore:
    def test_load_returns_copy(self) -> None:
        store = InMemorySyncStateStore()
        state = store.load()
        state.last_sync_date = TEST_NOW
        assert store.load().last_sync_date is None

    def test_save(self) -> None:
        store = InMemorySyncStateStore()
        moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
        store.save(PersistedSyncState(last_sync_date=moment))
        assert store.load().last_sync_date == moment


class TestWalletSession:
    def test_starts_disconnected(self) -> None:
        session = WalletSession()
        assert session.is_connected is False
        assert session.address is None
        assert session.current_key() is None

    def test_connect_and_disconnect(self, wallet_key: WalletEncryptionKey) -> None:
        session = WalletSession()
        session.connect(wallet_key)
        assert session.is_connected is True
        assert session.address == TEST_WALLET
        assert session.current_key() is wallet_key

        session.disconnect()
        assert session.current_key() is None
        session.disconnect()
        assert session.is_connected is False

    def test_key_json_uses_backend_field_names(self, wallet_key: WalletEncryptionKey) -> None:
        assert set(wallet_key.to_json()) == {
            "walletAddress",
            "encryptionKey",
            "signature",
            "timestamp",
        }
