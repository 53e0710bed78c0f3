"""Tests for the encrypted storage backend client."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
import respx
from httpx import Response

from src.healthsync.base import DailySummary, MetricSummary, RemoteStoreError
from src.healthsync.completeness import Tier, score_completeness
from src.healthsync.manifest import Payload, build_manifest, build_payload
from src.healthsync.metrics import MetricKind
from src.healthsync.sync.identity import WalletEncryptionKey
from src.healthsync.tests.conftest import (
    TEST_CONTENT_HASH,
    TEST_NOW,
    TEST_START,
    TEST_STORJ_URI,
    TEST_WALLET,
    point,
)
from src.models.storj import AttestationInfo
from src.services.storj import StorjClient

_BASE_URL = "https://storage.test"
_STORJ_URL = f"{_BASE_URL}/api/storj"


@pytest.fixture
def client() -> StorjClient:
    return StorjClient(base_url=_BASE_URL, timeout=5.0)


@pytest.fixture
def payload() -> Payload:
    raw = {MetricKind.STEP_COUNT.value: [point(MetricKind.STEP_COUNT, "4200", TEST_NOW)]}
    completeness = score_completeness(raw.keys(), TEST_START, TEST_NOW)
    manifest = build_manifest(raw.keys(), TEST_START, TEST_NOW, completeness, raw, now=TEST_NOW)
    return build_payload(
        manifest,
        {"2026-02-23": DailySummary(metrics={"StepCount": MetricSummary.cumulative([4200.0])})},
    )


class TestStore:
    @pytest.mark.asyncio
    @respx.mock
    async def test_store_returns_address(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(
            return_value=Response(
                200,
                json={
                    "success": True,
                    "result": {
                        "storjUri": TEST_STORJ_URI,
                        "contentHash": TEST_CONTENT_HASH,
                        "size": 2048,
                    },
                },
            )
        )
        result = await client.store(payload, wallet_key, payload.manifest.storage_metadata())

        assert result.storj_uri == TEST_STORJ_URI
        assert result.content_hash == TEST_CONTENT_HASH
        assert result.size == 2048

    @pytest.mark.asyncio
    @respx.mock
    async def test_store_request_body(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        route = respx.post(_STORJ_URL).mock(
            return_value=Response(
                200,
                json={"success": True, "result": {"storjUri": "u", "contentHash": "h"}},
            )
        )
        metadata = payload.manifest.storage_metadata()
        await client.store(payload, wallet_key, metadata)

        body = json.loads(route.calls[0].request.content)
        assert body["action"] == "storage/store"
        assert body["userAddress"] == TEST_WALLET
        assert body["encryptionKey"]["walletAddress"] == TEST_WALLET
        assert body["dataType"] == "apple-health-full-export"
        assert body["options"] == {"metadata": metadata}
        assert body["data"]["manifest"]["metricsPresent"] == ["StepCount"]
        assert body["data"]["dailySummaries"]["2026-02-23"]["metrics"]["StepCount"]["total"] == 4200.0
        assert "storjUri" not in body

    @pytest.mark.asyncio
    @respx.mock
    async def test_unsuccessful_envelope(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(
            return_value=Response(200, json={"success": False, "error": "Quota exceeded"})
        )
        with pytest.raises(RemoteStoreError, match="Quota exceeded"):
            await client.store(payload, wallet_key, {})

    @pytest.mark.asyncio
    @respx.mock
    async def test_unsuccessful_envelope_without_message(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(return_value=Response(200, json={"success": False}))
        with pytest.raises(RemoteStoreError, match="Unknown error"):
            await client.store(payload, wallet_key, {})

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_uses_server_message(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(
            return_value=Response(401, json={"error": "Invalid signature"})
        )
        with pytest.raises(RemoteStoreError) as exc_info:
            await client.store(payload, wallet_key, {})
        assert str(exc_info.value) == "Invalid signature"

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_without_body(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(return_value=Response(502, text="Bad Gateway"))
        with pytest.raises(RemoteStoreError) as exc_info:
            await client.store(payload, wallet_key, {})
        assert str(exc_info.value) == "HTTP error: 502"

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
        with pytest.raises(RemoteStoreError, match="Connection refused"):
            await client.store(payload, wallet_key, {})

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_body(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        respx.post(_STORJ_URL).mock(return_value=Response(200, text="<html>oops</html>"))
        with pytest.raises(RemoteStoreError, match="Invalid response from server"):
            await client.store(payload, wallet_key, {})

    @pytest.mark.asyncio
    @respx.mock
    async def test_injected_http_client(
        self, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        route = respx.post(_STORJ_URL).mock(
            return_value=Response(
                200, json={"success": True, "result": {"storjUri": "u", "contentHash": "h"}}
            )
        )
        async with httpx.AsyncClient() as http_client:
            client = StorjClient(base_url=_BASE_URL + "/", http_client=http_client)
            await client.store(payload, wallet_key, {})
        assert route.called


class TestList:
    @pytest.mark.asyncio
    @respx.mock
    async def test_list_items(self, client: StorjClient, wallet_key: WalletEncryptionKey) -> None:
        route = respx.post(_STORJ_URL).mock(
            return_value=Response(
                200,
                json={
                    "success": True,
                    "result": [
                        {
                            "uri": TEST_STORJ_URI,
                            "contentHash": TEST_CONTENT_HASH,
                            "size": 2048,
                            "uploadedAt": 1771848000000,
                            "dataType": "apple-health-full-export",
                            "metadata": {
                                "tier": "GOLD",
                                "metricscount": "31",
                                "daterange": "2025-02-23_2026-02-23",
                            },
                        },
                        {
                            "uri": "storj://other",
                            "contentHash": "abc",
                            "size": 10,
                            "uploadedAt": 1771848000000,
                            "dataType": "apple-health-full-export",
                        },
                    ],
                },
            )
        )
        items = await client.list(wallet_key, data_type="apple-health-full-export")

        body = json.loads(route.calls[0].request.content)
        assert body["action"] == "storage/list"
        assert body["dataType"] == "apple-health-full-export"

        first, second = items
        assert first.tier == "GOLD"
        assert first.metrics_count == 31
        assert first.date_range == ("2025-02-23", "2026-02-23")
        assert first.upload_date == datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)
        assert second.tier is None
        assert second.metrics_count is None
        assert second.date_range is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_empty(self, client: StorjClient, wallet_key: WalletEncryptionKey) -> None:
        respx.post(_STORJ_URL).mock(
            return_value=Response(200, json={"success": True, "result": []})
        )
        assert await client.list(wallet_key) == []


class TestRetrieve:
    @pytest.mark.asyncio
    @respx.mock
    async def test_retrieve_rebuilds_payload(
        self, client: StorjClient, payload: Payload, wallet_key: WalletEncryptionKey
    ) -> None:
        route = respx.post(_STORJ_URL).mock(
            return_value=Response(200, json={"success": True, "result": payload.to_json()})
        )
        restored = await client.retrieve(TEST_STORJ_URI, wallet_key)

        body = json.loads(route.calls[0].request.content)
        assert body["action"] == "storage/retrieve"
        assert body["storjUri"] == TEST_STORJ_URI
        assert restored.manifest == payload.manifest
        assert restored.daily_summaries["2026-02-23"].metrics["StepCount"].total == 4200.0


class TestAttestations:
    @pytest.mark.asyncio
    @respx.mock
    async def test_attestations(self, client: StorjClient) -> None:
        route = respx.post(f"{_BASE_URL}/api/attestations").mock(
            return_value=Response(
                200,
                json={
                    "attestations": [
                        {
                            "contentHash": TEST_CONTENT_HASH,
                            "dataType": 2,
                            "startDate": 1740312000,
                            "endDate": 1771848000,
                            "completenessScore": 8250,
                            "recordCount": 5120,
                            "coreComplete": True,
                            "timestamp": 1771848100,
                        }
                    ]
                },
            )
        )
        (attestation,) = await client.attestations(TEST_WALLET)

        assert json.loads(route.calls[0].request.content) == {"userAddress": TEST_WALLET}
        assert attestation.tier is Tier.GOLD
        assert attestation.data_type_name == "Apple Health"
        assert attestation.record_count == 5120

    @pytest.mark.parametrize(
        "score, core_complete, tier",
        [
            (8000, True, Tier.GOLD),
            (8000, False, Tier.BRONZE),
            (6000, True, Tier.SILVER),
            (4000, False, Tier.BRONZE),
            (2000, False, Tier.NONE),
            (0, True, Tier.NONE),
        ],
    )
    def test_tier_from_basis_points(self, score: int, core_complete: bool, tier: Tier) -> None:
        attestation = AttestationInfo(
            content_hash="h",
            data_type=9,
            start_date=0,
            end_date=0,
            completeness_score=score,
            core_complete=core_complete,
            timestamp=0,
        )
        assert attestation.tier is tier
        assert attestation.data_type_name == "Unknown"

    @pytest.mark.asyncio
    @respx.mock
    async def test_attestations_http_error(self, client: StorjClient) -> None:
        respx.post(f"{_BASE_URL}/api/attestations").mock(
            return_value=Response(500, json={"error": "RPC unavailable"})
        )
        with pytest.raises(RemoteStoreError, match="RPC unavailable"):
            await client.attestations(TEST_WALLET)
