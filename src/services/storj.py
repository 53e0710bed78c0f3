"""Client for the encrypted storage backend (Storj via the Amach web app).

Every call is a JSON POST to ``{api_base_url}/api/storj`` whose ``action``
selects the operation.  The backend encrypts with the wallet-derived key
before writing, so only the key travels with each request.  Attestations
the backend records after each upload are read from ``/api/attestations``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from src.config import Settings, get_settings
from src.healthsync.base import RemoteStoreError
from src.healthsync.manifest import PAYLOAD_DATA_TYPE, Payload
from src.healthsync.sync.identity import WalletEncryptionKey
from src.healthsync.sync.remote import StoreResult
from src.models.storj import (
    AttestationInfo,
    AttestationList,
    AttestationRequest,
    StorjEnvelope,
    StorjErrorBody,
    StorjListItem,
    StorjRequest,
    StorjStoreResult,
)

logger = logging.getLogger("amach.storj")

_STORJ_PATH = "/api/storj"
_ATTESTATIONS_PATH = "/api/attestations"
_USER_AGENT = "AmachHealth-Sync/1.0"


class StorjClient:
    """RemoteStore implementation over httpx.

    Args:
        base_url:    Backend origin; defaults to ``Settings.api_base_url``.
        timeout:     Request timeout in seconds; defaults to
                     ``Settings.request_timeout_s``.
        http_client: Optional pre-configured httpx client (for testing).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self._base_url = (base_url or s.api_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else s.request_timeout_s
        self._http_client = http_client

    @property
    def url(self) -> str:
        return f"{self._base_url}{_STORJ_PATH}"

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def store(
        self,
        payload: Payload,
        key: WalletEncryptionKey,
        metadata: dict[str, str],
    ) -> StoreResult:
        """Encrypt and store a payload, returning its content address."""
        request = StorjRequest(
            action="storage/store",
            user_address=key.wallet_address,
            encryption_key=key.to_json(),
            data=payload.to_json(),
            data_type=PAYLOAD_DATA_TYPE,
            options={"metadata": metadata},
        )
        envelope = await self._post(request, StorjEnvelope[StorjStoreResult])
        result = self._unwrap(envelope)
        logger.info("Stored payload at %s (%s bytes)", result.storj_uri, result.size)
        return StoreResult(
            storj_uri=result.storj_uri,
            content_hash=result.content_hash,
            size=result.size,
        )

    async def list(
        self, key: WalletEncryptionKey, data_type: str | None = None
    ) -> list[StorjListItem]:
        """List stored objects for the wallet, optionally of one data type."""
        request = StorjRequest(
            action="storage/list",
            user_address=key.wallet_address,
            encryption_key=key.to_json(),
            data_type=data_type,
        )
        envelope = await self._post(request, StorjEnvelope[list[StorjListItem]])
        items = self._unwrap(envelope)
        logger.debug("Listed %d stored objects for %s", len(items), key.wallet_address)
        return items

    async def retrieve(self, storj_uri: str, key: WalletEncryptionKey) -> Payload:
        """Fetch and decrypt a stored payload."""
        request = StorjRequest(
            action="storage/retrieve",
            user_address=key.wallet_address,
            encryption_key=key.to_json(),
            storj_uri=storj_uri,
        )
        envelope = await self._post(request, StorjEnvelope[dict[str, Any]])
        data = self._unwrap(envelope)
        try:
            return Payload.from_json(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Retrieved object %s is not a health payload: %s", storj_uri, exc)
            raise RemoteStoreError("Invalid response from server") from exc

    async def attestations(self, wallet_address: str) -> list[AttestationInfo]:
        """On-chain attestations recorded for the wallet's uploads."""
        request = AttestationRequest(user_address=wallet_address)
        result = await self._post(request, AttestationList, path=_ATTESTATIONS_PATH)
        logger.debug(
            "Fetched %d attestations for %s", len(result.attestations), wallet_address
        )
        return result.attestations

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(
        self,
        request: BaseModel,
        response_type: type[BaseModel],
        path: str = _STORJ_PATH,
    ) -> Any:
        """POST one request and parse the response body.

        Raises:
            RemoteStoreError: On transport failure, non-2xx status or an
                unparseable body.
        """
        label = getattr(request, "action", path)
        url = f"{self._base_url}{path}"
        body = request.model_dump(by_alias=True, exclude_none=True)
        headers = {"User-Agent": _USER_AGENT}

        try:
            if self._http_client:
                response = await self._http_client.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Storage request %s failed: %s", label, exc)
            raise RemoteStoreError(str(exc)) from exc

        if not response.is_success:
            raise RemoteStoreError(self._error_message(response))

        try:
            return response_type.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning("Unparseable %s response: %s", label, exc)
            raise RemoteStoreError("Invalid response from server") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return StorjErrorBody.model_validate_json(response.content).error
        except ValidationError:
            return f"HTTP error: {response.status_code}"

    @staticmethod
    def _unwrap(envelope: StorjEnvelope) -> Any:
        if not envelope.success or envelope.result is None:
            raise RemoteStoreError(envelope.error or "Unknown error")
        return envelope.result
