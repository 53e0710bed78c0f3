"""Contract of the remote encrypted store, as seen by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.healthsync.manifest import Payload
    from src.healthsync.sync.identity import WalletEncryptionKey


@dataclass(frozen=True)
class StoreResult:
    """Where a stored payload ended up.

    Attributes:
        storj_uri:    Content-addressed URI of the stored object.
        content_hash: Hash of the encrypted content.
        size:         Stored size in bytes, when reported.
    """

    storj_uri: str
    content_hash: str
    size: int | None = None


class RemoteStore(Protocol):
    async def store(
        self,
        payload: "Payload",
        key: "WalletEncryptionKey",
        metadata: dict[str, str],
    ) -> StoreResult:
        """Encrypt and store a payload.

        Raises:
            RemoteStoreError: With the backend's message on failure.
        """
