"""Wallet identity and encryption key access.

The key itself is derived elsewhere (wallet signature); this module only
holds the result for the current session and hands it to the orchestrator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger("amach.healthsync.sync.identity")


@dataclass(frozen=True)
class WalletEncryptionKey:
    """Symmetric key derived from a wallet signature.

    Attributes:
        wallet_address: Address of the connected wallet.
        encryption_key: Hex-encoded key material.
        signature:      Signature the key was derived from.
        timestamp:      Unix time the signature was produced.
    """

    wallet_address: str
    encryption_key: str
    signature: str
    timestamp: int

    def to_json(self) -> dict:
        return {
            "walletAddress": self.wallet_address,
            "encryptionKey": self.encryption_key,
            "signature": self.signature,
            "timestamp": self.timestamp,
        }


class KeyProvider(Protocol):
    def current_key(self) -> WalletEncryptionKey | None:
        """Return the usable key, or None when no identity is connected."""


class WalletSession:
    """In-memory holder of the connected wallet's key."""

    def __init__(self, key: WalletEncryptionKey | None = None) -> None:
        self._key = key

    @property
    def is_connected(self) -> bool:
        return self._key is not None

    @property
    def address(self) -> str | None:
        return self._key.wallet_address if self._key else None

    def connect(self, key: WalletEncryptionKey) -> None:
        self._key = key
        logger.info("Wallet connected: %s", key.wallet_address)

    def disconnect(self) -> None:
        if self._key is not None:
            logger.info("Wallet disconnected: %s", self._key.wallet_address)
        self._key = None

    def current_key(self) -> WalletEncryptionKey | None:
        return self._key
