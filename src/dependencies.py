"""Shared FastAPI dependencies injected into route handlers.

The sync collaborators are built once in the app lifespan and kept on
``app.state``; routes reach them through these providers so tests can swap
them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.healthsync.base import SampleSource
from src.healthsync.sync.identity import WalletSession
from src.healthsync.sync.orchestrator import SyncOrchestrator
from src.services.storj import StorjClient


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Sync service is not initialized")
    return value


async def get_orchestrator(request: Request) -> SyncOrchestrator:
    return _from_state(request, "orchestrator")


async def get_wallet_session(request: Request) -> WalletSession:
    return _from_state(request, "wallet_session")


async def get_sample_source(request: Request) -> SampleSource:
    return _from_state(request, "sample_source")


async def get_storj_client(request: Request) -> StorjClient:
    return _from_state(request, "storj_client")


# Annotated shortcuts for route signatures
Orchestrator = Annotated[SyncOrchestrator, Depends(get_orchestrator)]
Session = Annotated[WalletSession, Depends(get_wallet_session)]
Source = Annotated[SampleSource, Depends(get_sample_source)]
Storj = Annotated[StorjClient, Depends(get_storj_client)]
AppSettings = Annotated[Settings, Depends(get_settings)]
