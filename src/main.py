"""Amach Health Sync API: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.healthsync.adapters import get_source
from src.healthsync.config_loader import get_sync_config
from src.healthsync.sync.identity import WalletSession
from src.healthsync.sync.orchestrator import SyncOrchestrator
from src.healthsync.sync.state_store import FileSyncStateStore
from src.routers import health, sync
from src.services.storj import StorjClient

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("amach")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Builds the sync collaborators once and shares one httpx client with the
    storage backend for the life of the process.
    """
    settings = get_settings()
    logger.info(
        "Starting %s v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )

    http_client = httpx.AsyncClient(timeout=settings.request_timeout_s)
    source = get_source("apple_health_export", path=settings.export_path)
    storj_client = StorjClient(settings=settings, http_client=http_client)
    session = WalletSession()

    app.state.sample_source = source
    app.state.storj_client = storj_client
    app.state.wallet_session = session
    app.state.orchestrator = SyncOrchestrator(
        source=source,
        remote_store=storj_client,
        key_provider=session,
        state_store=FileSyncStateStore(settings.state_file),
        config=get_sync_config(),
    )
    if not source.is_available():
        logger.warning("Apple Health export not found at %s", settings.export_path)

    yield

    await http_client.aclose()
    logger.info("%s shut down", settings.app_name)


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Amach Health Sync API",
        description=(
            "Aggregates personal health data into daily summaries, scores its "
            "completeness and uploads it to encrypted storage."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside the v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)

    return app


app = create_app()
