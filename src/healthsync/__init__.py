"""Amach health data sync pipeline.

This package turns raw health samples into daily summaries, scores how
complete they are and drives the encrypted upload of the result.

Subpackages:
    adapters/  - Sample source adapters (Apple Health export)
    sync/      - Sync orchestrator, wallet identity, last-sync persistence

Core modules:
    metrics        - Tracked metric kinds and their aggregation policy table
    base           - SampleSource ABC and canonical data models
    fetch          - Per-metric fetch fan-out with progress events
    aggregation    - Daily aggregation engine (including sleep stages)
    completeness   - Completeness score and attestation tier
    manifest       - Upload manifest and payload builder
    dashboard      - Today snapshot and daily trends
    config_loader  - Load/validate sync_config.yaml
"""

from src.healthsync.base import (
    DailySummary,
    DataPoint,
    HealthSyncError,
    MetricSummary,
    SampleSource,
    SleepSummary,
)
from src.healthsync.config_loader import SyncConfig, get_sync_config

__all__ = [
    "SampleSource",
    "DataPoint",
    "MetricSummary",
    "SleepSummary",
    "DailySummary",
    "HealthSyncError",
    "SyncConfig",
    "get_sync_config",
]
