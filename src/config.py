"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Amach Health Sync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage backend ---
    api_base_url: str = Field(
        default="https://app.amach.health",
        validation_alias=AliasChoices("AMACH_API_URL", "AMACH_API_BASE_URL"),
    )
    request_timeout_s: float = 60.0

    # --- Local state ---
    state_file: Path = Path(".amach/sync_state.json")  # last sync date only
    export_path: Path = Path("export.xml")  # Apple Health export.xml

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "AMACH_",
        "populate_by_name": True,
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
