"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import logging
from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """CineGen orchestration settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "CineGen"
    DEBUG: bool = False

    # --- Provider config store ---
    CONFIG_STORE: str = "sql"  # sql | memory
    SEED_DEFAULT_CONFIGS: bool = True

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "cinegen"
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def DATABASE_URL(self) -> str:
        """Async MySQL connection string using asyncmy driver."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Explicit fallback when no provider is configured ---
    FALLBACK_PROVIDER: str = "doubao"
    FALLBACK_API_KEY: str = ""

    # --- Rate-limit backoff ---
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 2.0

    # --- Polling overrides: "kling=2:90,sora=1:300" (interval seconds : attempts) ---
    POLL_OVERRIDES: str = ""

    # --- Outbound HTTP ---
    HTTP_TIMEOUT: float = 120.0

    # --- Artifact persistence ---
    FILE_UPLOAD_SERVICE_URL: str = ""
    FILE_ACCESS_DOMAIN: str = ""

    # --- N-up grid composition ---
    GRID_COMPOSITOR: str = "model"  # model | pillow

    # --- Caller-side batch throttle ---
    BATCH_ITEM_DELAY: float = 2.5

    def poll_overrides(self) -> dict[str, tuple[float, int]]:
        """Parse POLL_OVERRIDES into {provider: (interval, max_attempts)}."""
        overrides: dict[str, tuple[float, int]] = {}
        for item in self.POLL_OVERRIDES.split(","):
            item = item.strip()
            if not item or "=" not in item:
                continue
            name, _, spec = item.partition("=")
            interval, _, attempts = spec.partition(":")
            try:
                overrides[name.strip()] = (float(interval), int(attempts))
            except ValueError:
                logger.warning("Ignoring malformed POLL_OVERRIDES entry: %s", item)
        return overrides

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
