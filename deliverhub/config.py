"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("DH_ENV", "dev").lower()

# Logical buckets of the object store
PAYMENT_PROOFS_BUCKET = "payment-proofs"
DELIVERABLES_BUCKET = "deliverables"


class Settings(BaseSettings):
    """Environment configuration for the DeliverHub backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///deliverhub.db"
    SECRET_KEY: str = "change-me"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://deliverhub.app",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    ALLOW_DB_CREATE_ALL: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Object storage ---------------------------------------------------
    STORAGE_ROOT: str = "./storage"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    SIGNED_URL_TTL_SECONDS: int = 60

    # --- Upload constraints -----------------------------------------------
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # --- Watermarked previews ---------------------------------------------
    WATERMARK_DEFAULT_TEXT: str = "PREVIEW"
    PREVIEW_MAX_DIMENSION: int = 1200
    PREVIEW_MAX_SOURCE_PIXELS: int = 40_000_000

    # --- Rate limits (per actor) ------------------------------------------
    PROOF_UPLOAD_RATE_LIMIT: int = 5
    PROOF_UPLOAD_RATE_WINDOW_SECONDS: int = 600
    DELIVERABLE_UPLOAD_RATE_LIMIT: int = 20
    DELIVERABLE_UPLOAD_RATE_WINDOW_SECONDS: int = 3600
    REVISION_REQUEST_RATE_LIMIT: int = 10
    REVISION_REQUEST_RATE_WINDOW_SECONDS: int = 3600

    # --- Scheduler / orphan sweep -----------------------------------------
    SCHEDULER_ENABLED: bool = False
    ORPHAN_SWEEP_INTERVAL_MINUTES: int = 60
    ORPHAN_GRACE_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("PUBLIC_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        """Normalise the public base URL so paths can be appended safely."""

        return value.rstrip("/")

    @field_validator(
        "SIGNED_URL_TTL_SECONDS", "MAX_UPLOAD_BYTES", "PREVIEW_MAX_DIMENSION", "PREVIEW_MAX_SOURCE_PIXELS"
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class AppInfo(BaseModel):
    name: str = "deliverhub-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "PAYMENT_PROOFS_BUCKET",
    "DELIVERABLES_BUCKET",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
