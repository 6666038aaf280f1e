"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

import os
import sys
import uuid
from functools import cached_property
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    Settings are validated at startup using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== Job Store =====
    JOB_STORE: Literal["sqlite", "supabase"] = Field(
        default="sqlite",
        description="Backend for the humanize request table (sqlite for single host, supabase for a worker fleet)"
    )

    JOB_DB_PATH: str = Field(
        default="humanize_jobs.db",
        description="SQLite file used when JOB_STORE=sqlite"
    )

    STORAGE_PATH: str | None = Field(
        default=None,
        description="Persistent volume mount. If set, the SQLite file is placed inside it"
    )

    @property
    def job_db_path(self) -> str:
        """Get the SQLite path, using persistent storage if available."""
        if self.STORAGE_PATH:
            return os.path.join(self.STORAGE_PATH, os.path.basename(self.JOB_DB_PATH))
        return self.JOB_DB_PATH

    # ===== Supabase Configuration =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Supabase project URL"
    )

    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        description="Supabase anon/public key (for client-side auth)"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (for server-side operations, bypasses RLS)"
    )

    # ===== External Humanizer =====
    HUMANIZER_API_URL: str = Field(
        default="https://web-production-3db6c.up.railway.app/humanize_text",
        description="Endpoint of the third-party text humanizing service"
    )

    HUMANIZER_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Timeout for a single humanize call; a timeout counts as a failed attempt"
    )

    HUMANIZER_PROBE_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for the diagnostic connectivity probe"
    )

    # ===== Queue Settings =====
    QUEUE_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Processing attempts before a request is marked failed"
    )

    MAX_WORDS_PER_REQUEST: int = Field(
        default=500,
        ge=1,
        description="Largest request accepted by POST /api/humanize/queue"
    )

    # ===== Worker Settings =====
    WORKER_POLL_INTERVAL: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Seconds to sleep when the queue is empty"
    )

    WORKER_MAX_CONSECUTIVE_ERRORS: int = Field(
        default=10,
        ge=1,
        description="Consecutive exceptions before the worker enters a long backoff"
    )

    WORKER_BACKOFF_MULTIPLIER: float = Field(
        default=5.0,
        ge=1,
        description="Long backoff length as a multiple of WORKER_POLL_INTERVAL"
    )

    WORKER_SHUTDOWN_GRACE_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="How long a stopping worker waits for the in-flight request"
    )

    WORKER_ID: str | None = Field(
        default=None,
        description="Worker name used in logs (auto-generated if not set)"
    )

    STALE_PROCESSING_MINUTES: int = Field(
        default=0,
        ge=0,
        description="Requeue requests stuck in processing for longer than this (0 disables recovery)"
    )

    ENABLE_QUEUE_WORKER: bool = Field(
        default=False,
        description="Run a worker inside the web process instead of a separate worker service"
    )

    @field_validator('DEBUG', 'DEV_MODE', 'ENABLE_QUEUE_WORKER', mode='before', check_fields=False)
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (Railway env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    @cached_property
    def worker_id(self) -> str:
        return self.WORKER_ID or f"worker-{uuid.uuid4().hex[:8]}"

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(
        default=True,
        description="Include exception details in 500 responses"
    )

    DEV_MODE: bool = Field(
        default=True,
        description="Enable dev mode: auth bypass for local testing"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    APP_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Base URL for the application"
    )

    # ===== Security Settings =====
    API_KEYS: str | None = Field(
        default=None,
        description="Comma-separated list of admin API keys. If empty/None and DEV_MODE=True, admin auth is bypassed."
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for all (dev only)."
    )

    RATE_LIMIT_PER_MINUTE: int = Field(
        default=60,
        ge=0,
        le=1000,
        description="Max admin API requests per minute per API key (0 = unlimited)"
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Get list of valid API keys."""
        if not self.API_KEYS:
            return []
        return [k.strip() for k in self.API_KEYS.split(",") if k.strip()]

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins.

        Security: In production (DEV_MODE=false), '*' is not allowed.
        Falls back to APP_BASE_URL if no origins specified in production.
        """
        if self.ALLOWED_ORIGINS == "*":
            if self.DEV_MODE:
                return ["*"]
            print(
                "WARNING: ALLOWED_ORIGINS='*' is not allowed in production. "
                f"Using APP_BASE_URL ({self.APP_BASE_URL}) instead.",
                file=sys.stderr
            )
            return [self.APP_BASE_URL]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def auth_required(self) -> bool:
        """Check if admin authentication is required (False in dev mode with no keys)."""
        return bool(self.api_keys_list) or not self.DEV_MODE

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_ANON_KEY is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )


# Global configuration instance
# Import this in other modules: from humanizer.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Job store: {config.JOB_STORE} ({config.job_db_path if config.JOB_STORE == 'sqlite' else config.SUPABASE_URL})")
    print(f"Humanizer: {config.HUMANIZER_API_URL} (timeout {config.HUMANIZER_TIMEOUT_SECONDS}s)")
    print(f"Max attempts: {config.QUEUE_MAX_ATTEMPTS}")
    print(f"Poll interval: {config.WORKER_POLL_INTERVAL}s")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
