"""
NoteSync — Application Configuration
====================================

What:  Centralized configuration using Pydantic Settings.
How:   Values are read from environment variables (or a .env file), coerced and
       range-checked on import. A singleton `settings` object is exported;
       `create_app()` accepts another instance for tests.

Groups:
    Storage      where the snapshot lives and how writes are retried
    Notes        identifier format and content limits
    Lifecycle    persistence and sweep timers, retention window
    Server       host, port, CORS, logging, rate limiting
"""

from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a development default; production deployments normally
    override STORAGE_ROOT and CORS_ORIGINS.
    """

    # ── Storage ───────────────────────────────────────────────────────────
    # Directory holding the snapshot file; created on startup.
    storage_root: str = Field(default="./data")
    snapshot_filename: str = Field(default="notes.json")

    # Snapshot writes are retried on OSError with exponential backoff + jitter.
    save_retry_attempts: int = Field(default=3, ge=1, le=10)
    save_retry_min_wait: float = Field(default=0.2, ge=0, le=30)
    save_retry_max_wait: float = Field(default=2.0, ge=0, le=120)

    @property
    def snapshot_path(self) -> Path:
        return Path(self.storage_root) / self.snapshot_filename

    # ── Notes ─────────────────────────────────────────────────────────────
    # Ids are fixed-length lowercase alphanumeric tokens, e.g. "ab12cd".
    note_id_length: int = Field(default=6, ge=4, le=64)

    # Upper bound on note content, in characters.
    max_content_length: int = Field(default=1_048_576, ge=1)

    # ── Lifecycle ─────────────────────────────────────────────────────────
    # Safety-net flush; every accepted update is also flushed immediately.
    persist_interval_seconds: float = Field(default=300, gt=0)
    sweep_interval_seconds: float = Field(default=3600, gt=0)
    # Notes untouched for longer than this, with no subscribers, are evicted.
    retention_days: float = Field(default=7, gt=0)
    # A broadcast gives up on a subscriber that has not taken a message in
    # this many seconds and closes it.
    send_timeout_seconds: float = Field(default=5.0, gt=0, le=300)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Comma-separated list of allowed origins.
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000, ge=1024, le=65535)

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize to an upper-case stdlib logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-IP sliding window over mutating HTTP requests (POST).
    rate_limit_requests: int = Field(default=600, ge=10, le=100000)
    rate_limit_window: int = Field(default=60, ge=1, le=86400)  # seconds

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Default instance, used when create_app() is called without an override
settings = Settings()
