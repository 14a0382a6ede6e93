from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TAGUE_", extra="ignore")

    allowed_hosts: str = "localhost,127.0.0.1,testserver"
    cors_allowed_origins: str = "http://localhost:8081,http://127.0.0.1:8081"
    log_json: bool = False
    log_level: str = "INFO"
    trust_proxy_headers: bool = False

    db_url: str = "sqlite:///./artifacts/tague.db"
    # Local/dev convenience: create the documents table on startup instead of
    # requiring `alembic upgrade head`.
    auto_create_schema: bool = False

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "tague-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    # Document store: optimistic transactions re-run on version conflict,
    # and store calls that fail with an I/O error are retried a bounded
    # number of times before the engine gives up.
    store_tx_max_attempts: int = 5
    store_io_max_attempts: int = 3
    store_retry_backoff_ms: int = 25

    notifications_page_limit: int = 50
    bookmarks_page_limit: int = 500

    # Per-process, in-memory (same as the other guardrails).
    rate_limit_enabled: bool = True
    rate_limit_follow_per_minute: int = 30
    rate_limit_follow_per_hour: int = 500
    rate_limit_follow_per_minute_ip: int = 120
    rate_limit_follow_per_hour_ip: int = 2000

    @field_validator("store_tx_max_attempts", "store_io_max_attempts")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("attempt budgets must be >= 1")
        return int(v)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        raw = str(v or "").strip().upper()
        if raw not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"TAGUE_LOG_LEVEL must be a logging level name, got {v!r}")
        return raw
