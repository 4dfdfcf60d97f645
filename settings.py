# settings.py
from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # Runtime
    # -----------------------
    ENV: Literal["dev", "test", "staging", "prod"] = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = ""
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_STATEMENT_TIMEOUT_MS: int = Field(default=5000, ge=100)

    # -----------------------
    # Audit log (NDJSON, append-only)
    # -----------------------
    AUDIT_LOG_PATH: str = "data/audit.jsonl"

    # -----------------------
    # Money
    # -----------------------
    CURRENCY: str = "CAD"
    # card processing cost model: percent of final price + fixed fee per transaction
    PROCESSING_FEE_PERCENT: Decimal = Decimal("0.029")
    PROCESSING_FEE_FIXED: Decimal = Decimal("0.30")

    # -----------------------
    # Payouts
    # -----------------------
    BATCH_MAX_JOBS: int = Field(default=500, ge=1)
    DEFAULT_PAYMENT_SCHEDULE: str = "weekly"
    READY_WORKER_BATCH_SIZE: int = Field(default=100, ge=1)
    READY_WORKER_POLL_SECONDS: int = Field(default=30, ge=1)


settings = Settings()


def validate_env_settings() -> None:
    """
    Fail fast outside dev/test when required settings are missing.
    Collects every problem so one deploy attempt shows them all.
    """
    env = (settings.ENV or "dev").strip().lower()
    if env in {"dev", "test"}:
        return

    missing: list[str] = []
    if not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")
    if not (settings.AUDIT_LOG_PATH or "").strip():
        missing.append("AUDIT_LOG_PATH")

    if missing:
        raise RuntimeError(f"Missing required settings for ENV={env}: {', '.join(missing)}")
