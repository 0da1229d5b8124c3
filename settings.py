# settings.py
from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_ENVS = ("", "dev", "local", "test")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"
    APP_VERSION: str = "1.0.0"

    # -----------------------
    # IOU store
    # -----------------------
    IOU_STORE_BACKEND: Literal["memory", "postgres"] = "memory"
    DATABASE_URL: str = ""
    DB_POOL_MAX: int = Field(default=10, ge=1)

    # "0x" + 40 hex digits when strict, any non-empty hex run otherwise
    STRICT_ADDRESSES: bool = False

    # -----------------------
    # Admin
    # -----------------------
    ADMIN_API_KEY: str = ""

    # -----------------------
    # Settlement (relief fund contract)
    # -----------------------
    SETTLEMENT_MODE: Literal["sandbox", "real"] = "sandbox"
    RPC_URL: str = "http://127.0.0.1:8545"
    CONTRACT_ADDRESS: str = ""
    RELAYER_PRIVATE_KEY: str = ""
    CHAIN_ID: int | None = None

    SETTLEMENT_TIMEOUT_S: float = 60.0
    SETTLEMENT_MAX_WORKERS: int = Field(default=4, ge=1)
    SETTLEMENT_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    # how long one settlement run holds a synced IOU; must outlast SETTLEMENT_TIMEOUT_S
    SETTLEMENT_LEASE_SECONDS: int = Field(default=300, ge=1)

    # what happens to a synced IOU when the chain definitively rejects it
    # (timeouts / network errors always leave it synced)
    SETTLEMENT_FAILURE_POLICY: Literal["keep_synced", "mark_failed", "revert_pending"] = "keep_synced"

    # inline: settle before responding
    # background: settle after responding
    # client: the merchant wallet relays and calls mark-settled itself
    BULK_SYNC_MODE: Literal["inline", "background", "client"] = "inline"

    # -----------------------
    # Sweep worker
    # -----------------------
    SWEEP_POLL_SECONDS: int = Field(default=30, ge=1)
    SWEEP_BATCH_SIZE: int = Field(default=50, ge=1)


settings = Settings()


def is_dev_env() -> bool:
    return (settings.ENV or "").strip().lower() in DEV_ENVS


def validate_env_settings() -> None:
    """
    Fail fast outside dev when required configuration is missing.
    Raises RuntimeError naming every missing variable.
    """
    if is_dev_env():
        return

    missing: list[str] = []

    if settings.IOU_STORE_BACKEND == "postgres" and not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")

    if settings.SETTLEMENT_MODE == "real":
        for name in ("RPC_URL", "CONTRACT_ADDRESS", "RELAYER_PRIVATE_KEY"):
            if not (getattr(settings, name, "") or "").strip():
                missing.append(name)

    if not (settings.ADMIN_API_KEY or "").strip():
        missing.append("ADMIN_API_KEY")

    if missing:
        raise RuntimeError(
            f"Missing required settings for ENV={settings.ENV}: " + ", ".join(missing)
        )
