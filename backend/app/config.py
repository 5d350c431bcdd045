from __future__ import annotations
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    birdeye_api_key: str = ""
    helius_api_key: str = ""

    frontend_url: str = "http://localhost:3000"
    extra_cors_origins: str = ""  # comma-separated additional origins for production

    # Source adapter settings
    source_timeout_seconds: float = 12.0
    source_backoff_step_seconds: float = 1.0  # added per consecutive failure
    source_max_backoff_seconds: float = 30.0
    dexscreener_min_interval: float = 0.2
    helius_min_interval: float = 0.15
    birdeye_min_interval: float = 0.5
    pumpfun_min_interval: float = 0.3

    # Feed settings
    feed_stale_seconds: float = 8.0
    feed_refresh_interval_seconds: int = 0  # 0 = refresh on read only

    # Pre-pump engine settings
    max_tx_history: int = 500
    retention_seconds: int = 7200  # 2 hours
    sweep_interval_seconds: int = 60

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
