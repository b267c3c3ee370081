"""Centralized settings for the notification sync engine.

Uses pydantic-settings to load from environment variables (prefixed
NOTIFY_) with defaults matching notification_sync.config.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings

from src.notification_sync import config as defaults


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # --- Notification service ---
    base_url: str = defaults.DEFAULT_BASE_URL
    user_id: str = defaults.DEFAULT_USER_ID
    offline_mode: bool = False  # Run on synthetic data, never touch the service
    request_timeout: float = defaults.DEFAULT_REQUEST_TIMEOUT

    # --- Mutation confirmation ---
    confirm_timeout: float = defaults.DEFAULT_CONFIRM_TIMEOUT
    confirm_max_retries: int = defaults.DEFAULT_CONFIRM_MAX_RETRIES
    confirm_base_delay: float = defaults.DEFAULT_CONFIRM_BASE_DELAY
    confirm_max_delay: float = defaults.DEFAULT_CONFIRM_MAX_DELAY
    confirm_jitter: float = defaults.DEFAULT_CONFIRM_JITTER

    # --- Push channel ---
    reconnect_base_delay: float = defaults.DEFAULT_RECONNECT_BASE_DELAY
    reconnect_max_delay: float = defaults.DEFAULT_RECONNECT_MAX_DELAY
    reconnect_max_retries: int = defaults.DEFAULT_RECONNECT_MAX_RETRIES
    reconnect_jitter: float = defaults.DEFAULT_RECONNECT_JITTER

    # --- Fallback feed ---
    fallback_interval: float = defaults.DEFAULT_FALLBACK_INTERVAL

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "console"

    model_config = {
        "env_prefix": "NOTIFY_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
