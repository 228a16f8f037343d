from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    APP_ENV: str = "dev"

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./storefront.db"
    # Schema holding the storefront tables (leave unset for SQLite)
    DB_SCHEMA: Optional[str] = None

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Identity / password handling
    SESSION_TTL_SECONDS: int = 30 * 24 * 3600
    PASSWORD_HASH_TIME_COST: int = 3
    PASSWORD_MIN_LENGTH: int = 6

    # When enabled, activating an unknown theme id fails with 404 instead of
    # leaving the store without an active theme
    THEME_ACTIVATION_REQUIRE_EXISTING: bool = False

    # WhatsApp Cloud API
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v21.0"
    WHATSAPP_PHONE_NUMBER_ID: str = ""
    WHATSAPP_ACCESS_TOKEN: str = ""
    WHATSAPP_VERIFY_TOKEN: str = ""
    # When set, webhook deliveries must carry a valid X-Hub-Signature-256
    WHATSAPP_APP_SECRET: str = ""
    WHATSAPP_SENDER_NAME: str = "Storefront"
    WHATSAPP_TIMEOUT_SECONDS: float = 10.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()
