"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "teralux-gateway"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARN | ERROR
    CORS_ORIGINS: str = "*"  # comma-separated

    # ── Security ─────────────────────────────────────────
    API_KEY: str = ""  # X-API-KEY for the token endpoint

    # ── Tuya Cloud ───────────────────────────────────────
    TUYA_CLIENT_ID: str = ""
    TUYA_ACCESS_SECRET: str = ""
    TUYA_BASE_URL: str = "https://openapi.tuyaus.com"
    TUYA_USER_ID: str = ""  # Overrides the uid returned with the token
    TUYA_API_TIMEOUT: int = 30  # HTTP timeout in seconds
    TUYA_TOKEN_CACHE_ENABLED: bool = True

    # ── Local store ──────────────────────────────────────
    CACHE_DB_PATH: str = "./data/teralux.db"
    CACHE_TTL_SECONDS: int = 3600  # TTL of the "cache:" namespace

    # ── Device list ──────────────────────────────────────
    GET_ALL_DEVICES_RESPONSE_TYPE: int = 0  # 0 nested | 1 flat | 2 merged

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
