from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PROJECT_NAME: str = "Biblical Counsel"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    # Allow any localhost/127.0.0.1 port (useful for dev tools/proxies)
    CORS_ORIGIN_REGEX: str = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    # Gemini text completion. The key may stay blank when the host injects it.
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"

    # Values supplied by the hosting environment
    APP_ID: str = "default-app-id"
    STORE_CONFIG: str = "{}"  # JSON blob, e.g. {"projectId": "..."}
    INITIAL_AUTH_TOKEN: Optional[str] = None

    # Session history store: "none" keeps nothing, "sql" or "firestore" persist
    STORE_BACKEND: str = "none"
    DATABASE_URL: str = "sqlite:///./counsel.db"
    GOOGLE_APPLICATION_CREDENTIALS: str = ""

    # Anonymous identity tokens
    SECRET_KEY: str = "dev_secret_key_change_in_production"
    ALGORITHM: str = "HS256"
    IDENTITY_TOKEN_EXPIRE_DAYS: int = 365
    IDENTITY_COOKIE_NAME: str = "counsel_identity"

    # Per-browser sessions kept in memory; the least recently used go first
    MAX_SESSIONS: int = 1000
    SESSION_IDLE_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()

    # The development secret must never sign production identities
    if settings.ENVIRONMENT == "production" and settings.SECRET_KEY == "dev_secret_key_change_in_production":
        raise ValueError("SECRET_KEY must be set in production environment")

    return settings
