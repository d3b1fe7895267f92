"""
Foundation settings for the HBG services.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.requests import HTTPConnection


class HbgSettings(BaseSettings):
    """
    Settings shared by every HBG module.
    Values come from the environment or a local `.env` file and are read once at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # --- Basic Environment ---
    DEBUG: bool = True
    SECRET_KEY: str = ""
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # --- Load options / API Limits ---
    MAX_TAKE: int = 500

    # --- Authentication ---
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 14 * 24 * 60 * 60

    # --- Database Core ---
    DATABASE_URL: str = "sqlite+aiosqlite:///hbg.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    ENABLE_SEEDING: bool = False

    # --- HTTP ---
    ENABLE_CORS: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:4200"]

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    # --- Emailer ---
    SMTP_PORT: int = 587
    SMTP_TIMEOUT: float = 60.0
    DEFAULT_SENDER_ADDRESS: str = ""
    DEFAULT_SENDER_SERVER: str = ""
    DEFAULT_SENDER_PASSCODE: str = ""

    @model_validator(mode="after")
    def validate_security(self) -> "HbgSettings":
        """Ensures production doesn't ship without a secret key."""
        if self.ENVIRONMENT == "production" and not self.SECRET_KEY:
            raise ValueError("SECRET_KEY is mandatory in production mode.")
        return self

    def is_development(self) -> bool:
        return self.DEBUG or self.ENVIRONMENT == "development"


hbg_settings = HbgSettings()


def get_settings(conn: HTTPConnection) -> HbgSettings:
    """
    FastAPI dependency: the settings the running app was built with.

    Apps that never set ``app.state.settings`` get `hbg_settings`.
    """
    return getattr(conn.app.state, "settings", hbg_settings)
