"""
hubcomm – Application configuration.
Reads environment variables from a .env file via pydantic-settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── App ──
    APP_NAME: str = "hubcomm"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ── Database ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./hubcomm.db"

    # ── JWT (identity is issued elsewhere, we only verify) ──
    SECRET_KEY: str = "change-me-to-a-random-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ── Messages ──
    MESSAGE_HISTORY_LIMIT: int = 50
    MESSAGE_GROUP_WINDOW_SECONDS: int = 300

    # ── Broadcasts ──
    BROADCAST_LIST_LIMIT: int = 50

    # ── Typing presence ──
    TYPING_IDLE_SECONDS: float = 3.0
    TYPING_STALE_SECONDS: float = 5.0


settings = Settings()
