"""Configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Telegram reminder transport
    telegram_bot_token: str = ""

    # Document store
    store_backend: str = "memory"  # "memory" or "lake"
    age_recipient: str = ""
    age_identity: str = ""
    data_lake_path: Path = Path("data/lake")
    data_audit_path: Path = Path("data/audit")

    # Reminder scheduler
    reminder_cadence_minutes: int = 2
    schedule_enabled: bool = True

    # Locale (habit day keys are local wall-clock days)
    timezone: str = "UTC"

    # App
    api_key: str = ""
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
