from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Flashrooms"
    database_url: str = f"sqlite+aiosqlite:///{DATA_DIR / 'flashrooms.db'}"
    run_ttl_minutes: int = 120
    run_code_length: int = 6
    answer_max_attempts: int = 3
    image_base_url: str = ""  # prefix for stored image keys; empty serves keys as-is
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    debug: bool = False

    model_config = {"env_prefix": "FLASHROOMS_", "env_file": ".env"}


settings = Settings()
