from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def start_of_utc_day(now: datetime) -> datetime:
    """Return midnight (UTC) of the day containing ``now``."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def next_utc_midnight(now: datetime) -> datetime:
    """Return the first UTC midnight strictly after ``now``."""
    return start_of_utc_day(now) + timedelta(days=1)


class Settings(BaseSettings):
    app_name: str = "Review Engine"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'review_engine.db'}"
    desired_retention: float = 0.9
    max_review_interval: int = 36500  # days
    learning_steps_minutes: list[float] = [1.0, 10.0]
    relearning_steps_minutes: list[float] = [10.0]
    enable_fuzzing: bool = True
    new_cards_per_day: int = 20
    quick_review_limit: int = 20
    min_items_for_optimization: int = 50
    review_write_attempts: int = 3
    debug: bool = False

    model_config = {"env_prefix": "REVIEW_ENGINE_", "env_file": ".env"}


settings = Settings()
