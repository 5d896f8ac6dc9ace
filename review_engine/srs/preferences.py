"""Per-user scheduler preferences with configured defaults."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.config import settings, utcnow
from review_engine.errors import NotFoundError, ValidationError
from review_engine.models.user import User
from review_engine.srs.scheduler import FSRSScheduler, SchedulerSettings

logger = logging.getLogger(__name__)


@dataclass
class UserPreferences:
    """A user's effective scheduler preferences (defaults already applied)."""

    desired_retention: float
    max_review_interval: int
    new_cards_per_day: int
    new_cards_ramp_up: bool
    weights: list[float] | None = None
    weights_updated_at: datetime | None = None

    def scheduler_settings(self) -> SchedulerSettings:
        """Return the settings used to build this user's scheduler."""
        return SchedulerSettings(
            desired_retention=self.desired_retention,
            max_review_interval=self.max_review_interval,
            weights=self.weights,
        )

    def scheduler(self) -> FSRSScheduler:
        """Build the scheduling function for this user."""
        return FSRSScheduler(self.scheduler_settings())


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def get_user_preferences(db: AsyncSession, user_id: int) -> UserPreferences:
    """Load a user's preferences, filling null columns with the configured defaults."""
    user = await _get_user(db, user_id)
    return UserPreferences(
        desired_retention=(
            user.desired_retention
            if user.desired_retention is not None
            else settings.desired_retention
        ),
        max_review_interval=user.max_review_interval or settings.max_review_interval,
        new_cards_per_day=(
            user.new_cards_per_day
            if user.new_cards_per_day is not None
            else settings.new_cards_per_day
        ),
        new_cards_ramp_up=bool(user.new_cards_ramp_up),
        weights=user.fsrs_weights,
        weights_updated_at=user.fsrs_weights_updated_at,
    )


async def get_scheduler_settings(db: AsyncSession, user_id: int) -> SchedulerSettings:
    """Return the scheduler configuration for a user."""
    preferences = await get_user_preferences(db, user_id)
    return preferences.scheduler_settings()


async def update_user_preferences(
    db: AsyncSession,
    user_id: int,
    desired_retention: float | None = None,
    max_review_interval: int | None = None,
    new_cards_per_day: int | None = None,
    new_cards_ramp_up: bool | None = None,
) -> UserPreferences:
    """Validate and store preference changes. ``None`` leaves a value unchanged."""
    if desired_retention is not None and not 0 < desired_retention < 1:
        raise ValidationError("desired_retention must be between 0 and 1 (exclusive)")
    if max_review_interval is not None and max_review_interval < 1:
        raise ValidationError("max_review_interval must be at least 1 day")
    if new_cards_per_day is not None and new_cards_per_day < 0:
        raise ValidationError("new_cards_per_day must not be negative")

    user = await _get_user(db, user_id)
    if desired_retention is not None:
        user.desired_retention = desired_retention
    if max_review_interval is not None:
        user.max_review_interval = max_review_interval
    if new_cards_per_day is not None:
        user.new_cards_per_day = new_cards_per_day
    if new_cards_ramp_up is not None:
        user.new_cards_ramp_up = new_cards_ramp_up
    await db.commit()

    logger.info("Updated scheduler preferences for user %d", user_id)
    return await get_user_preferences(db, user_id)


async def store_weights(db: AsyncSession, user_id: int, weights: list[float]) -> None:
    """Persist optimizer-fitted weights for a user."""
    user = await _get_user(db, user_id)
    user.fsrs_weights = list(weights)
    user.fsrs_weights_updated_at = utcnow()
    await db.commit()
