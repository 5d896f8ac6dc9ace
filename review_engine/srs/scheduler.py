"""Scheduling function backed by the ``fsrs`` package.

The memory model (stability, difficulty, retrievability) is computed by
``fsrs.Scheduler``. This module translates between stored card states and
``fsrs.Card`` and keeps the bookkeeping fields that ``fsrs`` does not track
itself: reps, lapses, elapsed days and scheduled days.

Key concepts:
- A scheduler is built per user from ``SchedulerSettings`` (retention,
  maximum interval, optional personalised weights). There is no shared
  process-wide scheduler.
- ``repeat(card, now)`` returns the candidate outcome for every rating;
  callers apply only the outcome of the rating that was submitted.
- Datetimes are naive UTC everywhere except at the ``fsrs`` boundary,
  which requires timezone-aware UTC values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from enum import IntEnum, StrEnum
from typing import Any, Protocol

import fsrs

from review_engine.config import settings
from review_engine.errors import ValidationError

SECONDS_PER_DAY = 86400


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class CardStatus(StrEnum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


_FSRS_STATES = {
    CardStatus.LEARNING: fsrs.State.Learning,
    CardStatus.REVIEW: fsrs.State.Review,
    CardStatus.RELEARNING: fsrs.State.Relearning,
}
_STATUSES = {value: key for key, value in _FSRS_STATES.items()}


def parse_rating(value: Any) -> Rating:
    """Convert a raw rating to ``Rating``, raising ``ValidationError`` when out of range."""
    try:
        return Rating(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid rating: {value!r}. Must be 1-4.") from exc


@dataclass
class SchedulerCard:
    """The memory state of one card as seen by the scheduling function."""

    state: str
    stability: float
    difficulty: float
    due: datetime
    reps: int = 0
    lapses: int = 0
    learning_steps: int = 0
    elapsed_days: float = 0.0
    scheduled_days: float = 0.0
    last_review: datetime | None = None

    @classmethod
    def from_state(cls, row: Any) -> SchedulerCard:
        """Build from a ``CardState`` row (or anything with the same attributes)."""
        return cls(
            state=row.state,
            stability=row.stability,
            difficulty=row.difficulty,
            due=row.due,
            reps=row.reps,
            lapses=row.lapses,
            learning_steps=row.learning_steps,
            elapsed_days=row.elapsed_days,
            scheduled_days=row.scheduled_days,
            last_review=row.last_review,
        )

    def as_fields(self) -> dict[str, Any]:
        """Return the values as a dict keyed by ``CardState`` column name."""
        return asdict(self)


@dataclass
class SchedulerSettings:
    """Per-user scheduler configuration."""

    desired_retention: float = settings.desired_retention
    max_review_interval: int = settings.max_review_interval
    weights: list[float] | None = None
    learning_steps_minutes: list[float] = field(
        default_factory=lambda: list(settings.learning_steps_minutes)
    )
    relearning_steps_minutes: list[float] = field(
        default_factory=lambda: list(settings.relearning_steps_minutes)
    )
    enable_fuzzing: bool = settings.enable_fuzzing


class Scheduler(Protocol):
    """The pluggable scheduling function consumed by the orchestrator."""

    def new_card(self, now: datetime) -> SchedulerCard: ...

    def repeat(self, card: SchedulerCard, now: datetime) -> dict[Rating, SchedulerCard]: ...

    def schedule(self, card: SchedulerCard, rating: Rating, now: datetime) -> SchedulerCard: ...

    def retrievability(self, card: SchedulerCard, now: datetime) -> float: ...


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _as_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


class FSRSScheduler:
    """``Scheduler`` implementation wrapping ``fsrs.Scheduler``."""

    def __init__(self, config: SchedulerSettings | None = None) -> None:
        """Build the underlying ``fsrs`` scheduler from per-user settings."""
        self.config = config or SchedulerSettings()
        kwargs: dict[str, Any] = {
            "desired_retention": self.config.desired_retention,
            "learning_steps": tuple(
                timedelta(minutes=m) for m in self.config.learning_steps_minutes
            ),
            "relearning_steps": tuple(
                timedelta(minutes=m) for m in self.config.relearning_steps_minutes
            ),
            "maximum_interval": self.config.max_review_interval,
            "enable_fuzzing": self.config.enable_fuzzing,
        }
        if self.config.weights:
            kwargs["parameters"] = tuple(self.config.weights)
        try:
            self._fsrs = fsrs.Scheduler(**kwargs)
        except ValueError as exc:
            raise ValidationError(f"Invalid scheduler settings: {exc}") from exc

    def new_card(self, now: datetime) -> SchedulerCard:
        """Return the empty state of a never-reviewed card."""
        return SchedulerCard(
            state=CardStatus.NEW.value,
            stability=0.0,
            difficulty=0.0,
            due=_as_naive(now),
        )

    def repeat(self, card: SchedulerCard, now: datetime) -> dict[Rating, SchedulerCard]:
        """Return the outcome of reviewing ``card`` at ``now`` for every rating."""
        return {rating: self.schedule(card, rating, now) for rating in Rating}

    def schedule(self, card: SchedulerCard, rating: Rating, now: datetime) -> SchedulerCard:
        """Return the state ``card`` moves to when rated ``rating`` at ``now``."""
        rating = parse_rating(rating)
        now = _as_naive(now)
        reviewed, _ = self._fsrs.review_card(
            self._to_fsrs(card, now),
            fsrs.Rating(int(rating)),
            review_datetime=_as_utc(now),
        )
        due = _as_naive(reviewed.due)

        lapses = card.lapses
        if rating == Rating.AGAIN and card.state == CardStatus.REVIEW:
            lapses += 1
        elapsed = _days_between(card.last_review, now) if card.last_review else 0.0

        return SchedulerCard(
            state=_STATUSES[reviewed.state].value,
            stability=reviewed.stability,
            difficulty=reviewed.difficulty,
            due=due,
            reps=card.reps + 1,
            lapses=lapses,
            learning_steps=reviewed.step or 0,
            elapsed_days=max(0.0, elapsed),
            scheduled_days=max(0.0, _days_between(now, due)),
            last_review=now,
        )

    def retrievability(self, card: SchedulerCard, now: datetime) -> float:
        """Return the probability of recalling ``card`` at ``now``."""
        if card.state == CardStatus.NEW:
            return 0.0
        return self._fsrs.get_card_retrievability(
            self._to_fsrs(card, _as_naive(now)), current_datetime=_as_utc(now)
        )

    def _to_fsrs(self, card: SchedulerCard, now: datetime) -> fsrs.Card:
        # card_id is irrelevant to scheduling; passing it avoids fsrs generating one.
        if card.state == CardStatus.NEW:
            return fsrs.Card(card_id=0, state=fsrs.State.Learning, step=0, due=_as_utc(now))
        status = CardStatus(card.state)
        return fsrs.Card(
            card_id=0,
            state=_FSRS_STATES[status],
            step=None if status == CardStatus.REVIEW else card.learning_steps,
            stability=card.stability,
            difficulty=card.difficulty,
            due=_as_utc(card.due),
            last_review=_as_utc(card.last_review) if card.last_review else None,
        )
