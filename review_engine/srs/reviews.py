"""Review orchestrator.

Applies one rating to one item: loads the card state, asks the scheduling
function for the outcome, writes the new state atomically and appends a
review log entry carrying the full pre-review snapshot.

The card state write is the durable source of truth. It is guarded by the
unique (user, item) key for inserts and by a version compare-and-swap for
updates; a lost race reloads and recomputes. The log entry is written after
the state commit and a failure there is reported without undoing the review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from review_engine.config import settings, utcnow
from review_engine.database import dialect_insert
from review_engine.errors import CardStateConflict, NotFoundError, PersistenceError, ValidationError
from review_engine.models.card_state import CardState
from review_engine.models.item import Item
from review_engine.models.review_log import SNAPSHOT_FIELDS, ReviewLog
from review_engine.srs.preferences import get_user_preferences
from review_engine.srs.scheduler import Rating, Scheduler, SchedulerCard, parse_rating

logger = logging.getLogger(__name__)

REVIEW_MODES = ("quiz", "flashcard")


@dataclass
class CounterIncrements:
    correct: int = 0
    incorrect: int = 0
    idk: int = 0


def counter_increments(rating: Rating, was_correct: bool | None) -> CounterIncrements:
    """Return which answer counter a review bumps.

    An explicit "don't know" (Again with no correctness recorded) counts as
    idk; Again with ``was_correct=False`` is an incorrect guess.
    """
    return CounterIncrements(
        correct=1 if was_correct is True else 0,
        incorrect=1 if was_correct is False else 0,
        idk=1 if rating == Rating.AGAIN and was_correct is None else 0,
    )


def was_correct_for_rating(rating: Rating) -> bool | None:
    """Derive correctness for a self-graded flashcard review."""
    rating = parse_rating(rating)
    if rating == Rating.AGAIN:
        return None
    return rating != Rating.HARD


@dataclass
class ReviewOutcome:
    """The result of applying a review."""

    card_state_id: int
    card: SchedulerCard
    times_correct: int
    times_incorrect: int
    times_idk: int
    log_written: bool


@dataclass
class _CommittedState:
    card_state_id: int
    snapshot: dict[str, Any]
    card: SchedulerCard
    times_correct: int
    times_incorrect: int
    times_idk: int


def _snapshot(existing: CardState | None) -> dict[str, Any]:
    if existing is None:
        return {before: None for before in SNAPSHOT_FIELDS}
    return {before: getattr(existing, column) for before, column in SNAPSHOT_FIELDS.items()}


async def apply_review(
    db: AsyncSession,
    user_id: int,
    item_id: int,
    rating: int,
    mode: str = "quiz",
    was_correct: bool | None = None,
    answer_time_ms: int | None = None,
    scheduler: Scheduler | None = None,
    now: datetime | None = None,
) -> ReviewOutcome:
    """Apply one rating to one item for a user.

    Args:
        db: Database session.
        user_id: The reviewing user.
        item_id: The item being reviewed.
        rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
        mode: "quiz" or "flashcard".
        was_correct: True/False for a graded answer, None for "don't know".
        answer_time_ms: How long the answer took, if measured.
        scheduler: Scheduling function (defaults to the user's FSRS scheduler).
        now: Review time (defaults to utcnow).

    Returns:
        ReviewOutcome with the card state id and new fields.

    Raises:
        ValidationError: Invalid rating, mode or answer time.
        NotFoundError: Unknown item or user.
        PersistenceError: The card state could not be written.
    """
    rating = parse_rating(rating)
    if mode not in REVIEW_MODES:
        raise ValidationError(f"Invalid mode: {mode!r}. Must be one of {', '.join(REVIEW_MODES)}.")
    if answer_time_ms is not None and answer_time_ms < 0:
        raise ValidationError("answer_time_ms must not be negative")
    if await db.get(Item, item_id) is None:
        raise NotFoundError(f"Item {item_id} not found")
    if scheduler is None:
        scheduler = (await get_user_preferences(db, user_id)).scheduler()
    now = now or utcnow()

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.review_write_attempts),
            retry=retry_if_exception_type(CardStateConflict),
            reraise=True,
        ):
            with attempt:
                committed = await _write_card_state(
                    db, user_id, item_id, rating, was_correct, scheduler, now
                )
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(
            f"Failed to write card state for user {user_id}, item {item_id}"
        ) from exc

    log_written = await _append_log(
        db,
        ReviewLog(
            user_id=user_id,
            item_id=item_id,
            card_state_id=committed.card_state_id,
            rating=int(rating),
            mode=mode,
            answer_time_ms=answer_time_ms,
            was_correct=was_correct,
            reviewed_at=now,
            **committed.snapshot,
        ),
    )

    logger.info(
        "Applied rating %d to item %d for user %d: %s -> %s, due %s",
        rating,
        item_id,
        user_id,
        committed.snapshot["state_before"] or "new",
        committed.card.state,
        committed.card.due.isoformat(),
    )
    return ReviewOutcome(
        card_state_id=committed.card_state_id,
        card=committed.card,
        times_correct=committed.times_correct,
        times_incorrect=committed.times_incorrect,
        times_idk=committed.times_idk,
        log_written=log_written,
    )


async def _write_card_state(
    db: AsyncSession,
    user_id: int,
    item_id: int,
    rating: Rating,
    was_correct: bool | None,
    scheduler: Scheduler,
    now: datetime,
) -> _CommittedState:
    """Load, schedule and write the card state in one transaction."""
    stmt = (
        select(CardState)
        .where(CardState.user_id == user_id, CardState.item_id == item_id)
        .execution_options(populate_existing=True)
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()

    card = SchedulerCard.from_state(existing) if existing else scheduler.new_card(now)
    snapshot = _snapshot(existing)
    new_card = scheduler.repeat(card, now)[rating]
    inc = counter_increments(rating, was_correct)

    if existing is None:
        counters = (inc.correct, inc.incorrect, inc.idk)
        insert_stmt = (
            dialect_insert(db, CardState)
            .values(
                user_id=user_id,
                item_id=item_id,
                times_correct=counters[0],
                times_incorrect=counters[1],
                times_idk=counters[2],
                version=1,
                **new_card.as_fields(),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "item_id"])
            .returning(CardState.id)
        )
        card_state_id = (await db.execute(insert_stmt)).scalar_one_or_none()
        if card_state_id is None:
            await db.rollback()
            logger.warning("Card state for user %d, item %d created concurrently; retrying", user_id, item_id)
            raise CardStateConflict(f"Card state for user {user_id}, item {item_id} already exists")
    else:
        counters = (
            existing.times_correct + inc.correct,
            existing.times_incorrect + inc.incorrect,
            existing.times_idk + inc.idk,
        )
        update_stmt = (
            update(CardState)
            .where(CardState.id == existing.id, CardState.version == existing.version)
            .values(
                times_correct=counters[0],
                times_incorrect=counters[1],
                times_idk=counters[2],
                version=existing.version + 1,
                **new_card.as_fields(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(update_stmt)
        if result.rowcount != 1:
            await db.rollback()
            logger.warning("Card state %d changed during review; retrying", existing.id)
            raise CardStateConflict(f"Card state {existing.id} was modified concurrently")
        card_state_id = existing.id

    await db.commit()
    return _CommittedState(
        card_state_id=card_state_id,
        snapshot=snapshot,
        card=new_card,
        times_correct=counters[0],
        times_incorrect=counters[1],
        times_idk=counters[2],
    )


async def _append_log(db: AsyncSession, entry: ReviewLog) -> bool:
    """Write a review log row. Returns False (after logging) when the write fails."""
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(
            "Failed to write review log for user %d, item %d (card state %d is committed)",
            entry.user_id,
            entry.item_id,
            entry.card_state_id,
        )
        return False
    return True
