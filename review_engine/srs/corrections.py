"""Undo, bury and reset: correcting card state without a new rating.

Undo replays the review log backwards one step at a time: the newest log
row's ``*_before`` snapshot is enough to restore the card state, so no older
row is consulted. Races between undo and a new review of the same item are
last-writer-wins; both come from the user's single active study session.
"""

import logging
from datetime import datetime

from sqlalchemy import case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.config import next_utc_midnight, start_of_utc_day, utcnow
from review_engine.database import dialect_insert
from review_engine.errors import NotFoundError
from review_engine.models.card_state import CardState
from review_engine.models.item import Category, Item
from review_engine.models.review_log import ReviewLog
from review_engine.srs.reviews import CounterIncrements, counter_increments
from review_engine.srs.scheduler import CardStatus, parse_rating

logger = logging.getLogger(__name__)


async def _restore_from_log(db: AsyncSession, log: ReviewLog, reverted: list[ReviewLog]) -> None:
    """Restore the (user, item) card state to the snapshot stored in ``log``.

    Answer counters are decremented for every review in ``reverted``.
    """
    where = (CardState.user_id == log.user_id, CardState.item_id == log.item_id)
    if log.was_new:
        await db.execute(delete(CardState).where(*where))
        return

    values = log.snapshot()
    totals = CounterIncrements()
    for entry in reverted:
        inc = counter_increments(parse_rating(entry.rating), entry.was_correct)
        totals.correct += inc.correct
        totals.incorrect += inc.incorrect
        totals.idk += inc.idk
    for column, amount in (
        ("times_correct", totals.correct),
        ("times_incorrect", totals.incorrect),
        ("times_idk", totals.idk),
    ):
        if amount:
            values[column] = _decremented(getattr(CardState, column), amount)
    values["version"] = CardState.version + 1
    await db.execute(
        update(CardState).where(*where).values(**values).execution_options(synchronize_session=False)
    )


def _decremented(column, amount: int):  # noqa: ANN001, ANN202
    return case((column > amount, column - amount), else_=0)


async def undo_last_review(db: AsyncSession, user_id: int, item_id: int) -> bool:
    """Reverse the most recent review of an item.

    Deletes the newest review log row and restores the card state from its
    pre-review snapshot (deleting the card state when the item was new).
    The answer counter that review bumped is decremented. Calling again
    walks back one further step.

    Returns:
        True if a review was undone, False when there was nothing to undo.
    """
    stmt = (
        select(ReviewLog)
        .where(ReviewLog.user_id == user_id, ReviewLog.item_id == item_id)
        .order_by(ReviewLog.reviewed_at.desc(), ReviewLog.id.desc())
        .limit(1)
    )
    log = (await db.execute(stmt)).scalar_one_or_none()
    if log is None:
        return False

    await db.delete(log)
    await _restore_from_log(db, log, reverted=[log])
    await db.commit()

    logger.info(
        "Undid review %d of item %d for user %d (restored to %s)",
        log.id,
        item_id,
        user_id,
        log.state_before or "no state",
    )
    return True


async def bury_item(
    db: AsyncSession, user_id: int, item_id: int, now: datetime | None = None
) -> datetime:
    """Defer an item to the next UTC midnight without grading it.

    Only ``due`` changes on an existing card state; an item without one gets
    a fresh "new" row carrying the deferred due date.

    Returns:
        The new due date.
    """
    if await db.get(Item, item_id) is None:
        raise NotFoundError(f"Item {item_id} not found")
    due = next_utc_midnight(now or utcnow())

    stmt = (
        dialect_insert(db, CardState)
        .values(user_id=user_id, item_id=item_id, state=CardStatus.NEW.value, due=due)
        .on_conflict_do_update(
            index_elements=["user_id", "item_id"],
            set_={"due": due, "version": CardState.version + 1, "updated_at": utcnow()},
        )
    )
    await db.execute(stmt)
    await db.commit()

    logger.info("Buried item %d for user %d until %s", item_id, user_id, due.isoformat())
    return due


async def reset_today_progress(
    db: AsyncSession, user_id: int, collection_id: int, now: datetime | None = None
) -> int:
    """Discard every review of a collection made since UTC midnight.

    Each affected item is restored from the snapshot of its first review of
    the day and its answer counters lose every discarded review.

    Returns:
        The number of review log rows deleted.
    """
    midnight = start_of_utc_day(now or utcnow())
    in_collection = select(Item.id).join(Category, Item.category_id == Category.id).where(
        Category.collection_id == collection_id
    )
    stmt = (
        select(ReviewLog)
        .where(
            ReviewLog.user_id == user_id,
            ReviewLog.item_id.in_(in_collection),
            ReviewLog.reviewed_at >= midnight,
        )
        .order_by(ReviewLog.reviewed_at.asc(), ReviewLog.id.asc())
    )
    logs = list((await db.execute(stmt)).scalars().all())
    if not logs:
        return 0

    logs_per_item: dict[int, list[ReviewLog]] = {}
    for log in logs:
        logs_per_item.setdefault(log.item_id, []).append(log)

    await db.execute(delete(ReviewLog).where(ReviewLog.id.in_([log.id for log in logs])))
    for item_logs in logs_per_item.values():
        await _restore_from_log(db, item_logs[0], reverted=item_logs)
    await db.commit()

    logger.info(
        "Reset today's progress for user %d in collection %d: %d reviews on %d items",
        user_id,
        collection_id,
        len(logs),
        len(logs_per_item),
    )
    return len(logs)
