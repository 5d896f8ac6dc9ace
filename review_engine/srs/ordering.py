"""Study queue ordering.

Builds a priority-ordered queue of items for a user and a collection.

Buckets, in order:
- 0: due review/relearning cards (genuine spaced review), most overdue first
- 1: new cards (no card state), shuffled
- 2: due learning cards (short-term steps), most overdue first
- 3: everything else (not yet due), shuffled

Decayed long-term memories surface first and new material comes before
re-drilling items just missed, so same-session relearning loops cannot
dominate the queue.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from sqlalchemy import and_, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.config import settings, start_of_utc_day, utcnow
from review_engine.errors import ValidationError
from review_engine.models.card_state import CardState
from review_engine.models.item import Category, Item
from review_engine.models.review_log import ReviewLog
from review_engine.models.suspension import SuspendedItem
from review_engine.srs.scheduler import CardStatus

logger = logging.getLogger(__name__)

REVIEW_DUE = 0
NEW = 1
LEARNING_DUE = 2
NOT_DUE = 3

LONG_TERM_STATES = (CardStatus.REVIEW.value, CardStatus.RELEARNING.value)

# New-card ramp-up: day-one cap, and the number of days the ramp lasts.
RAMP_UP_FIRST_DAY_LIMIT = 6
RAMP_UP_DAYS = 5


class SubMode(StrEnum):
    FULL = "full"
    QUICK_REVIEW = "quick_review"
    CATEGORY_FOCUS = "category_focus"
    SPACED_REPETITION = "spaced_repetition"


@dataclass
class OrderingOptions:
    sub_mode: SubMode = SubMode.FULL
    category_id: int | None = None
    limit: int | None = None
    new_cards_per_day: int | None = None
    new_cards_ramp_up: bool = False


@dataclass
class OrderedItem:
    """An item in the study queue with the user's card state (None when new)."""

    item: Item
    card_state: CardState | None
    category_id: int
    category_name: str
    category_color: str | None


@dataclass
class SubModeCounts:
    full: int
    quick_review: int
    spaced_repetition: int


@dataclass
class EmptyStateContext:
    """What to tell a user whose queue is empty."""

    remaining_new_items: int
    next_due_at: datetime | None
    effective_limit: int


def parse_sub_mode(value: str) -> SubMode:
    try:
        return SubMode(value)
    except ValueError as exc:
        modes = ", ".join(m.value for m in SubMode)
        raise ValidationError(f"Invalid sub-mode: {value!r}. Must be one of {modes}.") from exc


def is_due(card_state: CardState, now: datetime) -> bool:
    return card_state.due <= now


def priority_bucket(card_state: CardState | None, now: datetime) -> int:
    """Return the priority bucket (0 first) of a queue entry."""
    if card_state is None:
        return NEW
    if is_due(card_state, now):
        if card_state.state in LONG_TERM_STATES:
            return REVIEW_DUE
        return LEARNING_DUE
    return NOT_DUE


def filter_for_sub_mode(
    entries: list[OrderedItem], sub_mode: SubMode, now: datetime
) -> list[OrderedItem]:
    """Keep only the entries a sub-mode studies."""
    if sub_mode == SubMode.QUICK_REVIEW:
        return [e for e in entries if e.card_state is not None]
    if sub_mode == SubMode.SPACED_REPETITION:
        return [
            e
            for e in entries
            if e.card_state is not None
            and is_due(e.card_state, now)
            and e.card_state.state in LONG_TERM_STATES
        ]
    return list(entries)


def order_entries(
    entries: list[OrderedItem], now: datetime, rng: random.Random | None = None
) -> list[OrderedItem]:
    """Sort entries by bucket; due buckets by due date, the others shuffled."""
    rng = rng or random.Random()
    buckets: dict[int, list[OrderedItem]] = {REVIEW_DUE: [], NEW: [], LEARNING_DUE: [], NOT_DUE: []}
    for entry in entries:
        buckets[priority_bucket(entry.card_state, now)].append(entry)

    buckets[REVIEW_DUE].sort(key=lambda e: e.card_state.due)
    buckets[LEARNING_DUE].sort(key=lambda e: e.card_state.due)
    rng.shuffle(buckets[NEW])
    rng.shuffle(buckets[NOT_DUE])

    return [entry for bucket in sorted(buckets) for entry in buckets[bucket]]


def cap_new_entries(entries: list[OrderedItem], allowance: int) -> list[OrderedItem]:
    """Drop new entries beyond ``allowance``, preserving order."""
    result: list[OrderedItem] = []
    seen_new = 0
    for entry in entries:
        if entry.card_state is None:
            seen_new += 1
            if seen_new > allowance:
                continue
        result.append(entry)
    return result


def apply_limit(entries: list[OrderedItem], options: OrderingOptions) -> list[OrderedItem]:
    if options.limit and options.limit > 0:
        return entries[: options.limit]
    if options.sub_mode == SubMode.QUICK_REVIEW:
        return entries[: settings.quick_review_limit]
    return entries


def _scope_conditions(collection_id: int, options: OrderingOptions | None) -> list:
    conditions = [Category.collection_id == collection_id, Item.is_active.is_(True)]
    if options is not None and options.sub_mode == SubMode.CATEGORY_FOCUS and options.category_id:
        conditions.append(Item.category_id == options.category_id)
    return conditions


def _not_suspended(user_id: int):  # noqa: ANN202
    return ~select(SuspendedItem.id).where(
        SuspendedItem.user_id == user_id, SuspendedItem.item_id == Item.id
    ).exists()


async def fetch_entries(
    db: AsyncSession,
    user_id: int,
    collection_id: int,
    options: OrderingOptions | None = None,
) -> list[OrderedItem]:
    """Fetch active, unsuspended items in scope joined with the user's card states."""
    stmt = (
        select(Item, CardState, Category)
        .join(Category, Item.category_id == Category.id)
        .outerjoin(
            CardState,
            and_(CardState.item_id == Item.id, CardState.user_id == user_id),
        )
        .where(*_scope_conditions(collection_id, options), _not_suspended(user_id))
        .order_by(Item.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return [
        OrderedItem(
            item=item,
            card_state=card_state,
            category_id=category.id,
            category_name=category.name,
            category_color=category.color,
        )
        for item, card_state, category in result.all()
    ]


async def _collection_item_ids(db: AsyncSession, collection_id: int) -> list[int]:
    stmt = (
        select(Item.id)
        .join(Category, Item.category_id == Category.id)
        .where(Category.collection_id == collection_id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def effective_new_card_limit(
    db: AsyncSession,
    user_id: int,
    item_ids: list[int],
    base_limit: int,
    ramp_up: bool,
    now: datetime,
) -> int:
    """Return the new-cards-per-day limit, ramped up over a user's first days.

    Day one (no reviews yet) is capped at 6, day ``d`` of the first five at
    ``5 + d``; after that the base limit applies.
    """
    if not ramp_up:
        return base_limit

    stmt = select(func.min(ReviewLog.reviewed_at)).where(
        ReviewLog.user_id == user_id, ReviewLog.item_id.in_(item_ids)
    )
    first_review = (await db.execute(stmt)).scalar()
    if first_review is None:
        return min(base_limit, RAMP_UP_FIRST_DAY_LIMIT)

    day_number = (now - first_review).days + 1
    if day_number <= RAMP_UP_DAYS:
        return min(base_limit, RAMP_UP_DAYS + day_number)
    return base_limit


async def new_items_studied_today(
    db: AsyncSession, user_id: int, item_ids: list[int], now: datetime
) -> int:
    """Count distinct items first reviewed since UTC midnight.

    An item counts when its review started from no state or from a buried "new" row.
    """
    stmt = select(func.count(distinct(ReviewLog.item_id))).where(
        ReviewLog.user_id == user_id,
        ReviewLog.item_id.in_(item_ids),
        or_(ReviewLog.state_before.is_(None), ReviewLog.state_before == CardStatus.NEW.value),
        ReviewLog.reviewed_at >= start_of_utc_day(now),
    )
    return (await db.execute(stmt)).scalar() or 0


async def get_ordered_items(
    db: AsyncSession,
    user_id: int,
    collection_id: int,
    options: OrderingOptions | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[OrderedItem]:
    """Return the priority-ordered study queue for a user and collection.

    Args:
        db: Database session.
        user_id: The studying user.
        collection_id: The collection being studied.
        options: Sub-mode, category focus, limit and new-card cap.
        now: Current time (defaults to utcnow).
        rng: Random source used to shuffle the new and not-due buckets.

    Returns:
        Ordered list of OrderedItem entries.
    """
    options = options or OrderingOptions()
    now = now or utcnow()

    entries = await fetch_entries(db, user_id, collection_id, options)
    entries = filter_for_sub_mode(entries, options.sub_mode, now)
    entries = order_entries(entries, now, rng)

    if options.new_cards_per_day is not None:
        item_ids = await _collection_item_ids(db, collection_id)
        limit = await effective_new_card_limit(
            db, user_id, item_ids, options.new_cards_per_day, options.new_cards_ramp_up, now
        )
        studied = await new_items_studied_today(db, user_id, item_ids, now)
        entries = cap_new_entries(entries, max(0, limit - studied))

    entries = apply_limit(entries, options)

    logger.info(
        "Ordered %d items for user %d in collection %d (%s)",
        len(entries),
        user_id,
        collection_id,
        options.sub_mode.value,
    )
    return entries


async def get_submode_counts(
    db: AsyncSession,
    user_id: int,
    collection_id: int,
    now: datetime | None = None,
) -> SubModeCounts:
    """Return how many items each sub-mode would offer."""
    now = now or utcnow()
    entries = await fetch_entries(db, user_id, collection_id)
    seen = sum(1 for e in entries if e.card_state is not None)
    due_now = len(filter_for_sub_mode(entries, SubMode.SPACED_REPETITION, now))
    return SubModeCounts(
        full=len(entries),
        quick_review=min(seen, settings.quick_review_limit),
        spaced_repetition=due_now,
    )


async def get_empty_state_context(
    db: AsyncSession,
    user_id: int,
    collection_id: int,
    options: OrderingOptions | None = None,
    now: datetime | None = None,
) -> EmptyStateContext:
    """Describe what is left when a queue comes back empty."""
    options = options or OrderingOptions()
    now = now or utcnow()

    entries = await fetch_entries(db, user_id, collection_id, options)
    if not entries:
        return EmptyStateContext(remaining_new_items=0, next_due_at=None, effective_limit=0)

    remaining_new = sum(1 for e in entries if e.card_state is None)
    future_dues = [
        e.card_state.due for e in entries if e.card_state is not None and e.card_state.due > now
    ]
    item_ids = await _collection_item_ids(db, collection_id)
    limit = await effective_new_card_limit(
        db,
        user_id,
        item_ids,
        options.new_cards_per_day if options.new_cards_per_day is not None else settings.new_cards_per_day,
        options.new_cards_ramp_up,
        now,
    )
    return EmptyStateContext(
        remaining_new_items=remaining_new,
        next_due_at=min(future_dues) if future_dues else None,
        effective_limit=limit,
    )
