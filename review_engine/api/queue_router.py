"""API routes for the study queue."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.api.schemas import (
    EmptyStateResponse,
    PreviewResponse,
    QueueItemResponse,
    QueueResponse,
    SubModeCountsResponse,
)
from review_engine.database import get_session
from review_engine.errors import NotFoundError
from review_engine.models.card_state import CardState
from review_engine.models.item import Item
from review_engine.srs.ordering import (
    OrderedItem,
    OrderingOptions,
    get_empty_state_context,
    get_ordered_items,
    get_submode_counts,
    parse_sub_mode,
)
from review_engine.srs.preferences import get_user_preferences
from review_engine.srs.preview import current_retrievability, interval_previews

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queue", tags=["queue"])


def _queue_item(entry: OrderedItem) -> QueueItemResponse:
    state = entry.card_state
    return QueueItemResponse(
        item_id=entry.item.id,
        prompt=entry.item.prompt,
        answer=entry.item.answer,
        category_id=entry.category_id,
        category_name=entry.category_name,
        category_color=entry.category_color,
        state=state.state if state else None,
        due=state.due if state else None,
        reps=state.reps if state else 0,
        lapses=state.lapses if state else 0,
    )


async def _ordering_options(
    db: AsyncSession,
    user_id: int,
    sub_mode: str,
    category_id: int | None,
    limit: int | None,
) -> OrderingOptions:
    preferences = await get_user_preferences(db, user_id)
    return OrderingOptions(
        sub_mode=parse_sub_mode(sub_mode),
        category_id=category_id,
        limit=limit,
        new_cards_per_day=preferences.new_cards_per_day,
        new_cards_ramp_up=preferences.new_cards_ramp_up,
    )


@router.get("/{user_id}/{collection_id}", response_model=QueueResponse)
async def get_queue(
    user_id: int,
    collection_id: int,
    sub_mode: str = "full",
    category_id: int | None = None,
    limit: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> QueueResponse:
    """Get the priority-ordered study queue for a collection."""
    options = await _ordering_options(db, user_id, sub_mode, category_id, limit)
    entries = await get_ordered_items(db, user_id, collection_id, options)
    return QueueResponse(
        sub_mode=options.sub_mode.value,
        total=len(entries),
        items=[_queue_item(entry) for entry in entries],
    )


@router.get("/{user_id}/{collection_id}/counts", response_model=SubModeCountsResponse)
async def get_counts(
    user_id: int,
    collection_id: int,
    db: AsyncSession = Depends(get_session),
) -> SubModeCountsResponse:
    """Get how many items each sub-mode would offer."""
    counts = await get_submode_counts(db, user_id, collection_id)
    return SubModeCountsResponse(
        full=counts.full,
        quick_review=counts.quick_review,
        spaced_repetition=counts.spaced_repetition,
    )


@router.get("/{user_id}/{collection_id}/empty-state", response_model=EmptyStateResponse)
async def get_empty_state(
    user_id: int,
    collection_id: int,
    sub_mode: str = "full",
    category_id: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> EmptyStateResponse:
    """Explain what is left to study when the queue comes back empty."""
    options = await _ordering_options(db, user_id, sub_mode, category_id, None)
    context = await get_empty_state_context(db, user_id, collection_id, options)
    return EmptyStateResponse(
        remaining_new_items=context.remaining_new_items,
        next_due_at=context.next_due_at,
        effective_limit=context.effective_limit,
    )


@router.get("/{user_id}/items/{item_id}/preview", response_model=PreviewResponse)
async def get_preview(
    user_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_session),
) -> PreviewResponse:
    """Preview the next interval for each rating of an item."""
    if await db.get(Item, item_id) is None:
        raise NotFoundError(f"Item {item_id} not found")
    scheduler = (await get_user_preferences(db, user_id)).scheduler()
    stmt = select(CardState).where(CardState.user_id == user_id, CardState.item_id == item_id)
    card_state = (await db.execute(stmt)).scalar_one_or_none()

    intervals = interval_previews(card_state, scheduler)
    return PreviewResponse(
        item_id=item_id,
        intervals={int(rating): label for rating, label in intervals.items()},
        retrievability=current_retrievability(card_state, scheduler),
    )
