"""API routes for applying and correcting reviews."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.api.schemas import (
    BuryResponse,
    CardStateResponse,
    ItemActionRequest,
    ResetTodayRequest,
    ResetTodayResponse,
    ReviewRequest,
    ReviewResponse,
    UndoResponse,
)
from review_engine.database import get_session
from review_engine.srs.corrections import bury_item, reset_today_progress, undo_last_review
from review_engine.srs.reviews import apply_review, was_correct_for_rating

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.post("", response_model=ReviewResponse)
async def submit_review(
    request: ReviewRequest,
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Apply a rating to an item and return its new scheduling state."""
    was_correct = request.was_correct
    if request.mode == "flashcard" and was_correct is None:
        was_correct = was_correct_for_rating(request.rating)

    outcome = await apply_review(
        db,
        user_id=request.user_id,
        item_id=request.item_id,
        rating=request.rating,
        mode=request.mode,
        was_correct=was_correct,
        answer_time_ms=request.answer_time_ms,
    )
    if not outcome.log_written:
        logger.warning(
            "Review of item %d by user %d applied without a log entry",
            request.item_id,
            request.user_id,
        )

    return ReviewResponse(
        card_state_id=outcome.card_state_id,
        card=CardStateResponse(**outcome.card.as_fields()),
        times_correct=outcome.times_correct,
        times_incorrect=outcome.times_incorrect,
        times_idk=outcome.times_idk,
        log_written=outcome.log_written,
    )


@router.post("/undo", response_model=UndoResponse)
async def undo_review(
    request: ItemActionRequest,
    db: AsyncSession = Depends(get_session),
) -> UndoResponse:
    """Undo the most recent review of an item (no-op when there is none)."""
    undone = await undo_last_review(db, request.user_id, request.item_id)
    return UndoResponse(undone=undone)


@router.post("/bury", response_model=BuryResponse)
async def bury(
    request: ItemActionRequest,
    db: AsyncSession = Depends(get_session),
) -> BuryResponse:
    """Hide an item until the next UTC midnight without grading it."""
    due = await bury_item(db, request.user_id, request.item_id)
    return BuryResponse(due=due)


@router.post("/reset-today", response_model=ResetTodayResponse)
async def reset_today(
    request: ResetTodayRequest,
    db: AsyncSession = Depends(get_session),
) -> ResetTodayResponse:
    """Discard today's reviews in a collection."""
    removed = await reset_today_progress(db, request.user_id, request.collection_id)
    return ResetTodayResponse(reviews_removed=removed)
