"""API routes for study statistics."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.api.schemas import DailyStatsResponse
from review_engine.database import get_session
from review_engine.srs.daily_stats import get_daily_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/{user_id}/{collection_id}/daily", response_model=DailyStatsResponse)
async def daily_stats(
    user_id: int,
    collection_id: int,
    db: AsyncSession = Depends(get_session),
) -> DailyStatsResponse:
    """Get today's statistics for a collection."""
    stats = await get_daily_stats(db, user_id, collection_id)
    return DailyStatsResponse(
        reviews_today=stats.reviews_today,
        new_items_today=stats.new_items_today,
        correct_rate=round(stats.correct_rate, 3) if stats.correct_rate is not None else None,
        avg_answer_time_ms=stats.avg_answer_time_ms,
        due_tomorrow=stats.due_tomorrow,
    )
