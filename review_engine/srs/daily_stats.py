"""Today's study statistics for a collection."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.config import next_utc_midnight, start_of_utc_day, utcnow
from review_engine.models.card_state import CardState
from review_engine.models.item import Category, Item
from review_engine.models.review_log import ReviewLog
from review_engine.srs.scheduler import CardStatus

logger = logging.getLogger(__name__)


@dataclass
class DailyStats:
    reviews_today: int = 0
    new_items_today: int = 0
    correct_rate: float | None = None
    avg_answer_time_ms: float | None = None
    due_tomorrow: int = 0


async def get_daily_stats(
    db: AsyncSession,
    user_id: int,
    collection_id: int,
    now: datetime | None = None,
) -> DailyStats:
    """Summarise the reviews a user made today (UTC) in a collection.

    A review counts as correct when rated Good or Easy; "new" reviews are the
    ones made on items that were still new (no state, or buried unseen).
    """
    now = now or utcnow()
    midnight = start_of_utc_day(now)
    tomorrow = next_utc_midnight(now)
    in_collection = select(Item.id).join(Category, Item.category_id == Category.id).where(
        Category.collection_id == collection_id
    )

    logs_stmt = select(ReviewLog).where(
        ReviewLog.user_id == user_id,
        ReviewLog.item_id.in_(in_collection),
        ReviewLog.reviewed_at >= midnight,
    )
    logs = list((await db.execute(logs_stmt)).scalars().all())

    due_stmt = select(func.count(CardState.id)).where(
        CardState.user_id == user_id,
        CardState.item_id.in_(in_collection),
        CardState.due >= tomorrow,
        CardState.due < tomorrow + timedelta(days=1),
    )
    due_tomorrow = (await db.execute(due_stmt)).scalar() or 0

    if not logs:
        return DailyStats(due_tomorrow=due_tomorrow)

    correct = sum(1 for log in logs if log.rating >= 3)
    times = [log.answer_time_ms for log in logs if log.answer_time_ms]
    return DailyStats(
        reviews_today=len(logs),
        new_items_today=sum(1 for log in logs if log.state_before in (None, CardStatus.NEW.value)),
        correct_rate=correct / len(logs),
        avg_answer_time_ms=sum(times) / len(times) if times else None,
        due_tomorrow=due_tomorrow,
    )
