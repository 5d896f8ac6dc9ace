"""Training data for re-fitting a user's FSRS parameters.

Review logs are grouped per item and replayed in order; every prefix of an
item's history becomes one training item. Same-day prefixes (every delta_t
is 0) carry no forgetting signal and are dropped: an item's prefixes become
valid from its first review that happened on a later day.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC
from typing import Any

import fsrs
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.config import settings
from review_engine.errors import OptimizerUnavailableError
from review_engine.models.review_log import ReviewLog
from review_engine.srs.preferences import store_weights

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingReview:
    rating: int
    delta_t: float


@dataclass
class TrainingItem:
    """One item's review history up to a given review."""

    item_id: int
    reviews: list[TrainingReview] = field(default_factory=list)


@dataclass
class OptimizationResult:
    weights: list[float]
    review_count: int
    item_count: int


def transform_logs(logs: Iterable[Any]) -> list[TrainingItem]:
    """Turn review logs into optimizer training items.

    Args:
        logs: Review log rows (anything with ``item_id``, ``rating``,
            ``elapsed_days_before`` and ``reviewed_at``), in any order.

    Returns:
        Valid training items, in chronological order within each item.
    """
    grouped: dict[int, list[Any]] = {}
    for log in logs:
        grouped.setdefault(log.item_id, []).append(log)

    items: list[TrainingItem] = []
    for item_id, item_logs in grouped.items():
        item_logs.sort(key=lambda log: log.reviewed_at)
        reviews: list[TrainingReview] = []
        has_gap = False
        for index, log in enumerate(item_logs):
            delta_t = 0.0 if index == 0 else float(log.elapsed_days_before or 0)
            reviews.append(TrainingReview(rating=log.rating, delta_t=delta_t))
            has_gap = has_gap or delta_t > 0
            if has_gap:
                items.append(TrainingItem(item_id=item_id, reviews=list(reviews)))
    return items


async def _user_logs(db: AsyncSession, user_id: int) -> list[ReviewLog]:
    stmt = (
        select(ReviewLog)
        .where(ReviewLog.user_id == user_id)
        .order_by(ReviewLog.reviewed_at.asc(), ReviewLog.id.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def count_valid_items(db: AsyncSession, user_id: int) -> int:
    """Return how many valid training items a user's review history yields."""
    return len(transform_logs(await _user_logs(db, user_id)))


def _to_fsrs_logs(logs: list[ReviewLog]) -> list[fsrs.ReviewLog]:
    return [
        fsrs.ReviewLog(
            card_id=log.item_id,
            rating=fsrs.Rating(log.rating),
            review_datetime=log.reviewed_at.replace(tzinfo=UTC),
            review_duration=log.answer_time_ms,
        )
        for log in logs
    ]


def _fit_weights(fsrs_logs: list[fsrs.ReviewLog]) -> list[float]:
    """Run the FSRS optimizer. CPU-bound; call it off the event loop."""
    # fsrs exposes a placeholder Optimizer whose constructor raises ImportError
    # when the optional torch/pandas dependencies are missing.
    try:
        optimizer = fsrs.Optimizer(fsrs_logs)
    except ImportError as exc:
        raise OptimizerUnavailableError(
            "FSRS optimizer is not installed; install the 'optimizer' extra"
        ) from exc
    return list(optimizer.compute_optimal_parameters())


async def optimize_user_parameters(db: AsyncSession, user_id: int) -> OptimizationResult | None:
    """Fit and store personalised FSRS weights for a user.

    Returns None when the history has fewer valid training items than
    ``settings.min_items_for_optimization``.
    """
    logs = await _user_logs(db, user_id)
    items = transform_logs(logs)
    if len(items) < settings.min_items_for_optimization:
        logger.info(
            "Skipping optimization for user %d: %d valid items (need %d)",
            user_id,
            len(items),
            settings.min_items_for_optimization,
        )
        return None

    trainable = {item.item_id for item in items}
    training_logs = [log for log in logs if log.item_id in trainable]
    weights = await asyncio.to_thread(_fit_weights, _to_fsrs_logs(training_logs))
    await store_weights(db, user_id, weights)

    logger.info(
        "Optimized FSRS weights for user %d from %d reviews (%d training items)",
        user_id,
        len(training_logs),
        len(items),
    )
    return OptimizationResult(weights=weights, review_count=len(logs), item_count=len(items))
