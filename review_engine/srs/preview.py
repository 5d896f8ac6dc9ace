"""Interval previews and current recall probability for a card."""

from datetime import datetime

from review_engine.config import utcnow
from review_engine.models.card_state import CardState
from review_engine.srs.scheduler import (
    CardStatus,
    FSRSScheduler,
    Rating,
    Scheduler,
    SchedulerCard,
)


def format_interval(due: datetime, now: datetime) -> str:
    """Render the time until ``due`` compactly: 10m, 3h, 4d, 2mo."""
    minutes = round((due - now).total_seconds() / 60)
    if minutes < 60:
        return f"{minutes}m"
    hours = round(minutes / 60)
    if hours < 24:
        return f"{hours}h"
    days = round(hours / 24)
    if days < 30:
        return f"{days}d"
    return f"{round(days / 30)}mo"


def interval_previews(
    card_state: CardState | None,
    scheduler: Scheduler | None = None,
    now: datetime | None = None,
) -> dict[Rating, str]:
    """Return, per rating, how long until the card would be due again."""
    scheduler = scheduler or FSRSScheduler()
    now = now or utcnow()
    card = SchedulerCard.from_state(card_state) if card_state else scheduler.new_card(now)
    outcomes = scheduler.repeat(card, now)
    return {rating: format_interval(outcome.due, now) for rating, outcome in outcomes.items()}


def current_retrievability(
    card_state: CardState | None,
    scheduler: Scheduler | None = None,
    now: datetime | None = None,
) -> float | None:
    """Return the recall probability now, or None for a card never reviewed."""
    if card_state is None or card_state.state == CardStatus.NEW:
        return None
    scheduler = scheduler or FSRSScheduler()
    return scheduler.retrievability(SchedulerCard.from_state(card_state), now or utcnow())
