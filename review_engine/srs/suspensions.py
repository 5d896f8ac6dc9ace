"""Suspension registry: items a user has taken out of every study queue."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.database import dialect_insert
from review_engine.errors import NotFoundError
from review_engine.models.item import Item
from review_engine.models.suspension import SuspendedItem

logger = logging.getLogger(__name__)


async def is_suspended(db: AsyncSession, user_id: int, item_id: int) -> bool:
    stmt = select(SuspendedItem.id).where(
        SuspendedItem.user_id == user_id, SuspendedItem.item_id == item_id
    )
    return (await db.execute(stmt)).first() is not None


async def suspend_item(db: AsyncSession, user_id: int, item_id: int) -> None:
    """Suspend an item for a user. Suspending twice is harmless."""
    if await db.get(Item, item_id) is None:
        raise NotFoundError(f"Item {item_id} not found")
    stmt = (
        dialect_insert(db, SuspendedItem)
        .values(user_id=user_id, item_id=item_id)
        .on_conflict_do_nothing(index_elements=["user_id", "item_id"])
    )
    await db.execute(stmt)
    await db.commit()
    logger.info("Suspended item %d for user %d", item_id, user_id)


async def unsuspend_item(db: AsyncSession, user_id: int, item_id: int) -> bool:
    """Lift a suspension. Returns False if the item was not suspended."""
    result = await db.execute(
        delete(SuspendedItem).where(
            SuspendedItem.user_id == user_id, SuspendedItem.item_id == item_id
        )
    )
    await db.commit()
    return result.rowcount > 0


async def list_suspended(db: AsyncSession, user_id: int) -> list[int]:
    """Return the ids of a user's suspended items, oldest suspension first."""
    stmt = (
        select(SuspendedItem.item_id)
        .where(SuspendedItem.user_id == user_id)
        .order_by(SuspendedItem.suspended_at, SuspendedItem.id)
    )
    return list((await db.execute(stmt)).scalars().all())
