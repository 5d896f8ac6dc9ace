from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from review_engine.config import utcnow
from review_engine.models.base import Base


class SuspendedItem(Base):
    """Membership row: the user has taken this item out of every study queue."""

    __tablename__ = "suspended_items"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_suspended_user_item"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False)
    suspended_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
