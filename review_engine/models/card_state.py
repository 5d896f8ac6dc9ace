"""Per-(user, item) memory state."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from review_engine.config import utcnow
from review_engine.models.base import Base, TimestampMixin


class CardState(Base, TimestampMixin):
    """FSRS scheduling state and answer counters for a user-item pair.

    ``version`` is bumped on every review write and used as the
    compare-and-swap token that keeps concurrent reviews from overwriting
    each other.
    """

    __tablename__ = "card_states"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_card_state_user_item"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False)
    stability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    elapsed_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    scheduled_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="new"
    )  # new, learning, review, relearning
    learning_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_review: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    times_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_incorrect: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_idk: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    user: Mapped["User"] = relationship(back_populates="card_states")  # type: ignore[name-defined] # noqa: F821
    item: Mapped["Item"] = relationship()  # type: ignore[name-defined] # noqa: F821
