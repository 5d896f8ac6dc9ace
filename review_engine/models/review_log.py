from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from review_engine.config import utcnow
from review_engine.models.base import Base

# Pre-review snapshot columns, paired with the CardState column each restores.
SNAPSHOT_FIELDS = {
    "stability_before": "stability",
    "difficulty_before": "difficulty",
    "state_before": "state",
    "reps_before": "reps",
    "lapses_before": "lapses",
    "elapsed_days_before": "elapsed_days",
    "scheduled_days_before": "scheduled_days",
    "last_review_before": "last_review",
    "due_before": "due",
    "learning_steps_before": "learning_steps",
}


class ReviewLog(Base):
    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False, index=True)
    # No FK: the card state may be deleted by undo while older logs remain.
    card_state_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 1=Again, 2=Hard, 3=Good, 4=Easy
    mode: Mapped[str] = mapped_column(String(20), nullable=False)  # quiz, flashcard
    answer_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    was_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)  # None = "don't know"
    stability_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    difficulty_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    state_before: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reps_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lapses_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    elapsed_days_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    scheduled_days_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_review_before: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    due_before: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    learning_steps_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    user: Mapped["User"] = relationship(back_populates="review_logs")  # type: ignore[name-defined] # noqa: F821

    def snapshot(self) -> dict:
        """Return the CardState field values captured before this review."""
        return {column: getattr(self, before) for before, column in SNAPSHOT_FIELDS.items()}

    @property
    def was_new(self) -> bool:
        """True when the item had no card state before this review."""
        return all(getattr(self, before) is None for before in SNAPSHOT_FIELDS)
