from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from review_engine.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """A learner together with their scheduler preferences.

    Null preference columns mean "use the configured default".
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    desired_retention: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_review_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)  # days
    new_cards_per_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    new_cards_ramp_up: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    fsrs_weights: Mapped[list[float] | None] = mapped_column(JSON, nullable=True)
    fsrs_weights_updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    card_states: Mapped[list["CardState"]] = relationship(back_populates="user")  # type: ignore[name-defined] # noqa: F821
    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="user")  # type: ignore[name-defined] # noqa: F821
