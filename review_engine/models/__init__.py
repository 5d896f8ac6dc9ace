"""SQLAlchemy ORM models for the review engine database."""

from review_engine.models.base import Base
from review_engine.models.card_state import CardState
from review_engine.models.item import Category, Collection, Item
from review_engine.models.review_log import ReviewLog
from review_engine.models.suspension import SuspendedItem
from review_engine.models.user import User

__all__ = [
    "Base",
    "CardState",
    "Category",
    "Collection",
    "Item",
    "ReviewLog",
    "SuspendedItem",
    "User",
]
