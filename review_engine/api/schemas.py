"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

# --- Reviews ---


class ReviewRequest(BaseModel):
    """Request to apply one rating to one item."""

    user_id: int
    item_id: int
    rating: int = Field(ge=1, le=4)  # 1=Again, 2=Hard, 3=Good, 4=Easy
    mode: str = "quiz"  # quiz, flashcard
    was_correct: bool | None = None  # None = "don't know"
    answer_time_ms: int | None = Field(default=None, ge=0)


class CardStateResponse(BaseModel):
    """Scheduling fields of a card after a review."""

    state: str
    stability: float
    difficulty: float
    due: datetime
    reps: int
    lapses: int
    learning_steps: int
    elapsed_days: float
    scheduled_days: float
    last_review: datetime | None


class ReviewResponse(BaseModel):
    """Response after applying a review."""

    card_state_id: int
    card: CardStateResponse
    times_correct: int
    times_incorrect: int
    times_idk: int
    log_written: bool


class ItemActionRequest(BaseModel):
    """Request naming a (user, item) pair for undo or bury."""

    user_id: int
    item_id: int


class UndoResponse(BaseModel):
    undone: bool


class BuryResponse(BaseModel):
    due: datetime


class ResetTodayRequest(BaseModel):
    user_id: int
    collection_id: int


class ResetTodayResponse(BaseModel):
    reviews_removed: int


# --- Queue ---


class QueueItemResponse(BaseModel):
    """One entry of the study queue."""

    item_id: int
    prompt: str
    answer: str
    category_id: int
    category_name: str
    category_color: str | None
    state: str | None  # None when the item has never been reviewed
    due: datetime | None
    reps: int
    lapses: int


class QueueResponse(BaseModel):
    sub_mode: str
    total: int
    items: list[QueueItemResponse]


class SubModeCountsResponse(BaseModel):
    full: int
    quick_review: int
    spaced_repetition: int


class EmptyStateResponse(BaseModel):
    """What remains to study when the queue is empty."""

    remaining_new_items: int
    next_due_at: datetime | None
    effective_limit: int


class PreviewResponse(BaseModel):
    """Next-interval labels per rating and current recall probability."""

    item_id: int
    intervals: dict[int, str]
    retrievability: float | None


# --- Suspensions ---


class SuspensionListResponse(BaseModel):
    user_id: int
    item_ids: list[int]


class SuspensionResponse(BaseModel):
    item_id: int
    suspended: bool


# --- Stats ---


class DailyStatsResponse(BaseModel):
    """Today's study statistics for a collection."""

    reviews_today: int
    new_items_today: int
    correct_rate: float | None
    avg_answer_time_ms: float | None
    due_tomorrow: int


# --- Settings ---


class SchedulerSettingsResponse(BaseModel):
    """A user's effective scheduler preferences."""

    desired_retention: float
    max_review_interval: int
    new_cards_per_day: int
    new_cards_ramp_up: bool
    has_custom_weights: bool
    weights_updated_at: datetime | None


class SchedulerSettingsUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    desired_retention: float | None = None
    max_review_interval: int | None = None
    new_cards_per_day: int | None = None
    new_cards_ramp_up: bool | None = None


class OptimizerStatusResponse(BaseModel):
    valid_items: int
    min_items: int
    can_optimize: bool


class OptimizerRunResponse(BaseModel):
    optimized: bool
    valid_items: int
    review_count: int | None = None
    weights: list[float] | None = None
