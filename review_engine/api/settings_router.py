"""API routes for per-user scheduler settings and parameter optimization."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.api.schemas import (
    OptimizerRunResponse,
    OptimizerStatusResponse,
    SchedulerSettingsResponse,
    SchedulerSettingsUpdate,
)
from review_engine.config import settings
from review_engine.database import get_session
from review_engine.srs.optimizer import count_valid_items, optimize_user_parameters
from review_engine.srs.preferences import (
    UserPreferences,
    get_user_preferences,
    update_user_preferences,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _settings_response(preferences: UserPreferences) -> SchedulerSettingsResponse:
    return SchedulerSettingsResponse(
        desired_retention=preferences.desired_retention,
        max_review_interval=preferences.max_review_interval,
        new_cards_per_day=preferences.new_cards_per_day,
        new_cards_ramp_up=preferences.new_cards_ramp_up,
        has_custom_weights=bool(preferences.weights),
        weights_updated_at=preferences.weights_updated_at,
    )


@router.get("/{user_id}", response_model=SchedulerSettingsResponse)
async def get_settings(
    user_id: int,
    db: AsyncSession = Depends(get_session),
) -> SchedulerSettingsResponse:
    """Get a user's effective scheduler settings."""
    return _settings_response(await get_user_preferences(db, user_id))


@router.put("/{user_id}", response_model=SchedulerSettingsResponse)
async def put_settings(
    user_id: int,
    request: SchedulerSettingsUpdate,
    db: AsyncSession = Depends(get_session),
) -> SchedulerSettingsResponse:
    """Update a user's scheduler settings."""
    preferences = await update_user_preferences(
        db,
        user_id,
        desired_retention=request.desired_retention,
        max_review_interval=request.max_review_interval,
        new_cards_per_day=request.new_cards_per_day,
        new_cards_ramp_up=request.new_cards_ramp_up,
    )
    return _settings_response(preferences)


@router.get("/{user_id}/optimizer", response_model=OptimizerStatusResponse)
async def optimizer_status(
    user_id: int,
    db: AsyncSession = Depends(get_session),
) -> OptimizerStatusResponse:
    """Report whether a user has enough review history to optimize."""
    await get_user_preferences(db, user_id)
    valid = await count_valid_items(db, user_id)
    return OptimizerStatusResponse(
        valid_items=valid,
        min_items=settings.min_items_for_optimization,
        can_optimize=valid >= settings.min_items_for_optimization,
    )


@router.post("/{user_id}/optimizer", response_model=OptimizerRunResponse)
async def run_optimizer(
    user_id: int,
    db: AsyncSession = Depends(get_session),
) -> OptimizerRunResponse:
    """Fit personalised FSRS weights from the user's review history."""
    await get_user_preferences(db, user_id)
    result = await optimize_user_parameters(db, user_id)
    if result is None:
        return OptimizerRunResponse(
            optimized=False, valid_items=await count_valid_items(db, user_id)
        )
    return OptimizerRunResponse(
        optimized=True,
        valid_items=result.item_count,
        review_count=result.review_count,
        weights=result.weights,
    )
