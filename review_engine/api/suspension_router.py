"""API routes for suspending items."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from review_engine.api.schemas import SuspensionListResponse, SuspensionResponse
from review_engine.database import get_session
from review_engine.srs.suspensions import is_suspended, list_suspended, suspend_item, unsuspend_item

router = APIRouter(prefix="/api/suspensions", tags=["suspensions"])


@router.get("/{user_id}", response_model=SuspensionListResponse)
async def get_suspended(
    user_id: int,
    db: AsyncSession = Depends(get_session),
) -> SuspensionListResponse:
    """List the items a user has suspended."""
    return SuspensionListResponse(user_id=user_id, item_ids=await list_suspended(db, user_id))


@router.get("/{user_id}/{item_id}", response_model=SuspensionResponse)
async def get_suspension(
    user_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_session),
) -> SuspensionResponse:
    """Report whether one item is suspended for a user."""
    return SuspensionResponse(item_id=item_id, suspended=await is_suspended(db, user_id, item_id))


@router.post("/{user_id}/{item_id}", response_model=SuspensionResponse)
async def suspend(
    user_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_session),
) -> SuspensionResponse:
    await suspend_item(db, user_id, item_id)
    return SuspensionResponse(item_id=item_id, suspended=True)


@router.delete("/{user_id}/{item_id}", response_model=SuspensionResponse)
async def unsuspend(
    user_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_session),
) -> SuspensionResponse:
    await unsuspend_item(db, user_id, item_id)
    return SuspensionResponse(item_id=item_id, suspended=False)
