"""Redemptions router.

Members list and cancel their own redemptions; admins work through the
household queue and fulfil them.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership, get_current_user, require_admin
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.models.user import User
from chorechamp.schemas.redemption import (
    FulfillRequest,
    RedemptionListResponse,
    RedemptionResponse,
)
from chorechamp.services.redemption_service import (
    cancel_redemption,
    fulfill_redemption,
    list_redemptions,
)

router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


@router.get("", response_model=RedemptionListResponse)
async def my_redemptions(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
    status: str | None = Query(None, description="pending | fulfilled | cancelled"),
    limit: int = Query(20),
    offset: int = Query(0),
):
    items, total = await list_redemptions(
        db, membership.household_id, user_id=membership.user_id,
        status=status, limit=limit, offset=offset,
    )
    return RedemptionListResponse(
        items=[RedemptionResponse.model_validate(r) for r in items],
        total=total,
        has_more=offset + len(items) < total,
    )


@router.get("/household", response_model=RedemptionListResponse)
async def household_redemptions(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(require_admin),
    status: str | None = Query(None, description="pending | fulfilled | cancelled"),
    limit: int = Query(20),
    offset: int = Query(0),
):
    """All redemptions of the household (admin only)."""
    items, total = await list_redemptions(
        db, membership.household_id, status=status, limit=limit, offset=offset,
    )
    return RedemptionListResponse(
        items=[RedemptionResponse.model_validate(r) for r in items],
        total=total,
        has_more=offset + len(items) < total,
    )


@router.patch("/{redemption_id}/fulfill", response_model=RedemptionResponse)
async def fulfill(
    redemption_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    body: FulfillRequest | None = None,
    current_user: User = Depends(get_current_user),
):
    """Mark a pending redemption as handed out (admin of its household only)."""
    notes = body.notes if body is not None else None
    return await fulfill_redemption(db, redemption_id, current_user.id, notes)


@router.post("/{redemption_id}/cancel", response_model=RedemptionResponse)
async def cancel(
    redemption_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: User = Depends(get_current_user),
):
    """Cancel a pending redemption and refund its points."""
    return await cancel_redemption(db, redemption_id, current_user.id)
