"""Rewards router.

Only redemption lives here; the reward catalogue is managed elsewhere.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership
from chorechamp.core.rate_limit import REDEEM_RATE_LIMIT, limiter
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.schemas.redemption import RedeemResponse, RedemptionResponse
from chorechamp.services.award_service import charge_redemption

router = APIRouter(prefix="/rewards", tags=["Rewards"])


@router.post("/{reward_id}/redeem", response_model=RedeemResponse, status_code=201)
@limiter.limit(REDEEM_RATE_LIMIT)
async def redeem_reward(
    request: Request,
    reward_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Spend points on a reward. The redemption waits for an admin to fulfil it."""
    result = await charge_redemption(
        db, membership.user_id, membership.household_id, reward_id,
    )
    return RedeemResponse(
        redemption=RedemptionResponse.model_validate(result.redemption),
        new_balance=result.balance.current_balance,
        message=f"Redeemed for {result.redemption.points_spent} points",
    )
