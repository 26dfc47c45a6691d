"""Points router.

Balance, history, admin bonuses and ledger reconciliation.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership, require_admin
from chorechamp.core.exceptions import NotFoundError
from chorechamp.core.rate_limit import BONUS_RATE_LIMIT, RECONCILE_RATE_LIMIT, limiter
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.schemas.points import (
    BonusRequest,
    BonusResponse,
    PointBalanceResponse,
    PointHistoryResponse,
    PointTransactionResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from chorechamp.services.award_service import award_bonus
from chorechamp.services.badge_service import evaluate_badges
from chorechamp.services.household_service import is_household_member
from chorechamp.services.ledger_service import (
    get_balance,
    list_transactions,
    reconcile_balance,
)
from chorechamp.services.level_service import get_level_from_points
from chorechamp.services.streak_service import displayed_current_streak, get_streak

router = APIRouter(prefix="/points", tags=["Points"])


@router.get("/balance", response_model=PointBalanceResponse)
async def get_my_balance(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Current balance, lifetime totals, streak and level of the caller."""
    balance = await get_balance(db, membership.user_id, membership.household_id)
    streak = await get_streak(db, membership.user_id)
    total_earned = balance.total_earned if balance is not None else 0
    level = get_level_from_points(total_earned)

    return PointBalanceResponse(
        user_id=membership.user_id,
        household_id=membership.household_id,
        current_balance=balance.current_balance if balance is not None else 0,
        total_earned=total_earned,
        total_spent=balance.total_spent if balance is not None else 0,
        current_streak=displayed_current_streak(streak, datetime.now(timezone.utc).date()),
        longest_streak=streak.longest_streak if streak is not None else 0,
        level=level.level,
        level_title=level.title,
    )


@router.get("/history", response_model=PointHistoryResponse)
async def get_history(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
    filter: str = Query("all", description="all | earned | spent"),
    page: int = Query(1),
    limit: int = Query(20),
):
    """Paginated ledger of the caller, newest first."""
    items, total = await list_transactions(
        db, membership.user_id, membership.household_id,
        filter=filter, page=page, limit=limit,
    )
    return PointHistoryResponse(
        items=[PointTransactionResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        limit=limit,
        has_more=page * limit < total,
    )


@router.post("/bonus", response_model=BonusResponse, status_code=201)
@limiter.limit(BONUS_RATE_LIMIT)
async def grant_bonus(
    request: Request,
    body: BonusRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Admin grants bonus points to a member of their household."""
    transaction = await award_bonus(
        db,
        granter_id=membership.user_id,
        household_id=membership.household_id,
        recipient_id=body.user_id,
        points=body.points,
        reason=body.reason,
    )
    unlocked = await evaluate_badges(db, body.user_id, membership.household_id)
    return BonusResponse(
        transaction=PointTransactionResponse.model_validate(transaction),
        unlocked_badges=unlocked,
    )


@router.post("/reconcile", response_model=ReconcileResponse)
@limiter.limit(RECONCILE_RATE_LIMIT)
async def reconcile(
    request: Request,
    body: ReconcileRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(require_admin),
):
    """Rebuild a member's balance from the ledger if it drifted (admin only)."""
    if not await is_household_member(db, body.user_id, membership.household_id):
        raise NotFoundError("User is not a member of this household")
    result = await reconcile_balance(db, body.user_id, membership.household_id)
    return ReconcileResponse.model_validate(result)
