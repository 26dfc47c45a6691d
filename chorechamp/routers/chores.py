"""Chores router.

Completion and undo of household chores. Chore CRUD lives with the chore
module; these endpoints only drive the points side.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.schemas.chore import ChoreCompleteResponse, ChoreUndoResponse
from chorechamp.services.award_service import award_chore_completion, undo_completion
from chorechamp.services.badge_service import evaluate_badges
from chorechamp.services.ledger_service import get_balance
from chorechamp.services.level_service import get_level_from_points

router = APIRouter(prefix="/chores", tags=["Chores"])


@router.post("/{chore_id}/complete", response_model=ChoreCompleteResponse)
async def complete_chore(
    chore_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Complete a chore, credit its points and check for new badges."""
    result = await award_chore_completion(
        db, membership.user_id, membership.household_id, chore_id,
    )
    unlocked = await evaluate_badges(db, membership.user_id, membership.household_id)

    balance = await get_balance(db, membership.user_id, membership.household_id)
    level = get_level_from_points(balance.total_earned)
    points = result.transaction.points

    return ChoreCompleteResponse(
        chore_id=chore_id,
        points_earned=points,
        message=f"You earned {points} points!",
        new_balance=balance.current_balance,
        streak_bonus_points=result.streak_bonus.points if result.streak_bonus else 0,
        current_streak=result.streak.current_streak,
        level=level.level,
        level_title=level.title,
        leveled_up=level.level > result.level_before.level,
        unlocked_badges=unlocked,
        undo_available_until=result.undo_available_until,
    )


@router.post("/{chore_id}/undo", response_model=ChoreUndoResponse)
async def undo_chore(
    chore_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Undo a recent completion. The points come off the completer's balance."""
    result = await undo_completion(
        db, membership.user_id, membership.household_id, chore_id,
    )
    return ChoreUndoResponse(
        chore_id=chore_id,
        points_removed=-result.transaction.points,
        streak_bonus_removed=result.bonus_points_removed,
        new_balance=result.balance.current_balance,
        message="Completion undone",
    )
