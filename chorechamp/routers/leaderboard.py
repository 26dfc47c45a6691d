"""Leaderboard and statistics router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.schemas.leaderboard import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    UserStatisticsResponse,
)
from chorechamp.services.leaderboard_service import get_leaderboard, get_statistics

router = APIRouter(tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def household_leaderboard(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
    period: str = Query("all_time", description="this_week | this_month | all_time"),
):
    """Rank the members of the caller's household."""
    entries = await get_leaderboard(
        db, membership.household_id, membership.user_id, period=period,
    )
    return LeaderboardResponse(
        period=period,
        entries=[LeaderboardEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/statistics", response_model=UserStatisticsResponse)
async def my_statistics(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Week and month comparison statistics for the caller."""
    stats = await get_statistics(db, membership.user_id, membership.household_id)
    return UserStatisticsResponse.model_validate(stats)
