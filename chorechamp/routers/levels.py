"""Levels and badges router."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.dependencies import get_current_membership, get_current_user
from chorechamp.database import get_db
from chorechamp.models.household import HouseholdMember
from chorechamp.schemas.levels import (
    BadgeDefinitionResponse,
    BadgeOverviewResponse,
    LevelInfoResponse,
)
from chorechamp.services.badge_service import get_badge_overview, list_badge_definitions
from chorechamp.services.ledger_service import get_balance
from chorechamp.services.level_service import get_level_info

router = APIRouter(tags=["Levels"])


@router.get("/levels/me", response_model=LevelInfoResponse)
async def my_level(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    balance = await get_balance(db, membership.user_id, membership.household_id)
    return get_level_info(balance.total_earned if balance is not None else 0)


@router.get("/badges", response_model=list[BadgeDefinitionResponse])
async def list_badges(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user=Depends(get_current_user),
):
    """All badge definitions."""
    return await list_badge_definitions(db)


@router.get("/badges/me", response_model=BadgeOverviewResponse)
async def my_badges(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: HouseholdMember = Depends(get_current_membership),
):
    """Every badge with the caller's status and progress."""
    return await get_badge_overview(db, membership.user_id, membership.household_id)
