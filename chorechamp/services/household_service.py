"""Household membership lookups.

Membership and roles are owned by the household module; the ledger only
needs to ask who belongs where and who may administer a household.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.models.household import HouseholdMember
from chorechamp.models.user import User


async def get_membership(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> HouseholdMember | None:
    """Return the household membership of a user, if any."""
    result = await db.execute(
        select(HouseholdMember).where(HouseholdMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def is_household_member(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(HouseholdMember.id).where(
            HouseholdMember.user_id == user_id,
            HouseholdMember.household_id == household_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def is_household_admin(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(HouseholdMember.role).where(
            HouseholdMember.user_id == user_id,
            HouseholdMember.household_id == household_id,
        )
    )
    return result.scalar_one_or_none() == "admin"


async def list_member_profiles(
    db: AsyncSession,
    household_id: uuid.UUID,
) -> list[User]:
    """Profiles of all household members in stable membership order."""
    result = await db.execute(
        select(User)
        .join(HouseholdMember, HouseholdMember.user_id == User.id)
        .where(HouseholdMember.household_id == household_id)
        .order_by(HouseholdMember.joined_at, HouseholdMember.id)
    )
    return list(result.scalars().all())
