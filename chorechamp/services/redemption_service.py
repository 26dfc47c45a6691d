"""Redemption Service.

Fulfilment side of the reward redemption workflow. Charging and refunding
go through the Award Engine; this module moves a pending redemption to
``fulfilled`` and lists redemptions for members and admins.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chorechamp.models.reward import Redemption
from chorechamp.services.award_service import refund_redemption
from chorechamp.services.household_service import is_household_admin
from chorechamp.services.ledger_service import sanitize_text

logger = logging.getLogger(__name__)

REDEMPTION_STATUSES = ("pending", "fulfilled", "cancelled")
MAX_NOTES_LENGTH = 500
MAX_LIST_LIMIT = 100


async def get_redemption(db: AsyncSession, redemption_id: uuid.UUID) -> Redemption:
    result = await db.execute(select(Redemption).where(Redemption.id == redemption_id))
    redemption = result.scalar_one_or_none()
    if redemption is None:
        raise NotFoundError("Redemption not found")
    return redemption


async def fulfill_redemption(
    db: AsyncSession,
    redemption_id: uuid.UUID,
    admin_id: uuid.UUID,
    notes: str | None = None,
    now: datetime | None = None,
) -> Redemption:
    """Mark a pending redemption as handed out. One-way and terminal."""
    redemption = await get_redemption(db, redemption_id)
    if not await is_household_admin(db, admin_id, redemption.household_id):
        raise ForbiddenError("Only household admins can fulfill redemptions")
    if redemption.status != "pending":
        raise InvalidStateError(
            f"Only pending redemptions can be fulfilled (current status: {redemption.status})"
        )
    notes = sanitize_text(notes, MAX_NOTES_LENGTH, field="notes")

    result = await db.execute(
        update(Redemption)
        .where(Redemption.id == redemption_id, Redemption.status == "pending")
        .values(
            status="fulfilled",
            fulfilled_at=now or datetime.now(timezone.utc),
            fulfilled_by=admin_id,
            fulfillment_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidStateError("Redemption is no longer pending")

    await db.refresh(redemption)
    logger.info("Redemption %s fulfilled by %s", redemption_id, admin_id)
    return redemption


async def cancel_redemption(
    db: AsyncSession,
    redemption_id: uuid.UUID,
    actor_id: uuid.UUID,
    now: datetime | None = None,
) -> Redemption:
    return await refund_redemption(db, redemption_id, actor_id, now=now)


async def list_redemptions(
    db: AsyncSession,
    household_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Redemption], int]:
    """Redemptions of a household, newest first; restricted to one member if given."""
    if status is not None and status not in REDEMPTION_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(REDEMPTION_STATUSES)}")
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    conditions = [Redemption.household_id == household_id]
    if user_id is not None:
        conditions.append(Redemption.user_id == user_id)
    if status is not None:
        conditions.append(Redemption.status == status)

    total = (await db.execute(
        select(func.count(Redemption.id)).where(*conditions)
    )).scalar_one()

    result = await db.execute(
        select(Redemption)
        .where(*conditions)
        .order_by(Redemption.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total
