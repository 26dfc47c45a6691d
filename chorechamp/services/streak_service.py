"""Streak Service.

Consecutive-day streaks of chore completions, counted in UTC days.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.models.points import UserStreak

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day(value: datetime) -> date:
    return as_utc(value).date()


async def get_streak(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> UserStreak | None:
    result = await db.execute(
        select(UserStreak).where(UserStreak.user_id == user_id)
    )
    return result.scalar_one_or_none()


def displayed_current_streak(streak: UserStreak | None, today: date) -> int:
    """Current streak as shown to the user.

    A stored streak whose last completion is older than yesterday is broken,
    even though the row is only rewritten on the next completion.
    """
    if streak is None or streak.last_completion_date is None:
        return 0
    if streak.last_completion_date < today - timedelta(days=1):
        return 0
    return streak.current_streak


async def record_activity(
    db: AsyncSession,
    user_id: uuid.UUID,
    completed_at: datetime,
) -> UserStreak:
    """Count a completion towards the user's streak.

    Same UTC day as the last completion leaves the streak unchanged, the day
    after extends it by one, any later day restarts it at 1.
    """
    today = utc_day(completed_at)
    streak = await get_streak(db, user_id)

    if streak is None:
        streak = UserStreak(
            user_id=user_id,
            current_streak=1,
            longest_streak=1,
            last_completion_date=today,
            updated_at=as_utc(completed_at),
        )
        db.add(streak)
        await db.flush()
        return streak

    last = streak.last_completion_date
    if last == today:
        return streak

    if last is not None and last == today - timedelta(days=1):
        streak.current_streak += 1
    elif last is not None and last > today:
        # Out-of-order timestamp; never move the streak backwards.
        logger.warning(
            "Ignoring streak activity for user=%s dated %s before last completion %s",
            user_id, today, last,
        )
        return streak
    else:
        streak.current_streak = 1

    streak.longest_streak = max(streak.longest_streak, streak.current_streak)
    streak.last_completion_date = today
    streak.updated_at = as_utc(completed_at)
    await db.flush()
    return streak
