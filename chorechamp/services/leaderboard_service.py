"""Leaderboard & Statistics Service.

Read-side aggregation over the ledger. Nothing in here writes to the
database; household rankings are cached in Redis for a short TTL and
invalidated whenever points move in the household.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.config import settings
from chorechamp.core.exceptions import ValidationError
from chorechamp.core.redis_client import cache_delete, cache_get_json, cache_set_json
from chorechamp.models.chore import Chore, ChoreCompletion
from chorechamp.models.points import PointBalance, PointTransaction
from chorechamp.services.household_service import list_member_profiles
from chorechamp.services.ledger_service import earning_entry
from chorechamp.services.streak_service import as_utc, displayed_current_streak, get_streak

logger = logging.getLogger(__name__)

LEADERBOARD_PERIODS = ("this_week", "this_month", "all_time")


@dataclass
class LeaderboardEntry:
    user_id: uuid.UUID
    display_name: str
    avatar_url: str | None
    total_points: int
    current_balance: int
    rank: int
    is_current_user: bool


@dataclass
class UserStatistics:
    points_earned_this_week: int
    points_earned_this_month: int
    chores_completed_this_week: int
    chores_completed_this_month: int
    previous_week_points: int
    previous_month_points: int
    previous_week_chores: int
    previous_month_chores: int
    current_streak: int
    longest_streak: int
    total_points_earned: int
    total_chores_completed: int
    weekly_points_change: int
    monthly_points_change: int
    weekly_chores_change: int
    monthly_chores_change: int


# ---------------------------------------------------------------------------
# Period boundaries (UTC)
# ---------------------------------------------------------------------------

def week_start(now: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing ``now``."""
    now = as_utc(now)
    monday = now.date() - timedelta(days=now.weekday())
    return datetime(monday.year, monday.month, monday.day, tzinfo=timezone.utc)


def month_start(now: datetime) -> datetime:
    now = as_utc(now)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def previous_month_start(now: datetime) -> datetime:
    last_day_of_previous = month_start(now) - timedelta(days=1)
    return datetime(
        last_day_of_previous.year, last_day_of_previous.month, 1, tzinfo=timezone.utc,
    )


def period_start(period: str, now: datetime) -> datetime | None:
    """Start of the leaderboard window; None means all time."""
    if period == "this_week":
        return week_start(now)
    if period == "this_month":
        return month_start(now)
    if period == "all_time":
        return None
    raise ValidationError(f"period must be one of {', '.join(LEADERBOARD_PERIODS)}")


def percentage_change(current: int, previous: int) -> int:
    """Whole-percent change from ``previous`` to ``current``.

    100 when starting from zero, 0 when both are zero.
    """
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------

def _cache_key(household_id: uuid.UUID, period: str) -> str:
    return f"leaderboard:{household_id}:{period}"


async def invalidate_leaderboard(household_id: uuid.UUID) -> None:
    await cache_delete(*(_cache_key(household_id, p) for p in LEADERBOARD_PERIODS))


async def _compute_standings(
    db: AsyncSession,
    household_id: uuid.UUID,
    start: datetime | None,
) -> list[dict]:
    """All members with their window totals, best first."""
    members = await list_member_profiles(db, household_id)

    balance_rows = await db.execute(
        select(
            PointBalance.user_id,
            PointBalance.current_balance,
            PointBalance.total_earned,
        ).where(PointBalance.household_id == household_id)
    )
    balances = {row.user_id: row for row in balance_rows}

    if start is None:
        totals = {uid: row.total_earned for uid, row in balances.items()}
    else:
        period_rows = await db.execute(
            select(
                PointTransaction.user_id,
                func.sum(PointTransaction.points).label("earned"),
            )
            .where(
                PointTransaction.household_id == household_id,
                earning_entry,
                PointTransaction.created_at >= start,
            )
            .group_by(PointTransaction.user_id)
        )
        totals = {row.user_id: int(row.earned) for row in period_rows}

    standings = []
    for order, member in enumerate(members):
        balance = balances.get(member.id)
        standings.append({
            "user_id": str(member.id),
            "display_name": member.display_name,
            "avatar_url": member.avatar_url,
            "total_points": totals.get(member.id, 0),
            "current_balance": balance.current_balance if balance is not None else 0,
            "order": order,
        })

    standings.sort(
        key=lambda s: (-s["total_points"], s["display_name"].casefold(), s["order"])
    )
    return standings


async def get_leaderboard(
    db: AsyncSession,
    household_id: uuid.UUID,
    requesting_user_id: uuid.UUID,
    period: str = "all_time",
    now: datetime | None = None,
) -> list[LeaderboardEntry]:
    """Rank household members by points in the requested window.

    Ranks are sequential. Members without points in the window are left out,
    except the requesting user who always sees their own entry.
    """
    now = now or datetime.now(timezone.utc)
    start = period_start(period, now)
    start_marker = start.isoformat() if start is not None else None

    key = _cache_key(household_id, period)
    cached = await cache_get_json(key)
    if cached is not None and cached.get("period_start") == start_marker:
        standings = cached["standings"]
    else:
        standings = await _compute_standings(db, household_id, start)
        await cache_set_json(
            key,
            {"period_start": start_marker, "standings": standings},
            settings.LEADERBOARD_CACHE_TTL,
        )

    requester = str(requesting_user_id)
    entries: list[LeaderboardEntry] = []
    for standing in standings:
        is_me = standing["user_id"] == requester
        if standing["total_points"] <= 0 and not is_me:
            continue
        entries.append(LeaderboardEntry(
            user_id=uuid.UUID(standing["user_id"]),
            display_name=standing["display_name"],
            avatar_url=standing["avatar_url"],
            total_points=standing["total_points"],
            current_balance=standing["current_balance"],
            rank=len(entries) + 1,
            is_current_user=is_me,
        ))
    return entries


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

async def _points_between(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    start: datetime,
    end: datetime | None = None,
) -> int:
    conditions = [
        PointTransaction.user_id == user_id,
        PointTransaction.household_id == household_id,
        earning_entry,
        PointTransaction.created_at >= start,
    ]
    if end is not None:
        conditions.append(PointTransaction.created_at < end)
    result = await db.execute(
        select(func.coalesce(func.sum(PointTransaction.points), 0)).where(*conditions)
    )
    return int(result.scalar_one())


async def count_completed_chores(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    """Completions by the user in the household that were not undone."""
    conditions = [
        ChoreCompletion.user_id == user_id,
        ChoreCompletion.undone_at.is_(None),
        Chore.household_id == household_id,
    ]
    if start is not None:
        conditions.append(ChoreCompletion.completed_at >= start)
    if end is not None:
        conditions.append(ChoreCompletion.completed_at < end)
    result = await db.execute(
        select(func.count(ChoreCompletion.id))
        .join(Chore, Chore.id == ChoreCompletion.chore_id)
        .where(*conditions)
    )
    return result.scalar_one()


async def get_statistics(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    now: datetime | None = None,
) -> UserStatistics:
    now = as_utc(now or datetime.now(timezone.utc))
    this_week = week_start(now)
    last_week = this_week - timedelta(days=7)
    this_month = month_start(now)
    last_month = previous_month_start(now)

    week_points = await _points_between(db, user_id, household_id, this_week)
    month_points = await _points_between(db, user_id, household_id, this_month)
    prev_week_points = await _points_between(db, user_id, household_id, last_week, this_week)
    prev_month_points = await _points_between(db, user_id, household_id, last_month, this_month)

    week_chores = await count_completed_chores(db, user_id, household_id, this_week)
    month_chores = await count_completed_chores(db, user_id, household_id, this_month)
    prev_week_chores = await count_completed_chores(
        db, user_id, household_id, last_week, this_week,
    )
    prev_month_chores = await count_completed_chores(
        db, user_id, household_id, last_month, this_month,
    )
    total_chores = await count_completed_chores(db, user_id, household_id)

    balance = (await db.execute(
        select(PointBalance.total_earned).where(
            PointBalance.user_id == user_id,
            PointBalance.household_id == household_id,
        )
    )).scalar_one_or_none()

    streak = await get_streak(db, user_id)

    return UserStatistics(
        points_earned_this_week=week_points,
        points_earned_this_month=month_points,
        chores_completed_this_week=week_chores,
        chores_completed_this_month=month_chores,
        previous_week_points=prev_week_points,
        previous_month_points=prev_month_points,
        previous_week_chores=prev_week_chores,
        previous_month_chores=prev_month_chores,
        current_streak=displayed_current_streak(streak, now.date()),
        longest_streak=streak.longest_streak if streak is not None else 0,
        total_points_earned=balance or 0,
        total_chores_completed=total_chores,
        weekly_points_change=percentage_change(week_points, prev_week_points),
        monthly_points_change=percentage_change(month_points, prev_month_points),
        weekly_chores_change=percentage_change(week_chores, prev_week_chores),
        monthly_chores_change=percentage_change(month_chores, prev_month_chores),
    )
