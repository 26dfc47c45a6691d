"""Badge Service.

Badge catalogue seeding, unlock evaluation and the per-member overview.
Unlocking is idempotent: a badge already earned is never inserted or paid
out again.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.models.badge import BadgeDefinition, UserBadge
from chorechamp.services.award_service import award_badge_points
from chorechamp.services.leaderboard_service import count_completed_chores
from chorechamp.services.ledger_service import get_balance
from chorechamp.services.streak_service import get_streak

logger = logging.getLogger(__name__)

DEFAULT_BADGES: tuple[dict, ...] = (
    {"id": "first_chore", "name": "First Steps", "description": "Complete your first chore",
     "icon": "star", "category": "completion", "criteria_type": "chores_completed",
     "criteria_value": 1, "points_reward": 5},
    {"id": "helping_hand", "name": "Helping Hand", "description": "Complete 10 chores",
     "icon": "hand", "category": "completion", "criteria_type": "chores_completed",
     "criteria_value": 10, "points_reward": 20},
    {"id": "chore_champion", "name": "Chore Champion", "description": "Complete 50 chores",
     "icon": "trophy", "category": "completion", "criteria_type": "chores_completed",
     "criteria_value": 50, "points_reward": 50},
    {"id": "century", "name": "Century", "description": "Complete 100 chores",
     "icon": "medal", "category": "completion", "criteria_type": "chores_completed",
     "criteria_value": 100, "points_reward": 100},
    {"id": "on_a_roll", "name": "On a Roll", "description": "Keep a 3-day streak",
     "icon": "flame", "category": "streak", "criteria_type": "streak_days",
     "criteria_value": 3, "points_reward": 10},
    {"id": "week_warrior", "name": "Week Warrior", "description": "Keep a 7-day streak",
     "icon": "calendar", "category": "streak", "criteria_type": "streak_days",
     "criteria_value": 7, "points_reward": 25},
    {"id": "unstoppable", "name": "Unstoppable", "description": "Keep a 30-day streak",
     "icon": "rocket", "category": "streak", "criteria_type": "streak_days",
     "criteria_value": 30, "points_reward": 100},
    {"id": "point_collector", "name": "Point Collector", "description": "Earn 100 points",
     "icon": "coins", "category": "points", "criteria_type": "total_points",
     "criteria_value": 100, "points_reward": 10},
    {"id": "point_hoarder", "name": "Point Hoarder", "description": "Earn 500 points",
     "icon": "gem", "category": "points", "criteria_type": "total_points",
     "criteria_value": 500, "points_reward": 25},
    {"id": "point_master", "name": "Point Master", "description": "Earn 1000 points",
     "icon": "crown", "category": "points", "criteria_type": "total_points",
     "criteria_value": 1000, "points_reward": 50},
    {"id": "founding_member", "name": "Founding Member",
     "description": "One of the first members of the household",
     "icon": "flag", "category": "special", "criteria_type": "special",
     "criteria_value": 1, "points_reward": 0},
)


async def seed_badge_definitions(db: AsyncSession) -> int:
    """Insert missing default badges. Existing rows are left untouched."""
    result = await db.execute(select(BadgeDefinition.id))
    existing = set(result.scalars().all())
    added = 0
    for badge in DEFAULT_BADGES:
        if badge["id"] not in existing:
            db.add(BadgeDefinition(**badge))
            added += 1
    if added:
        await db.flush()
        logger.info("Seeded %d badge definitions", added)
    return added


async def list_badge_definitions(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(
        select(BadgeDefinition).order_by(
            BadgeDefinition.category, BadgeDefinition.criteria_value, BadgeDefinition.id,
        )
    )
    return list(result.scalars().all())


async def _badge_counters(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> dict[str, int]:
    """Current value of every counter a badge criterion can refer to."""
    balance = await get_balance(db, user_id, household_id)
    streak = await get_streak(db, user_id)
    return {
        "chores_completed": await count_completed_chores(db, user_id, household_id),
        "streak_days": streak.longest_streak if streak is not None else 0,
        "total_points": balance.total_earned if balance is not None else 0,
    }


async def _earned_badges(db: AsyncSession, user_id: uuid.UUID) -> dict[str, UserBadge]:
    result = await db.execute(select(UserBadge).where(UserBadge.user_id == user_id))
    return {ub.badge_id: ub for ub in result.scalars().all()}


async def evaluate_badges(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    now: datetime | None = None,
) -> list[str]:
    """Unlock every badge whose criterion the member now meets.

    Returns the ids of badges unlocked by this call. Badge rewards are
    credited after the pass, so points granted here only count towards
    ``total_points`` badges on the next evaluation.
    """
    now = now or datetime.now(timezone.utc)
    earned = await _earned_badges(db, user_id)
    counters = await _badge_counters(db, user_id, household_id)

    unlocked: list[BadgeDefinition] = []
    for badge in await list_badge_definitions(db):
        if badge.id in earned or badge.criteria_type == "special":
            continue
        current = counters.get(badge.criteria_type)
        if current is None or current < badge.criteria_value:
            continue
        db.add(UserBadge(user_id=user_id, badge_id=badge.id, earned_at=now))
        unlocked.append(badge)

    if not unlocked:
        return []
    await db.flush()

    for badge in unlocked:
        logger.info("Badge %s unlocked by user=%s", badge.id, user_id)
        await award_badge_points(
            db, user_id, household_id, badge.id, badge.points_reward,
            badge_name=badge.name, now=now,
        )
    return [badge.id for badge in unlocked]


async def get_badge_overview(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> dict:
    """Every badge with the member's status and progress towards it."""
    earned = await _earned_badges(db, user_id)
    counters = await _badge_counters(db, user_id, household_id)

    badges = []
    for badge in await list_badge_definitions(db):
        user_badge = earned.get(badge.id)
        current = counters.get(badge.criteria_type, 0)
        if user_badge is not None:
            status, progress = "earned", 100
        else:
            target = badge.criteria_value
            progress = min(round(current / target * 100), 99) if target > 0 else 0
            status = "in_progress" if progress > 0 else "locked"
        badges.append({
            "id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "icon": badge.icon,
            "category": badge.category,
            "criteria": badge.criteria,
            "points_reward": badge.points_reward,
            "status": status,
            "progress": progress,
            "current_value": current,
            "target_value": badge.criteria_value,
            "earned_at": user_badge.earned_at if user_badge is not None else None,
        })

    earned_entries = [b for b in badges if b["status"] == "earned"]
    return {
        "badges": badges,
        "stats": {
            "total": len(badges),
            "earned": len(earned_entries),
            "in_progress": sum(1 for b in badges if b["status"] == "in_progress"),
            "locked": sum(1 for b in badges if b["status"] == "locked"),
            "total_points_from_badges": sum(b["points_reward"] for b in earned_entries),
        },
    }
