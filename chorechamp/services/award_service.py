"""Award Engine.

The single write path for everything that moves a point balance: chore
completion and its undo, admin bonuses, reward redemptions and their
refunds, and badge rewards.

Each operation runs in the caller's unit of work. All checks that can be
made up front are made before the first write; the remaining races are
closed by conditional UPDATEs, and any error raised after a write rolls the
whole request back in ``get_db``.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.config import settings
from chorechamp.core.exceptions import (
    AlreadyCompletedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UndoWindowExpiredError,
    ValidationError,
)
from chorechamp.models.chore import Chore, ChoreCompletion
from chorechamp.models.points import PointBalance, PointTransaction, UserStreak
from chorechamp.models.reward import Redemption, Reward
from chorechamp.services.household_service import is_household_admin, is_household_member
from chorechamp.services.leaderboard_service import invalidate_leaderboard
from chorechamp.services.ledger_service import (
    PointTransactionInput,
    append_transaction,
    get_balance,
    ledger_write,
    sanitize_text,
)
from chorechamp.services.level_service import LevelDefinition, get_level_from_points
from chorechamp.services.streak_service import as_utc, record_activity, utc_day

logger = logging.getLogger(__name__)

# Streak length -> one-off bonus granted on the day the streak reaches it.
STREAK_BONUS_POINTS = {7: 20, 30: 100}

MAX_BONUS_REASON_LENGTH = 200


@dataclass
class AwardResult:
    transaction: PointTransaction
    balance: PointBalance
    completion: ChoreCompletion
    streak: UserStreak
    streak_bonus: PointTransaction | None
    level_before: LevelDefinition
    level_after: LevelDefinition
    undo_available_until: datetime

    @property
    def leveled_up(self) -> bool:
        return self.level_after.level > self.level_before.level


@dataclass
class UndoResult:
    transaction: PointTransaction
    balance: PointBalance
    chore: Chore
    reversed_bonuses: list[PointTransaction] = field(default_factory=list)

    @property
    def bonus_points_removed(self) -> int:
        return -sum(t.points for t in self.reversed_bonuses)


@dataclass
class ChargeResult:
    redemption: Redemption
    transaction: PointTransaction
    balance: PointBalance


def _now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def undo_deadline(completed_at: datetime) -> datetime:
    return as_utc(completed_at) + timedelta(hours=settings.UNDO_WINDOW_HOURS)


def can_undo(completed_at: datetime, now: datetime | None = None) -> bool:
    """Whether a completion is still inside the undo window."""
    return _now(now) <= undo_deadline(completed_at)


async def _get_household_chore(
    db: AsyncSession,
    chore_id: uuid.UUID,
    household_id: uuid.UUID,
) -> Chore:
    result = await db.execute(
        select(Chore).where(Chore.id == chore_id, Chore.household_id == household_id)
    )
    chore = result.scalar_one_or_none()
    if chore is None:
        raise NotFoundError("Chore not found")
    return chore


async def _total_earned(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> int:
    balance = await get_balance(db, user_id, household_id)
    return balance.total_earned if balance is not None else 0


async def _active_streak_bonuses(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    *conditions,
) -> list[PointTransaction]:
    """Streak bonuses matching ``conditions`` that no undo entry reversed.

    A reversal is an ``undo`` entry whose reference_id is the bonus entry's id.
    """
    result = await db.execute(
        select(PointTransaction).where(
            PointTransaction.user_id == user_id,
            PointTransaction.household_id == household_id,
            PointTransaction.transaction_type == "streak_bonus",
            *conditions,
        )
    )
    bonuses = list(result.scalars().all())
    if not bonuses:
        return []

    reversed_refs = await db.execute(
        select(PointTransaction.reference_id).where(
            PointTransaction.user_id == user_id,
            PointTransaction.household_id == household_id,
            PointTransaction.transaction_type == "undo",
            PointTransaction.reference_id.in_([str(b.id) for b in bonuses]),
        )
    )
    reversed_ids = set(reversed_refs.scalars().all())
    return [b for b in bonuses if str(b.id) not in reversed_ids]


async def _active_streak_bonuses_on(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    when: datetime,
) -> list[PointTransaction]:
    day_start = datetime.combine(utc_day(when), time.min, tzinfo=timezone.utc)
    return await _active_streak_bonuses(
        db, user_id, household_id,
        PointTransaction.created_at >= day_start,
        PointTransaction.created_at < day_start + timedelta(days=1),
    )


# ---------------------------------------------------------------------------
# Chore completion
# ---------------------------------------------------------------------------

async def award_chore_completion(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    chore_id: uuid.UUID,
    now: datetime | None = None,
) -> AwardResult:
    """Complete a chore and credit its points to the completer.

    The chore's status flip is the idempotency gate: a second completion
    (double click, retry) matches no row and raises AlreadyCompletedError.
    """
    now = _now(now)
    chore = await _get_household_chore(db, chore_id, household_id)
    if chore.status == "completed":
        raise AlreadyCompletedError(chore_id)
    if chore.points <= 0:
        raise ValidationError("Chore has no points to award")

    level_before = get_level_from_points(await _total_earned(db, user_id, household_id))

    async with ledger_write(db):
        result = await db.execute(
            update(Chore)
            .where(Chore.id == chore_id, Chore.status != "completed")
            .values(status="completed", completed_at=now, completed_by=user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyCompletedError(chore_id)

        completion = ChoreCompletion(
            chore_id=chore_id,
            user_id=user_id,
            points_awarded=chore.points,
            completed_at=now,
        )
        db.add(completion)

        transaction = await append_transaction(db, PointTransactionInput(
            user_id=user_id,
            household_id=household_id,
            points=chore.points,
            transaction_type="chore_completion",
            reference_id=str(chore_id),
            description=f"Completed: {chore.title}",
            created_by=user_id,
            created_at=now,
        ))

        streak = await record_activity(db, user_id, now)

        streak_bonus = None
        milestone_points = STREAK_BONUS_POINTS.get(streak.current_streak)
        if (
            milestone_points
            and streak.last_completion_date == utc_day(now)
            and not await _active_streak_bonuses_on(db, user_id, household_id, now)
        ):
            streak_bonus = await append_transaction(db, PointTransactionInput(
                user_id=user_id,
                household_id=household_id,
                points=milestone_points,
                transaction_type="streak_bonus",
                reference_id=str(chore_id),
                description=f"{streak.current_streak}-day streak bonus",
                created_at=now,
            ))
            logger.info(
                "Streak milestone %d reached by user=%s (+%d)",
                streak.current_streak, user_id, milestone_points,
            )

    await db.refresh(chore)
    await invalidate_leaderboard(household_id)

    balance = await get_balance(db, user_id, household_id)
    return AwardResult(
        transaction=transaction,
        balance=balance,
        completion=completion,
        streak=streak,
        streak_bonus=streak_bonus,
        level_before=level_before,
        level_after=get_level_from_points(balance.total_earned),
        undo_available_until=undo_deadline(now),
    )


async def _open_completion(
    db: AsyncSession,
    chore_id: uuid.UUID,
) -> ChoreCompletion | None:
    result = await db.execute(
        select(ChoreCompletion)
        .where(
            ChoreCompletion.chore_id == chore_id,
            ChoreCompletion.undone_at.is_(None),
        )
        .order_by(ChoreCompletion.completed_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def undo_completion(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    chore_id: uuid.UUID,
    now: datetime | None = None,
) -> UndoResult:
    """Reverse a recent completion with a compensating ledger entry.

    The points come off the completer's balance, whatever member asks for
    the undo. A streak bonus paid with this completion is reversed as well,
    so it can be earned again by the next completion that day. Streaks are
    left alone.
    """
    now = _now(now)
    chore = await _get_household_chore(db, chore_id, household_id)
    completion = await _open_completion(db, chore_id)
    if chore.status != "completed" or completion is None:
        raise InvalidStateError("Chore is not completed")
    if not can_undo(completion.completed_at, now):
        raise UndoWindowExpiredError(settings.UNDO_WINDOW_HOURS)

    async with ledger_write(db):
        result = await db.execute(
            update(ChoreCompletion)
            .where(
                ChoreCompletion.id == completion.id,
                ChoreCompletion.undone_at.is_(None),
            )
            .values(undone_at=now, undone_by=user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError("Completion was already undone")

        await db.execute(
            update(Chore)
            .where(Chore.id == chore_id)
            .values(status="pending", completed_at=None, completed_by=None)
            .execution_options(synchronize_session=False)
        )

        transaction = await append_transaction(db, PointTransactionInput(
            user_id=completion.user_id,
            household_id=household_id,
            points=-completion.points_awarded,
            transaction_type="undo",
            reference_id=str(chore_id),
            description=f"Undone: {chore.title}",
            created_by=user_id,
            created_at=now,
        ))

        # The bonus is written with the completion's timestamp and chore id.
        bonuses = await _active_streak_bonuses(
            db, completion.user_id, household_id,
            PointTransaction.reference_id == str(chore_id),
            PointTransaction.created_at >= as_utc(completion.completed_at),
        )
        reversed_bonuses = []
        for bonus in bonuses:
            reversed_bonuses.append(await append_transaction(db, PointTransactionInput(
                user_id=completion.user_id,
                household_id=household_id,
                points=-bonus.points,
                transaction_type="undo",
                reference_id=str(bonus.id),
                description=f"Undone: {bonus.description or 'streak bonus'}",
                created_by=user_id,
                created_at=now,
            )))
            logger.info(
                "Streak bonus %s reversed with completion of chore=%s", bonus.id, chore_id,
            )

    await db.refresh(chore)
    await db.refresh(completion)
    await invalidate_leaderboard(household_id)

    balance = await get_balance(db, completion.user_id, household_id)
    return UndoResult(
        transaction=transaction,
        balance=balance,
        chore=chore,
        reversed_bonuses=reversed_bonuses,
    )


# ---------------------------------------------------------------------------
# Bonus points
# ---------------------------------------------------------------------------

async def award_bonus(
    db: AsyncSession,
    granter_id: uuid.UUID,
    household_id: uuid.UUID,
    recipient_id: uuid.UUID,
    points: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> PointTransaction:
    """Admin grants extra points to a household member."""
    if not await is_household_admin(db, granter_id, household_id):
        raise ForbiddenError("Only household admins can grant bonus points")
    if (
        isinstance(points, bool)
        or not isinstance(points, int)
        or not settings.BONUS_POINTS_MIN <= points <= settings.BONUS_POINTS_MAX
    ):
        raise ValidationError(
            f"Bonus points must be between {settings.BONUS_POINTS_MIN} "
            f"and {settings.BONUS_POINTS_MAX}"
        )
    reason = sanitize_text(reason, MAX_BONUS_REASON_LENGTH, field="reason")
    if not await is_household_member(db, recipient_id, household_id):
        raise NotFoundError("User is not a member of this household")

    async with ledger_write(db):
        transaction = await append_transaction(db, PointTransactionInput(
            user_id=recipient_id,
            household_id=household_id,
            points=points,
            transaction_type="bonus",
            description=reason or "Bonus points",
            created_by=granter_id,
            created_at=_now(now),
        ))

    await invalidate_leaderboard(household_id)
    return transaction


async def award_badge_points(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    badge_id: str,
    points: int,
    badge_name: str | None = None,
    now: datetime | None = None,
) -> PointTransaction | None:
    """Grant a badge's point reward once.

    Returns None without writing when the badge carries no points or its
    points were already granted to this member.
    """
    if points <= 0:
        return None

    existing = await db.execute(
        select(PointTransaction.id).where(
            PointTransaction.user_id == user_id,
            PointTransaction.household_id == household_id,
            PointTransaction.transaction_type == "bonus",
            PointTransaction.reference_id == badge_id,
            PointTransaction.created_by.is_(None),
        ).limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        return None

    async with ledger_write(db):
        transaction = await append_transaction(db, PointTransactionInput(
            user_id=user_id,
            household_id=household_id,
            points=points,
            transaction_type="bonus",
            reference_id=badge_id,
            description=f"Badge unlocked: {badge_name or badge_id}",
            created_at=_now(now),
        ))

    await invalidate_leaderboard(household_id)
    return transaction


# ---------------------------------------------------------------------------
# Redemptions
# ---------------------------------------------------------------------------

async def charge_redemption(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    reward_id: uuid.UUID,
    now: datetime | None = None,
) -> ChargeResult:
    """Spend points on a reward and open a pending redemption.

    The balance is decremented conditionally, so a member can never go below
    zero; when the balance is short nothing at all is written.
    """
    now = _now(now)
    result = await db.execute(
        select(Reward).where(Reward.id == reward_id, Reward.household_id == household_id)
    )
    reward = result.scalar_one_or_none()
    if reward is None:
        raise NotFoundError("Reward not found")
    if reward.status != "published":
        raise InvalidStateError("Reward is not available")
    if (
        reward.quantity_available is not None
        and reward.quantity_claimed >= reward.quantity_available
    ):
        raise InvalidStateError("Reward is sold out")
    if reward.point_cost <= 0:
        raise ValidationError("Reward has no point cost")

    cost = reward.point_cost
    redemption_id = uuid.uuid4()

    async with ledger_write(db):
        transaction = await append_transaction(
            db,
            PointTransactionInput(
                user_id=user_id,
                household_id=household_id,
                points=-cost,
                transaction_type="reward_redemption",
                reference_id=str(redemption_id),
                description=f"Redeemed: {reward.name}",
                created_by=user_id,
                created_at=now,
            ),
            min_balance=0,
        )

        claimed = await db.execute(
            update(Reward)
            .where(
                Reward.id == reward_id,
                Reward.status == "published",
                or_(
                    Reward.quantity_available.is_(None),
                    Reward.quantity_claimed < Reward.quantity_available,
                ),
            )
            .values(quantity_claimed=Reward.quantity_claimed + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise InvalidStateError("Reward is sold out")

        redemption = Redemption(
            id=redemption_id,
            reward_id=reward_id,
            user_id=user_id,
            household_id=household_id,
            points_spent=cost,
            status="pending",
            created_at=now,
        )
        db.add(redemption)
        await db.flush()

    await db.refresh(reward)
    await invalidate_leaderboard(household_id)

    balance = await get_balance(db, user_id, household_id)
    logger.info("Redemption %s opened: user=%s reward=%s cost=%d", redemption_id, user_id, reward_id, cost)
    return ChargeResult(redemption=redemption, transaction=transaction, balance=balance)


async def refund_redemption(
    db: AsyncSession,
    redemption_id: uuid.UUID,
    actor_id: uuid.UUID,
    now: datetime | None = None,
) -> Redemption:
    """Cancel a pending redemption and give its points back.

    Allowed for the redeemer and for admins of the redemption's household.
    """
    now = _now(now)
    result = await db.execute(select(Redemption).where(Redemption.id == redemption_id))
    redemption = result.scalar_one_or_none()
    if redemption is None:
        raise NotFoundError("Redemption not found")
    if redemption.user_id != actor_id and not await is_household_admin(
        db, actor_id, redemption.household_id
    ):
        raise ForbiddenError("Only the redeemer or a household admin can cancel")
    if redemption.status != "pending":
        raise InvalidStateError(
            f"Only pending redemptions can be cancelled (current status: {redemption.status})"
        )

    async with ledger_write(db):
        cancelled = await db.execute(
            update(Redemption)
            .where(Redemption.id == redemption_id, Redemption.status == "pending")
            .values(status="cancelled", cancelled_at=now, cancelled_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        if cancelled.rowcount == 0:
            raise InvalidStateError("Redemption is no longer pending")

        await append_transaction(db, PointTransactionInput(
            user_id=redemption.user_id,
            household_id=redemption.household_id,
            points=redemption.points_spent,
            transaction_type="undo",
            reference_id=str(redemption_id),
            description="Redemption cancelled",
            created_by=actor_id,
            created_at=now,
        ))

        await db.execute(
            update(Reward)
            .where(Reward.id == redemption.reward_id, Reward.quantity_claimed > 0)
            .values(quantity_claimed=Reward.quantity_claimed - 1)
            .execution_options(synchronize_session=False)
        )

    await db.refresh(redemption)
    await invalidate_leaderboard(redemption.household_id)
    logger.info("Redemption %s cancelled by %s", redemption_id, actor_id)
    return redemption
