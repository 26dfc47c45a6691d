"""Ledger Service.

Append-only point ledger plus the per-member balance projection.

Every balance change goes through ``append_transaction``: the projection row
is moved with a single atomic ``UPDATE ... SET x = x + :delta`` and the new
ledger row records the resulting ``balance_after``. Both writes land in the
caller's unit of work, so they are committed or rolled back together.
"""

import logging
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from chorechamp.core.exceptions import (
    ConcurrencyConflictError,
    InsufficientBalanceError,
    ValidationError,
)
from chorechamp.database import dialect_name, set_lock_timeout
from chorechamp.models.points import TRANSACTION_TYPES, PointBalance, PointTransaction

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 500
MAX_PAGE_SIZE = 100
TRANSACTION_FILTERS = ("all", "earned", "spent")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# lock_not_available, serialization_failure, deadlock_detected
_CONTENTION_SQLSTATES = {"55P03", "40001", "40P01"}


@dataclass(frozen=True)
class PointTransactionInput:
    user_id: uuid.UUID
    household_id: uuid.UUID
    points: int
    transaction_type: str
    reference_id: str | None = None
    description: str | None = None
    created_by: uuid.UUID | None = None
    created_at: datetime | None = None


@dataclass
class ReconcileResult:
    user_id: uuid.UUID
    household_id: uuid.UUID
    consistent: bool
    ledger_balance: int
    ledger_earned: int
    ledger_spent: int
    projected_balance: int | None


def sanitize_text(
    value: str | None,
    max_length: int = MAX_DESCRIPTION_LENGTH,
    field: str = "description",
) -> str | None:
    """Strip control characters and surrounding whitespace, enforce length."""
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", value).strip()
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return cleaned or None


def is_refund(transaction_type: str, points: int) -> bool:
    """A positive ``undo`` gives back points spent earlier; it is not earning."""
    return transaction_type == "undo" and points > 0


# SQL counterpart of ``points > 0 and not is_refund(...)``
earning_entry = and_(PointTransaction.points > 0, PointTransaction.transaction_type != "undo")


def _is_contention(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONTENTION_SQLSTATES:
        return True
    return "database is locked" in str(orig)


@asynccontextmanager
async def ledger_write(db: AsyncSession) -> AsyncIterator[None]:
    """Wrap a block of ledger writes.

    Bounds lock waits on PostgreSQL and turns lock timeouts, deadlocks and
    serialization failures into ``ConcurrencyConflictError``.
    """
    await set_lock_timeout(db)
    try:
        yield
    except DBAPIError as exc:
        if _is_contention(exc):
            logger.warning("Ledger write contention: %s", exc.orig)
            raise ConcurrencyConflictError(
                "The balance is being updated concurrently, please retry"
            ) from exc
        raise


# ---------------------------------------------------------------------------
# Balance projection
# ---------------------------------------------------------------------------

async def get_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> PointBalance | None:
    """Return the balance row, or None if the member never had a transaction."""
    result = await db.execute(
        select(PointBalance)
        .where(
            PointBalance.user_id == user_id,
            PointBalance.household_id == household_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _ensure_balance_row(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    now: datetime,
) -> None:
    """Create the zero balance row on first use; no-op if it already exists."""
    values = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        household_id=household_id,
        current_balance=0,
        total_earned=0,
        total_spent=0,
        updated_at=now,
    )
    dialect = dialect_name(db)
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        if await get_balance(db, user_id, household_id) is None:
            db.add(PointBalance(**values))
            await db.flush()
        return

    stmt = insert(PointBalance).values(**values).on_conflict_do_nothing(
        index_elements=["user_id", "household_id"],
    )
    await db.execute(stmt)


async def apply_delta(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    points: int,
    min_balance: int | None = None,
    now: datetime | None = None,
    refund: bool = False,
) -> PointBalance:
    """Atomically move a balance by ``points``.

    Positive deltas add to ``total_earned``, negative deltas add their
    magnitude to ``total_spent``. A ``refund`` takes its points back off
    ``total_spent`` instead, so cancelled spending never counts as earning.
    With ``min_balance`` set, the update only applies if the resulting
    balance stays at or above it; otherwise ``InsufficientBalanceError`` is
    raised and nothing is written.
    """
    now = now or datetime.now(timezone.utc)
    if refund:
        earned, spent = 0, -points
    else:
        earned, spent = max(points, 0), max(-points, 0)

    if min_balance is None:
        await _ensure_balance_row(db, user_id, household_id, now)

    stmt = (
        update(PointBalance)
        .where(
            PointBalance.user_id == user_id,
            PointBalance.household_id == household_id,
        )
        .values(
            current_balance=PointBalance.current_balance + points,
            total_earned=PointBalance.total_earned + earned,
            total_spent=PointBalance.total_spent + spent,
            updated_at=now,
        )
        .returning(PointBalance.current_balance)
        .execution_options(synchronize_session=False)
    )
    if min_balance is not None:
        stmt = stmt.where(PointBalance.current_balance + points >= min_balance)

    result = await db.execute(stmt)
    new_balance = result.scalar_one_or_none()

    if new_balance is None:
        if min_balance is not None:
            existing = await get_balance(db, user_id, household_id)
            available = existing.current_balance if existing is not None else 0
            raise InsufficientBalanceError(available, -points)
        raise ConcurrencyConflictError("Balance row disappeared during update")

    balance = await get_balance(db, user_id, household_id)
    return balance


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def _validate_entry(entry: PointTransactionInput) -> str | None:
    if isinstance(entry.points, bool) or not isinstance(entry.points, int):
        raise ValidationError("points must be an integer")
    if entry.points == 0:
        raise ValidationError("points must not be zero")
    if entry.transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {entry.transaction_type}")
    return sanitize_text(entry.description)


async def append_transaction(
    db: AsyncSession,
    entry: PointTransactionInput,
    min_balance: int | None = None,
) -> PointTransaction:
    """Append one ledger entry and move the balance projection with it.

    ``balance_after`` is the balance returned by the atomic projection
    update, so concurrent appends for the same member each see their own
    running total.
    """
    description = _validate_entry(entry)
    now = entry.created_at or datetime.now(timezone.utc)

    balance = await apply_delta(
        db, entry.user_id, entry.household_id, entry.points,
        min_balance=min_balance, now=now,
        refund=is_refund(entry.transaction_type, entry.points),
    )

    transaction = PointTransaction(
        user_id=entry.user_id,
        household_id=entry.household_id,
        points=entry.points,
        transaction_type=entry.transaction_type,
        reference_id=entry.reference_id,
        description=description,
        balance_after=balance.current_balance,
        created_by=entry.created_by,
        created_at=now,
    )
    db.add(transaction)
    await db.flush()

    logger.info(
        "Ledger: %s %+d for user=%s household=%s -> balance %d",
        entry.transaction_type, entry.points, entry.user_id,
        entry.household_id, balance.current_balance,
    )
    return transaction


async def list_transactions(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
    filter: str = "all",
    page: int = 1,
    limit: int = 20,
) -> tuple[list[PointTransaction], int]:
    """Return one page of a member's history (newest first) and the total count."""
    if filter not in TRANSACTION_FILTERS:
        raise ValidationError(f"filter must be one of {', '.join(TRANSACTION_FILTERS)}")
    if page < 1:
        raise ValidationError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    conditions = [
        PointTransaction.user_id == user_id,
        PointTransaction.household_id == household_id,
    ]
    if filter == "earned":
        conditions.append(PointTransaction.points > 0)
    elif filter == "spent":
        conditions.append(PointTransaction.points < 0)

    total = (await db.execute(
        select(func.count(PointTransaction.id)).where(*conditions)
    )).scalar_one()

    result = await db.execute(
        select(PointTransaction)
        .where(*conditions)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.balance_after.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def ledger_totals(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> tuple[int, int, int]:
    """Replay the ledger: (balance, earned, spent) as sums over all entries.

    Refunds count against spending, exactly as ``apply_delta`` books them.
    """
    row = (await db.execute(
        select(
            func.coalesce(func.sum(PointTransaction.points), 0),
            func.coalesce(func.sum(
                case((earning_entry, PointTransaction.points), else_=0)
            ), 0),
            func.coalesce(func.sum(
                case(
                    (
                        or_(PointTransaction.points < 0, PointTransaction.transaction_type == "undo"),
                        -PointTransaction.points,
                    ),
                    else_=0,
                )
            ), 0),
        ).where(
            PointTransaction.user_id == user_id,
            PointTransaction.household_id == household_id,
        )
    )).one()
    return int(row[0]), int(row[1]), int(row[2])


async def reconcile_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    household_id: uuid.UUID,
) -> ReconcileResult:
    """Compare the projection with a ledger replay and repair it if needed."""
    ledger_balance, ledger_earned, ledger_spent = await ledger_totals(
        db, user_id, household_id,
    )
    balance = await get_balance(db, user_id, household_id)

    projected = balance.current_balance if balance is not None else None
    if balance is None:
        consistent = ledger_balance == 0 and ledger_earned == 0 and ledger_spent == 0
    else:
        consistent = (
            balance.current_balance == ledger_balance
            and balance.total_earned == ledger_earned
            and balance.total_spent == ledger_spent
        )

    if not consistent:
        logger.warning(
            "Balance mismatch for user=%s household=%s: projected=%s ledger=%d; rebuilding",
            user_id, household_id, projected, ledger_balance,
        )
        async with ledger_write(db):
            if balance is None:
                balance = PointBalance(user_id=user_id, household_id=household_id)
                db.add(balance)
            balance.current_balance = ledger_balance
            balance.total_earned = ledger_earned
            balance.total_spent = ledger_spent
            balance.updated_at = datetime.now(timezone.utc)
            await db.flush()

    return ReconcileResult(
        user_id=user_id,
        household_id=household_id,
        consistent=consistent,
        ledger_balance=ledger_balance,
        ledger_earned=ledger_earned,
        ledger_spent=ledger_spent,
        projected_balance=projected,
    )
