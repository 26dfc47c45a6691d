import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from chorechamp.database import Base

TRANSACTION_TYPES = (
    "chore_completion",
    "bonus",
    "undo",
    "reward_redemption",
    "streak_bonus",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PointTransaction(Base):
    """Immutable ledger entry. Corrections are new, compensating rows."""

    __tablename__ = "point_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False,
    )
    household_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("households.id"), nullable=False,
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)  # signed
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True,
    )  # chore id, redemption id or badge id
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        CheckConstraint("points <> 0", name="ck_point_tx_nonzero"),
        Index("ix_point_tx_user_household_created", "user_id", "household_id", "created_at"),
        Index("ix_point_tx_household_created", "household_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointTransaction(id={self.id}, type={self.transaction_type!r}, "
            f"points={self.points})>"
        )


class PointBalance(Base):
    """Projection of the ledger for one (user, household) pair."""

    __tablename__ = "point_balances"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False,
    )
    household_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("households.id"), nullable=False,
    )
    current_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "household_id", name="uq_point_balance_user_household"),
    )

    def __repr__(self) -> str:
        return f"<PointBalance(user_id={self.user_id}, current={self.current_balance})>"


class UserStreak(Base):
    __tablename__ = "user_streaks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, unique=True,
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<UserStreak(user_id={self.user_id}, current={self.current_streak}, "
            f"longest={self.longest_streak})>"
        )
