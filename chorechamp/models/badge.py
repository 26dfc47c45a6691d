import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chorechamp.database import Base


class BadgeDefinition(Base):
    """Static reference data, seeded by migration and at startup."""

    __tablename__ = "badge_definitions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # slug
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False,
    )  # 'completion', 'streak', 'points', 'special'
    criteria_type: Mapped[str] = mapped_column(
        String(30), nullable=False,
    )  # 'chores_completed', 'streak_days', 'total_points', 'special'
    criteria_value: Mapped[int] = mapped_column(Integer, nullable=False)
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def criteria(self) -> dict:
        return {"type": self.criteria_type, "value": self.criteria_value}

    def __repr__(self) -> str:
        return f"<BadgeDefinition(id={self.id!r})>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True,
    )
    badge_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("badge_definitions.id"), nullable=False,
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    badge: Mapped["BadgeDefinition"] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
    )

    def __repr__(self) -> str:
        return f"<UserBadge(user_id={self.user_id}, badge_id={self.badge_id!r})>"
