import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chorechamp.database import Base


class User(Base):
    """Profile of an authenticated person.

    Identity itself lives with the external identity provider; this row only
    carries what the leaderboard and history need to display.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    membership: Mapped["HouseholdMember | None"] = relationship(  # noqa: F821
        back_populates="user", uselist=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, display_name={self.display_name!r})>"
