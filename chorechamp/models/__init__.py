"""SQLAlchemy ORM models.

All models are imported here so that Alembic can discover them
via ``Base.metadata`` when generating migrations.
"""

from chorechamp.models.badge import BadgeDefinition, UserBadge  # noqa: F401
from chorechamp.models.chore import Chore, ChoreCompletion  # noqa: F401
from chorechamp.models.household import Household, HouseholdMember  # noqa: F401
from chorechamp.models.points import PointBalance, PointTransaction, UserStreak  # noqa: F401
from chorechamp.models.reward import Redemption, Reward  # noqa: F401
from chorechamp.models.user import User  # noqa: F401

__all__ = [
    "BadgeDefinition",
    "Chore",
    "ChoreCompletion",
    "Household",
    "HouseholdMember",
    "PointBalance",
    "PointTransaction",
    "Redemption",
    "Reward",
    "User",
    "UserBadge",
    "UserStreak",
]
