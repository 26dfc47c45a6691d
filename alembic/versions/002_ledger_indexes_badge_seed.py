"""Ledger query indexes and the default badge catalogue.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, Sequence[str], None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BADGES = [
    ("first_chore", "First Steps", "Complete your first chore", "star", "completion", "chores_completed", 1, 5),
    ("helping_hand", "Helping Hand", "Complete 10 chores", "hand", "completion", "chores_completed", 10, 20),
    ("chore_champion", "Chore Champion", "Complete 50 chores", "trophy", "completion", "chores_completed", 50, 50),
    ("century", "Century", "Complete 100 chores", "medal", "completion", "chores_completed", 100, 100),
    ("on_a_roll", "On a Roll", "Keep a 3-day streak", "flame", "streak", "streak_days", 3, 10),
    ("week_warrior", "Week Warrior", "Keep a 7-day streak", "calendar", "streak", "streak_days", 7, 25),
    ("unstoppable", "Unstoppable", "Keep a 30-day streak", "rocket", "streak", "streak_days", 30, 100),
    ("point_collector", "Point Collector", "Earn 100 points", "coins", "points", "total_points", 100, 10),
    ("point_hoarder", "Point Hoarder", "Earn 500 points", "gem", "points", "total_points", 500, 25),
    ("point_master", "Point Master", "Earn 1000 points", "crown", "points", "total_points", 1000, 50),
    ("founding_member", "Founding Member", "One of the first members of the household",
     "flag", "special", "special", 1, 0),
]


def upgrade() -> None:
    # History page and statistics: per member, newest first
    op.create_index(
        "ix_point_tx_user_household_created",
        "point_transactions",
        ["user_id", "household_id", "created_at"],
    )
    # Period leaderboards
    op.create_index(
        "ix_point_tx_household_created",
        "point_transactions",
        ["household_id", "created_at"],
    )

    badge_table = sa.table(
        "badge_definitions",
        sa.column("id", sa.String),
        sa.column("name", sa.String),
        sa.column("description", sa.Text),
        sa.column("icon", sa.String),
        sa.column("category", sa.String),
        sa.column("criteria_type", sa.String),
        sa.column("criteria_value", sa.Integer),
        sa.column("points_reward", sa.Integer),
    )
    op.bulk_insert(badge_table, [
        {
            "id": b[0], "name": b[1], "description": b[2], "icon": b[3],
            "category": b[4], "criteria_type": b[5], "criteria_value": b[6],
            "points_reward": b[7],
        }
        for b in BADGES
    ])


def downgrade() -> None:
    op.execute(
        sa.text("DELETE FROM badge_definitions WHERE id IN :ids").bindparams(
            sa.bindparam("ids", [b[0] for b in BADGES], expanding=True)
        )
    )
    op.drop_index("ix_point_tx_household_created", "point_transactions")
    op.drop_index("ix_point_tx_user_household_created", "point_transactions")
