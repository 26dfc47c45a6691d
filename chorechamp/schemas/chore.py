import uuid
from datetime import datetime

from pydantic import BaseModel


class ChoreCompleteResponse(BaseModel):
    chore_id: uuid.UUID
    points_earned: int
    message: str
    new_balance: int
    streak_bonus_points: int = 0
    current_streak: int
    level: int
    level_title: str
    leveled_up: bool = False
    unlocked_badges: list[str] = []
    undo_available_until: datetime


class ChoreUndoResponse(BaseModel):
    chore_id: uuid.UUID
    points_removed: int
    streak_bonus_removed: int = 0
    new_balance: int
    message: str
