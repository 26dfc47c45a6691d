import uuid

from pydantic import BaseModel, ConfigDict


class LeaderboardEntryResponse(BaseModel):
    """One ranked household member."""

    user_id: uuid.UUID
    display_name: str
    avatar_url: str | None = None
    total_points: int  # within the requested period
    current_balance: int
    rank: int
    is_current_user: bool
    model_config = ConfigDict(from_attributes=True)


class LeaderboardResponse(BaseModel):
    period: str  # this_week | this_month | all_time
    entries: list[LeaderboardEntryResponse]


class UserStatisticsResponse(BaseModel):
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
    # Whole percent versus the previous period
    weekly_points_change: int
    monthly_points_change: int
    weekly_chores_change: int
    monthly_chores_change: int
    model_config = ConfigDict(from_attributes=True)
