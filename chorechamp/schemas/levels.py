from datetime import datetime

from pydantic import BaseModel, ConfigDict


class LevelDefinitionResponse(BaseModel):
    level: int
    title: str
    points_required: int


class LevelProgressResponse(BaseModel):
    current_points: int
    current_level_points: int
    next_level_points: int | None = None
    points_to_next_level: int
    progress_percentage: int
    is_max_level: bool


class LevelInfoResponse(BaseModel):
    level: LevelDefinitionResponse
    next_level: LevelDefinitionResponse | None = None
    progress: LevelProgressResponse
    levels: list[LevelDefinitionResponse]


class BadgeCriteria(BaseModel):
    type: str  # chores_completed | streak_days | total_points | special
    value: int


class BadgeDefinitionResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    category: str
    criteria: BadgeCriteria
    points_reward: int
    model_config = ConfigDict(from_attributes=True)


class BadgeProgressResponse(BadgeDefinitionResponse):
    status: str  # earned | in_progress | locked
    progress: int
    current_value: int
    target_value: int
    earned_at: datetime | None = None


class BadgeStatsResponse(BaseModel):
    total: int
    earned: int
    in_progress: int
    locked: int
    total_points_from_badges: int


class BadgeOverviewResponse(BaseModel):
    badges: list[BadgeProgressResponse]
    stats: BadgeStatsResponse
