import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PointBalanceResponse(BaseModel):
    """Balance projection plus the streak and level shown next to it."""

    user_id: uuid.UUID
    household_id: uuid.UUID
    current_balance: int
    total_earned: int
    total_spent: int
    current_streak: int
    longest_streak: int
    level: int
    level_title: str


class PointTransactionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    household_id: uuid.UUID
    points: int
    transaction_type: str
    reference_id: str | None = None
    description: str | None = None
    balance_after: int
    created_by: uuid.UUID | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PointHistoryResponse(BaseModel):
    items: list[PointTransactionResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class BonusRequest(BaseModel):
    user_id: uuid.UUID
    # Range is enforced by the award engine so violations answer 400.
    points: int
    reason: str | None = Field(None, max_length=1000)


class BonusResponse(BaseModel):
    transaction: PointTransactionResponse
    unlocked_badges: list[str] = []


class ReconcileRequest(BaseModel):
    user_id: uuid.UUID


class ReconcileResponse(BaseModel):
    user_id: uuid.UUID
    household_id: uuid.UUID
    consistent: bool
    ledger_balance: int
    ledger_earned: int
    ledger_spent: int
    projected_balance: int | None = None
    model_config = ConfigDict(from_attributes=True)
