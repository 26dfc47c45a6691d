import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RedemptionResponse(BaseModel):
    id: uuid.UUID
    reward_id: uuid.UUID
    user_id: uuid.UUID
    household_id: uuid.UUID
    points_spent: int
    status: str
    fulfilled_at: datetime | None = None
    fulfilled_by: uuid.UUID | None = None
    fulfillment_notes: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: uuid.UUID | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RedeemResponse(BaseModel):
    redemption: RedemptionResponse
    new_balance: int
    message: str


class RedemptionListResponse(BaseModel):
    items: list[RedemptionResponse]
    total: int
    has_more: bool


class FulfillRequest(BaseModel):
    # Length is checked after sanitising, in the service.
    notes: str | None = Field(None, max_length=2000)
