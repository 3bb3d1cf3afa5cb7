from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class BatchError(BaseModel):
    subscription_id: UUID
    error: str


class BatchRunResponse(BaseModel):
    message: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[BatchError] = Field(default_factory=list)


class BatchEnqueuedResponse(BaseModel):
    message: str
    job_id: str


class DueSubscriptionSummary(BaseModel):
    id: UUID
    merchant_id: UUID
    amount: Decimal
    status: str
    next_charge_at: datetime | None
    retry_at: datetime | None


class ChargeStatusResponse(BaseModel):
    due_subscriptions: int
    subscriptions: list[DueSubscriptionSummary]
