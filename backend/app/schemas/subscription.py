from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.models.subscription import SubscriptionStatus


class SubscriptionCreate(BaseModel):
    """Merchant request to start a subscription.

    ``amount``, ``interval`` and ``customer_wallet`` are range-checked by the
    repository so that every write path shares the same rules.
    """

    plan_name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal
    interval: str
    customer_wallet: str
    customer_email: EmailStr | None = None


class SubscriptionUpdate(BaseModel):
    status: SubscriptionStatus | None = None
    approved_amount: Decimal | None = None
    approval_tx_hash: str | None = None
    approved_at: datetime | None = None
    charge_count: int | None = None
    next_charge_at: datetime | None = None
    last_charged_at: datetime | None = None
    missed_charge_at: datetime | None = None
    failure_reason: str | None = None
    failed_attempts: int | None = None
    retry_at: datetime | None = None
    cancelled_at: datetime | None = None


class SubscriptionResponse(BaseModel):
    id: UUID
    merchant_id: UUID
    plan_name: str
    amount: Decimal
    interval: str
    customer_wallet: str
    customer_email: str | None
    status: SubscriptionStatus
    approved_amount: Decimal | None
    charge_count: int
    next_charge_at: datetime | None
    last_charged_at: datetime | None
    failure_reason: str | None
    retry_at: datetime | None
    created_at: datetime
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}


class SubscriptionCreateResponse(SubscriptionResponse):
    """Returned on creation, with the customer approval link."""

    approval_url: str


class PublicSubscriptionResponse(BaseModel):
    """Subscription view for the customer approval page (no merchant data)."""

    id: UUID
    plan_name: str
    amount: Decimal
    interval: str
    customer_wallet: str
    customer_email: str | None
    status: SubscriptionStatus
    charge_count: int
    next_charge_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ApproveSubscriptionRequest(BaseModel):
    transaction_hash: str = Field(..., min_length=1, max_length=66)
    wallet_address: str = Field(..., min_length=1)
    approved_amount: Decimal | None = Field(
        default=None,
        gt=0,
        description="Allowance granted on-chain. Defaults to six months of charges.",
    )


class CustomerCancelRequest(BaseModel):
    wallet_address: str = Field(..., min_length=1)


class SubscriptionChargeResponse(BaseModel):
    id: UUID
    subscription_id: UUID
    amount: Decimal
    status: str
    tx_hash: str | None
    failure_reason: str | None
    attempted_at: datetime

    model_config = {"from_attributes": True}
