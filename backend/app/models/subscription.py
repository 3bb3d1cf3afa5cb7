from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text

from app.core.database import Base
from app.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class SubscriptionStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class SubscriptionInterval(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(
        UUIDType,
        ForeignKey("merchants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan_name = Column(String(255), nullable=False)
    amount = Column(Numeric(18, 6), nullable=False)
    interval = Column(String(20), nullable=False)
    customer_wallet = Column(String(42), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)
    status = Column(
        String(20), nullable=False, default=SubscriptionStatus.PENDING_APPROVAL.value, index=True
    )

    # Approval
    approved_amount = Column(Numeric(18, 6), nullable=True)
    approval_tx_hash = Column(String(66), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)

    # Billing schedule
    charge_count = Column(Integer, nullable=False, default=0)
    next_charge_at = Column(UTCDateTime, nullable=True, index=True)
    last_charged_at = Column(UTCDateTime, nullable=True)

    # Past-due bookkeeping
    missed_charge_at = Column(UTCDateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    failed_attempts = Column(Integer, nullable=False, default=0)
    retry_at = Column(UTCDateTime, nullable=True, index=True)

    # Per-subscription charge lease, held while a settlement call is in flight
    charge_lease_token = Column(String(64), nullable=True)
    charge_lease_expires_at = Column(UTCDateTime, nullable=True)

    cancelled_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
