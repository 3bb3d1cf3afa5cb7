"""Charge attempt model: one row per settlement attempt against a subscription."""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Numeric, String, Text

from app.core.database import Base
from app.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class ChargeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubscriptionCharge(Base):
    __tablename__ = "subscription_charges"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    subscription_id = Column(
        UUIDType,
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(18, 6), nullable=False)
    status = Column(String(20), nullable=False)
    tx_hash = Column(String(66), nullable=True)
    failure_reason = Column(Text, nullable=True)
    attempted_at = Column(UTCDateTime, nullable=False, default=utc_now)
