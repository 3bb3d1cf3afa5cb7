from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.subscription_charge import ChargeStatus, SubscriptionCharge


class SubscriptionChargeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_subscription_id(
        self, subscription_id: UUID, skip: int = 0, limit: int = 100
    ) -> list[SubscriptionCharge]:
        return (
            self.db.query(SubscriptionCharge)
            .filter(SubscriptionCharge.subscription_id == subscription_id)
            .order_by(SubscriptionCharge.attempted_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def add(
        self,
        subscription_id: UUID,
        amount: Decimal,
        status: ChargeStatus,
        attempted_at: datetime,
        tx_hash: str | None = None,
        failure_reason: str | None = None,
    ) -> SubscriptionCharge:
        """Stage a charge attempt on the session; the caller commits."""
        charge = SubscriptionCharge(
            subscription_id=subscription_id,
            amount=amount,
            status=status.value,
            tx_hash=tx_hash,
            failure_reason=failure_reason,
            attempted_at=attempted_at,
        )
        self.db.add(charge)
        return charge
