import re
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models.subscription import Subscription, SubscriptionInterval, SubscriptionStatus
from app.schemas.subscription import SubscriptionCreate, SubscriptionUpdate

WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

_INTERVALS = {i.value for i in SubscriptionInterval}


def validate_subscription_draft(data: SubscriptionCreate) -> None:
    """Check the stored-shape rules for a new subscription."""
    try:
        amount = Decimal(data.amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Amount must be a number") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    if data.interval not in _INTERVALS:
        raise ValidationError("Interval must be one of: weekly, monthly, yearly")
    if not WALLET_ADDRESS_RE.match(data.customer_wallet or ""):
        raise ValidationError("Invalid customer wallet address")


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, subscription_id: UUID) -> Subscription | None:
        return self.db.query(Subscription).filter(Subscription.id == subscription_id).first()

    def list_by_merchant(
        self,
        merchant_id: UUID,
        status: SubscriptionStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Subscription]:
        query = self.db.query(Subscription).filter(Subscription.merchant_id == merchant_id)
        if status is not None:
            query = query.filter(Subscription.status == status.value)
        return query.order_by(Subscription.created_at.desc()).offset(skip).limit(limit).all()

    def count_by_merchant(
        self, merchant_id: UUID, status: SubscriptionStatus | None = None
    ) -> int:
        query = self.db.query(Subscription).filter(Subscription.merchant_id == merchant_id)
        if status is not None:
            query = query.filter(Subscription.status == status.value)
        return query.count()

    def create(self, data: SubscriptionCreate, merchant_id: UUID) -> Subscription:
        validate_subscription_draft(data)
        subscription = Subscription(
            merchant_id=merchant_id,
            plan_name=data.plan_name,
            amount=Decimal(data.amount),
            interval=data.interval,
            customer_wallet=data.customer_wallet,
            customer_email=data.customer_email,
            status=SubscriptionStatus.PENDING_APPROVAL.value,
            charge_count=0,
            failed_attempts=0,
        )
        self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def update(self, subscription_id: UUID, data: SubscriptionUpdate) -> Subscription | None:
        subscription = self.get_by_id(subscription_id)
        if not subscription:
            return None
        update_data = data.model_dump(exclude_unset=True)
        if "status" in update_data:
            if update_data["status"] is not None:
                update_data["status"] = update_data["status"].value
            else:
                del update_data["status"]  # Don't try to set status to NULL
        status = update_data.get("status", subscription.status)
        next_charge_at = update_data.get("next_charge_at", subscription.next_charge_at)
        if (next_charge_at is not None) != (status == SubscriptionStatus.ACTIVE.value):
            raise ValidationError(
                "next_charge_at must be set exactly while the subscription is active"
            )
        for key, value in update_data.items():
            setattr(subscription, key, value)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def list_due(self, now: datetime) -> list[Subscription]:
        """Active subscriptions whose next charge time has passed."""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.next_charge_at.isnot(None),
                Subscription.next_charge_at <= now,
            )
            .order_by(Subscription.next_charge_at)
            .all()
        )

    def list_retryable(self, now: datetime) -> list[Subscription]:
        """Past-due subscriptions whose retry time has passed."""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.status == SubscriptionStatus.PAST_DUE.value,
                Subscription.retry_at.isnot(None),
                Subscription.retry_at <= now,
            )
            .order_by(Subscription.retry_at)
            .all()
        )

    def acquire_charge_lease(
        self,
        subscription_id: UUID,
        token: str,
        now: datetime,
        ttl_seconds: int,
    ) -> bool:
        """Take the charge lease for a subscription that is still chargeable.

        A single conditional UPDATE: it only matches while the subscription is
        due (or retryable) and no unexpired lease is held, so of two
        concurrent callers at most one sees an affected row.
        """
        chargeable = or_(
            and_(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.next_charge_at <= now,
            ),
            and_(
                Subscription.status == SubscriptionStatus.PAST_DUE.value,
                Subscription.retry_at <= now,
            ),
        )
        lease_free = or_(
            Subscription.charge_lease_expires_at.is_(None),
            Subscription.charge_lease_expires_at <= now,
        )
        updated = (
            self.db.query(Subscription)
            .filter(Subscription.id == subscription_id, chargeable, lease_free)
            .update(
                {
                    Subscription.charge_lease_token: token,
                    Subscription.charge_lease_expires_at: now + timedelta(seconds=ttl_seconds),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def release_charge_lease(self, subscription_id: UUID, token: str) -> bool:
        """Drop a lease still held under ``token``. Returns False if it was lost."""
        updated = (
            self.db.query(Subscription)
            .filter(
                Subscription.id == subscription_id,
                Subscription.charge_lease_token == token,
            )
            .update(
                {
                    Subscription.charge_lease_token: None,
                    Subscription.charge_lease_expires_at: None,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1
