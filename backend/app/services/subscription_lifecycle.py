"""Service for subscription lifecycle management: creation, approval, charges, cancellation."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    AlreadyCancelledError,
    BillingError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.shared import utc_now
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_charge import ChargeStatus
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.schemas.subscription import SubscriptionCreate
from app.services.settlement_provider import SettlementProviderBase, get_settlement_provider
from app.services.subscription_dates import SubscriptionDatesService

logger = logging.getLogger(__name__)

_CHARGEABLE = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value)


@dataclass
class ChargeResult:
    success: bool
    error: str | None = None


class SubscriptionLifecycleService:
    """Applies every subscription state transition.

    Transitions:
        pending_approval --approve--> active
        pending_approval|active|past_due --cancel--> cancelled
        active|past_due --successful charge--> active
        active|past_due --failed charge--> past_due

    ``cancelled`` is terminal. ``next_charge_at`` is set exactly while the
    subscription is ``active``.
    """

    def __init__(
        self,
        db: Session,
        settlement_provider: SettlementProviderBase | None = None,
        dates_service: SubscriptionDatesService | None = None,
    ):
        self.db = db
        self.subscription_repo = SubscriptionRepository(db)
        self.charge_repo = SubscriptionChargeRepository(db)
        self.settlement_provider = settlement_provider
        self.dates_service = dates_service or SubscriptionDatesService(
            settings.MISSED_CYCLE_POLICY
        )

    def _get(self, subscription_id: UUID) -> Subscription:
        subscription = self.subscription_repo.get_by_id(subscription_id)
        if not subscription:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    def _check_lease(self, subscription: Subscription, lease_token: str | None) -> None:
        if lease_token is not None and subscription.charge_lease_token != lease_token:
            raise InvalidStateError(
                f"Charge lease for subscription {subscription.id} is no longer held"
            )

    @staticmethod
    def _clear_lease(subscription: Subscription) -> None:
        subscription.charge_lease_token = None  # type: ignore[assignment]
        subscription.charge_lease_expires_at = None  # type: ignore[assignment]

    def create_subscription(self, merchant_id: UUID, data: SubscriptionCreate) -> Subscription:
        """Create a subscription awaiting the customer's on-chain approval."""
        subscription = self.subscription_repo.create(data, merchant_id)
        logger.info(
            "Created subscription %s for merchant %s (%s %s)",
            subscription.id,
            merchant_id,
            subscription.amount,
            subscription.interval,
        )
        return subscription

    def approve(
        self,
        subscription_id: UUID,
        approved_amount: Decimal | None = None,
        approval_tx_hash: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """Activate a pending subscription once the customer approved the allowance.

        The caller has already matched the approving wallet to the
        subscription. If ``approved_amount`` is omitted, it defaults to
        ``APPROVAL_HORIZON_MONTHS`` worth of charges.
        """
        subscription = self._get(subscription_id)
        if subscription.status != SubscriptionStatus.PENDING_APPROVAL.value:
            raise InvalidStateError(
                f"Subscription {subscription_id} is not pending approval "
                f"(status: {subscription.status})"
            )

        amount = Decimal(subscription.amount)
        interval = str(subscription.interval)
        if approved_amount is None:
            approved_amount = self.dates_service.default_approved_amount(
                amount, interval, settings.APPROVAL_HORIZON_MONTHS
            )
        approved_amount = Decimal(approved_amount)
        if approved_amount < amount:
            raise ValidationError("Approved amount must cover at least one charge")

        if settings.VERIFY_APPROVAL_ON_CHAIN:
            provider = self.settlement_provider or get_settlement_provider()
            if not approval_tx_hash or not provider.verify_approval(
                approval_tx_hash, str(subscription.customer_wallet), approved_amount
            ):
                raise ValidationError("Approval transaction could not be verified on-chain")

        now = now or utc_now()
        subscription.status = SubscriptionStatus.ACTIVE.value  # type: ignore[assignment]
        subscription.approved_amount = approved_amount  # type: ignore[assignment]
        subscription.approval_tx_hash = approval_tx_hash  # type: ignore[assignment]
        subscription.approved_at = now  # type: ignore[assignment]
        subscription.next_charge_at = self.dates_service.first_charge_at(now, interval)  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            "Approved subscription %s (allowance %s, first charge at %s)",
            subscription.id,
            approved_amount,
            subscription.next_charge_at,
        )
        return subscription

    def cancel(self, subscription_id: UUID, now: datetime | None = None) -> Subscription:
        """Cancel a subscription. Terminal; a second cancel is rejected."""
        subscription = self._get(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise AlreadyCancelledError(subscription_id)

        subscription.status = SubscriptionStatus.CANCELLED.value  # type: ignore[assignment]
        subscription.cancelled_at = now or utc_now()  # type: ignore[assignment]
        subscription.next_charge_at = None  # type: ignore[assignment]
        subscription.retry_at = None  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)

        logger.info("Cancelled subscription %s", subscription.id)
        return subscription

    def record_successful_charge(
        self,
        subscription_id: UUID,
        tx_hash: str,
        now: datetime | None = None,
        lease_token: str | None = None,
    ) -> Subscription:
        """Book a settled charge and schedule the next one.

        The next charge is one interval after the charge that was due
        (``next_charge_at``, or ``missed_charge_at`` when recovering from
        past_due), not after the time the charge actually ran.
        """
        subscription = self._get(subscription_id)
        if subscription.status not in _CHARGEABLE:
            raise InvalidStateError(
                f"Cannot record a charge on subscription {subscription_id} "
                f"(status: {subscription.status})"
            )
        self._check_lease(subscription, lease_token)

        now = now or utc_now()
        if subscription.status == SubscriptionStatus.ACTIVE.value:
            scheduled_at = subscription.next_charge_at or now
        else:
            scheduled_at = subscription.missed_charge_at or now

        subscription.charge_count = int(subscription.charge_count or 0) + 1  # type: ignore[assignment]
        subscription.last_charged_at = now  # type: ignore[assignment]
        subscription.next_charge_at = self.dates_service.next_charge_after(  # type: ignore[assignment]
            scheduled_at, str(subscription.interval), now
        )
        subscription.status = SubscriptionStatus.ACTIVE.value  # type: ignore[assignment]
        subscription.missed_charge_at = None  # type: ignore[assignment]
        subscription.failure_reason = None  # type: ignore[assignment]
        subscription.failed_attempts = 0  # type: ignore[assignment]
        subscription.retry_at = None  # type: ignore[assignment]
        self._clear_lease(subscription)

        self.charge_repo.add(
            subscription_id=subscription.id,  # type: ignore[arg-type]
            amount=Decimal(subscription.amount),
            status=ChargeStatus.SUCCEEDED,
            attempted_at=now,
            tx_hash=tx_hash,
        )
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            "Charged subscription %s (tx %s, charge #%d, next at %s)",
            subscription.id,
            tx_hash,
            subscription.charge_count,
            subscription.next_charge_at,
        )
        return subscription

    def record_failed_charge(
        self,
        subscription_id: UUID,
        reason: str,
        now: datetime | None = None,
        lease_token: str | None = None,
    ) -> Subscription:
        """Move a subscription to past_due after a failed charge attempt.

        ``next_charge_at`` is cleared and the missed schedule kept in
        ``missed_charge_at``. A retry is scheduled ``PAST_DUE_RETRY_HOURS``
        later until ``PAST_DUE_MAX_RETRIES`` retries have failed.
        """
        subscription = self._get(subscription_id)
        if subscription.status not in _CHARGEABLE:
            raise InvalidStateError(
                f"Cannot record a failed charge on subscription {subscription_id} "
                f"(status: {subscription.status})"
            )
        self._check_lease(subscription, lease_token)

        now = now or utc_now()
        if subscription.status == SubscriptionStatus.ACTIVE.value:
            subscription.missed_charge_at = subscription.next_charge_at or now  # type: ignore[assignment]
            subscription.next_charge_at = None  # type: ignore[assignment]
            subscription.status = SubscriptionStatus.PAST_DUE.value  # type: ignore[assignment]
            subscription.failed_attempts = 1  # type: ignore[assignment]
        else:
            subscription.failed_attempts = int(subscription.failed_attempts or 0) + 1  # type: ignore[assignment]

        subscription.failure_reason = reason  # type: ignore[assignment]
        if int(subscription.failed_attempts) <= settings.PAST_DUE_MAX_RETRIES:
            subscription.retry_at = now + timedelta(hours=settings.PAST_DUE_RETRY_HOURS)  # type: ignore[assignment]
        else:
            subscription.retry_at = None  # type: ignore[assignment]
        self._clear_lease(subscription)

        self.charge_repo.add(
            subscription_id=subscription.id,  # type: ignore[arg-type]
            amount=Decimal(subscription.amount),
            status=ChargeStatus.FAILED,
            attempted_at=now,
            failure_reason=reason,
        )
        self.db.commit()
        self.db.refresh(subscription)

        logger.warning(
            "Subscription %s is past due after %d failed attempt(s): %s",
            subscription.id,
            subscription.failed_attempts,
            reason,
        )
        return subscription

    def process_subscription_charge(self, subscription_id: UUID, tx_hash: str) -> ChargeResult:
        """Record an externally settled charge, reporting failure instead of raising."""
        try:
            self.record_successful_charge(subscription_id, tx_hash)
        except BillingError as e:
            self.db.rollback()
            return ChargeResult(success=False, error=e.message)
        return ChargeResult(success=True)

    def mark_past_due(self, subscription_id: UUID, reason: str) -> Subscription:
        return self.record_failed_charge(subscription_id, reason)
