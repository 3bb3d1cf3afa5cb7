"""Executes a single charge attempt against a due subscription."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidStateError, SettlementError
from app.models.shared import utc_now
from app.models.subscription import Subscription
from app.models.subscription_charge import ChargeStatus
from app.repositories.merchant_repository import MerchantRepository
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.services.settlement_provider import SettlementProviderBase
from app.services.subscription_lifecycle import SubscriptionLifecycleService

logger = logging.getLogger(__name__)


class ChargeOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ChargeOutcome:
    subscription_id: UUID
    status: ChargeOutcomeStatus
    tx_hash: str | None = None
    error: str | None = None


class ChargeExecutor:
    """Runs one charge attempt: lease, settle, record the transition, release.

    The executor never retries. Any exception from the settlement call,
    timeouts included, is recorded as a failed charge (past_due); an unknown
    outcome is never treated as success.
    """

    def __init__(
        self,
        db: Session,
        settlement_provider: SettlementProviderBase,
        lifecycle: SubscriptionLifecycleService | None = None,
    ):
        self.db = db
        self.settlement_provider = settlement_provider
        self.subscription_repo = SubscriptionRepository(db)
        self.merchant_repo = MerchantRepository(db)
        self.charge_repo = SubscriptionChargeRepository(db)
        self.lifecycle = lifecycle or SubscriptionLifecycleService(db, settlement_provider)

    def execute(self, subscription: Subscription, now: datetime | None = None) -> ChargeOutcome:
        now = now or utc_now()
        subscription_id: UUID = subscription.id  # type: ignore[assignment]
        token = secrets.token_hex(16)

        if not self.subscription_repo.acquire_charge_lease(
            subscription_id, token, now, settings.CHARGE_LEASE_SECONDS
        ):
            logger.info("Skipping subscription %s: not chargeable or already in flight", subscription_id)
            return ChargeOutcome(subscription_id, ChargeOutcomeStatus.SKIPPED)

        try:
            return self._charge(subscription_id, token, now)
        except Exception:
            self.db.rollback()
            raise
        finally:
            # No-op when the transition already cleared the lease.
            self.subscription_repo.release_charge_lease(subscription_id, token)

    def _charge(self, subscription_id: UUID, token: str, now: datetime) -> ChargeOutcome:
        subscription = self.subscription_repo.get_by_id(subscription_id)
        if subscription is None:
            return ChargeOutcome(subscription_id, ChargeOutcomeStatus.SKIPPED)

        amount = Decimal(subscription.amount)
        try:
            merchant_wallet = self.merchant_repo.get_wallet_address(
                subscription.merchant_id  # type: ignore[arg-type]
            )
            if not merchant_wallet:
                raise SettlementError(f"Merchant {subscription.merchant_id} has no wallet")

            remaining = self.lifecycle.dates_service.remaining_allowance(
                subscription.approved_amount,  # type: ignore[arg-type]
                amount,
                int(subscription.charge_count),
            )
            if remaining < amount:
                raise SettlementError("Insufficient allowance: approved amount exhausted")

            try:
                result = self.settlement_provider.charge(
                    customer_wallet=str(subscription.customer_wallet),
                    merchant_wallet=merchant_wallet,
                    amount=amount,
                    attempt_token=token,
                )
            except SettlementError:
                raise
            except Exception as e:
                # The transfer may have been accepted: the subscription must
                # leave the due set, same as any other failed attempt.
                logger.exception(
                    "Settlement call for subscription %s raised unexpectedly", subscription_id
                )
                raise SettlementError(str(e) or e.__class__.__name__) from e
        except SettlementError as e:
            logger.warning("Charge failed for subscription %s: %s", subscription_id, e.message)
            try:
                self.lifecycle.record_failed_charge(
                    subscription_id, e.message, now=now, lease_token=token
                )
            except InvalidStateError as state_error:
                self.db.rollback()
                logger.warning(
                    "Failed charge for subscription %s not recorded: %s",
                    subscription_id,
                    state_error.message,
                )
            return ChargeOutcome(subscription_id, ChargeOutcomeStatus.FAILED, error=e.message)

        try:
            self.lifecycle.record_successful_charge(
                subscription_id, result.tx_hash, now=now, lease_token=token
            )
        except InvalidStateError as e:
            # Funds moved but the subscription changed under us (e.g. cancelled
            # mid-flight): keep the on-chain evidence for reconciliation.
            self.db.rollback()
            logger.error(
                "Settled tx %s for subscription %s could not be booked: %s",
                result.tx_hash,
                subscription_id,
                e.message,
            )
            self.charge_repo.add(
                subscription_id=subscription_id,
                amount=amount,
                status=ChargeStatus.SUCCEEDED,
                attempted_at=now,
                tx_hash=result.tx_hash,
                failure_reason=f"Unbooked: {e.message}",
            )
            self.db.commit()
            return ChargeOutcome(
                subscription_id, ChargeOutcomeStatus.FAILED, tx_hash=result.tx_hash, error=e.message
            )

        return ChargeOutcome(subscription_id, ChargeOutcomeStatus.SUCCEEDED, tx_hash=result.tx_hash)
