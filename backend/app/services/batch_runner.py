"""Batch runner: charges every due subscription once per run."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.shared import utc_now
from app.models.subscription import Subscription
from app.repositories.subscription_repository import SubscriptionRepository
from app.services.charge_executor import ChargeExecutor, ChargeOutcomeStatus
from app.services.settlement_provider import SettlementProviderBase, get_settlement_provider

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[tuple[UUID, str]] = field(default_factory=list)


class BatchRunner:
    """Pulls due subscriptions and drives the charge executor over each.

    Each subscription is isolated: an error while charging one is recorded in
    the result and never aborts the rest of the batch.
    """

    def __init__(
        self,
        db: Session,
        settlement_provider: SettlementProviderBase | None = None,
        executor: ChargeExecutor | None = None,
    ):
        self.db = db
        self.subscription_repo = SubscriptionRepository(db)
        self.executor = executor or ChargeExecutor(
            db, settlement_provider or get_settlement_provider()
        )

    def select(self, now: datetime) -> list[Subscription]:
        """Due subscriptions followed by past-due ones whose retry time has come."""
        return self.subscription_repo.list_due(now) + self.subscription_repo.list_retryable(now)

    def run_batch(self, now: datetime | None = None) -> BatchResult:
        now = now or utc_now()
        result = BatchResult()
        subscription_ids = [sub.id for sub in self.select(now)]

        for subscription_id in subscription_ids:
            subscription = self.subscription_repo.get_by_id(subscription_id)  # type: ignore[arg-type]
            if subscription is None:
                continue
            try:
                outcome = self.executor.execute(subscription, now)
            except Exception as e:
                logger.exception("Unexpected error charging subscription %s", subscription_id)
                self.db.rollback()
                result.processed += 1
                result.failed += 1
                result.errors.append((subscription_id, str(e) or e.__class__.__name__))  # type: ignore[arg-type]
                continue

            if outcome.status == ChargeOutcomeStatus.SKIPPED:
                result.skipped += 1
                continue

            result.processed += 1
            if outcome.status == ChargeOutcomeStatus.SUCCEEDED:
                result.succeeded += 1
            else:
                result.failed += 1
                result.errors.append((subscription_id, outcome.error or "Charge failed"))  # type: ignore[arg-type]

        logger.info(
            "Batch run at %s: processed=%d succeeded=%d failed=%d skipped=%d",
            now.isoformat(),
            result.processed,
            result.succeeded,
            result.failed,
            result.skipped,
        )
        return result
