"""Tests for SubscriptionLifecycleService state transitions."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.errors import (
    AlreadyCancelledError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.subscription import SubscriptionStatus
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from app.schemas.subscription import SubscriptionCreate
from app.services.subscription_lifecycle import SubscriptionLifecycleService
from tests.factories import (
    CUSTOMER_WALLET,
    T0,
    FakeSettlementProvider,
    create_merchant,
    create_subscription,
)


@pytest.fixture
def merchant(db_session):
    return create_merchant(db_session)


@pytest.fixture
def service(db_session):
    return SubscriptionLifecycleService(db_session, FakeSettlementProvider())


def assert_schedule_invariant(sub):
    """next_charge_at is set exactly while the subscription is active."""
    assert (sub.next_charge_at is not None) == (sub.status == SubscriptionStatus.ACTIVE.value)


class TestCreateSubscription:
    def test_create_is_pending_without_schedule(self, service, merchant):
        sub = service.create_subscription(
            merchant.id,
            SubscriptionCreate(
                plan_name="Basic",
                amount=Decimal("5"),
                interval="weekly",
                customer_wallet=CUSTOMER_WALLET,
            ),
        )

        assert sub.status == SubscriptionStatus.PENDING_APPROVAL.value
        assert sub.merchant_id == merchant.id
        assert_schedule_invariant(sub)


class TestApprove:
    def test_monthly_first_charge_one_month_after_approval(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, interval="monthly")

        sub = service.approve(sub.id, approval_tx_hash="0xapprove", now=T0)

        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert sub.approved_at == T0
        assert sub.approval_tx_hash == "0xapprove"
        assert sub.next_charge_at == datetime(2026, 2, 15, 12, 0, tzinfo=UTC)
        assert_schedule_invariant(sub)

    def test_default_allowance_is_six_months_of_charges(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, amount="10", interval="weekly")

        sub = service.approve(sub.id, now=T0)

        assert sub.approved_amount == Decimal("260")

    def test_explicit_allowance(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, amount="10", interval="monthly")

        sub = service.approve(sub.id, approved_amount=Decimal("30"), now=T0)

        assert sub.approved_amount == Decimal("30")

    def test_allowance_below_one_charge_rejected(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, amount="10")

        with pytest.raises(ValidationError, match="at least one charge"):
            service.approve(sub.id, approved_amount=Decimal("9.99"), now=T0)

        db_session.refresh(sub)
        assert sub.status == SubscriptionStatus.PENDING_APPROVAL.value

    def test_approve_twice_rejected(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant)
        service.approve(sub.id, now=T0)

        with pytest.raises(InvalidStateError, match="not pending approval"):
            service.approve(sub.id, now=T0 + timedelta(hours=1))

    def test_approve_cancelled_rejected(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant)
        service.cancel(sub.id, now=T0)

        with pytest.raises(InvalidStateError):
            service.approve(sub.id, now=T0)

    def test_approve_unknown_subscription(self, service):
        with pytest.raises(NotFoundError):
            service.approve(uuid.uuid4())

    def test_on_chain_verification_passes(self, db_session, merchant, monkeypatch):
        monkeypatch.setattr(settings, "VERIFY_APPROVAL_ON_CHAIN", True)
        service = SubscriptionLifecycleService(db_session, FakeSettlementProvider(approval_ok=True))
        sub = create_subscription(db_session, merchant)

        sub = service.approve(sub.id, approval_tx_hash="0xok", now=T0)

        assert sub.status == SubscriptionStatus.ACTIVE.value

    def test_on_chain_verification_fails(self, db_session, merchant, monkeypatch):
        monkeypatch.setattr(settings, "VERIFY_APPROVAL_ON_CHAIN", True)
        service = SubscriptionLifecycleService(db_session, FakeSettlementProvider(approval_ok=False))
        sub = create_subscription(db_session, merchant)

        with pytest.raises(ValidationError, match="verified"):
            service.approve(sub.id, approval_tx_hash="0xbad", now=T0)

    def test_on_chain_verification_requires_tx_hash(self, db_session, merchant, monkeypatch):
        monkeypatch.setattr(settings, "VERIFY_APPROVAL_ON_CHAIN", True)
        service = SubscriptionLifecycleService(db_session, FakeSettlementProvider())
        sub = create_subscription(db_session, merchant)

        with pytest.raises(ValidationError):
            service.approve(sub.id, now=T0)


class TestCancel:
    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.PENDING_APPROVAL, SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
    )
    def test_cancel_from_any_live_status(self, db_session, service, merchant, status):
        sub = create_subscription(db_session, merchant, status, retry_at=T0)

        sub = service.cancel(sub.id, now=T0)

        assert sub.status == SubscriptionStatus.CANCELLED.value
        assert sub.cancelled_at == T0
        assert sub.next_charge_at is None
        assert sub.retry_at is None

    def test_second_cancel_rejected_and_timestamp_kept(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)
        service.cancel(sub.id, now=T0)

        with pytest.raises(AlreadyCancelledError):
            service.cancel(sub.id, now=T0 + timedelta(days=1))

        db_session.refresh(sub)
        assert sub.cancelled_at == T0


class TestSuccessfulCharge:
    def test_next_charge_anchored_on_previous_schedule(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, interval="monthly")
        service.approve(sub.id, now=T0)
        scheduled = datetime(2026, 2, 15, 12, 0, tzinfo=UTC)

        sub = service.record_successful_charge(sub.id, "0xtx1", now=scheduled + timedelta(minutes=7))

        assert sub.charge_count == 1
        assert sub.next_charge_at == datetime(2026, 3, 15, 12, 0, tzinfo=UTC)
        assert sub.last_charged_at == scheduled + timedelta(minutes=7)
        assert_schedule_invariant(sub)

    def test_records_charge_attempt(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        service.record_successful_charge(sub.id, "0xtx1", now=T0)

        charges = SubscriptionChargeRepository(db_session).get_by_subscription_id(sub.id)
        assert len(charges) == 1
        assert charges[0].status == "succeeded"
        assert charges[0].tx_hash == "0xtx1"
        assert charges[0].amount == Decimal("10")

    def test_past_due_recovers_to_active(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE, next_charge_at=T0)
        service.record_failed_charge(sub.id, "insufficient balance", now=T0)
        retry_time = T0 + timedelta(days=1)

        sub = service.record_successful_charge(sub.id, "0xtx", now=retry_time)

        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert sub.next_charge_at == T0 + timedelta(weeks=1)
        assert sub.failed_attempts == 0
        assert sub.failure_reason is None
        assert sub.missed_charge_at is None
        assert sub.retry_at is None
        assert_schedule_invariant(sub)

    def test_rejected_when_cancelled(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)
        service.cancel(sub.id, now=T0)

        with pytest.raises(InvalidStateError):
            service.record_successful_charge(sub.id, "0xtx", now=T0)

    def test_rejected_when_pending(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant)

        with pytest.raises(InvalidStateError):
            service.record_successful_charge(sub.id, "0xtx", now=T0)

    def test_rejected_with_stale_lease_token(self, db_session, service, merchant):
        sub = create_subscription(
            db_session, merchant, SubscriptionStatus.ACTIVE, charge_lease_token="current"
        )

        with pytest.raises(InvalidStateError, match="lease"):
            service.record_successful_charge(sub.id, "0xtx", now=T0, lease_token="stale")

    def test_clears_lease(self, db_session, service, merchant):
        sub = create_subscription(
            db_session,
            merchant,
            SubscriptionStatus.ACTIVE,
            charge_lease_token="tok",
            charge_lease_expires_at=T0 + timedelta(minutes=5),
        )

        sub = service.record_successful_charge(sub.id, "0xtx", now=T0, lease_token="tok")

        assert sub.charge_lease_token is None
        assert sub.charge_lease_expires_at is None


class TestFailedCharge:
    def test_active_to_past_due(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE, next_charge_at=T0)

        sub = service.record_failed_charge(sub.id, "Insufficient balance", now=T0)

        assert sub.status == SubscriptionStatus.PAST_DUE.value
        assert sub.failure_reason == "Insufficient balance"
        assert sub.failed_attempts == 1
        assert sub.missed_charge_at == T0
        assert sub.retry_at == T0 + timedelta(hours=settings.PAST_DUE_RETRY_HOURS)
        assert sub.charge_count == 0
        assert_schedule_invariant(sub)

        charges = SubscriptionChargeRepository(db_session).get_by_subscription_id(sub.id)
        assert [c.status for c in charges] == ["failed"]
        assert charges[0].tx_hash is None

    def test_retries_stop_after_max(self, db_session, service, merchant, monkeypatch):
        monkeypatch.setattr(settings, "PAST_DUE_MAX_RETRIES", 2)
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE, next_charge_at=T0)

        service.record_failed_charge(sub.id, "no funds", now=T0)
        service.record_failed_charge(sub.id, "no funds", now=T0 + timedelta(days=1))
        sub = service.record_failed_charge(sub.id, "no funds", now=T0 + timedelta(days=2))

        assert sub.failed_attempts == 3
        assert sub.retry_at is None
        assert sub.status == SubscriptionStatus.PAST_DUE.value
        assert sub.missed_charge_at == T0

    def test_rejected_when_pending(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant)

        with pytest.raises(InvalidStateError):
            service.record_failed_charge(sub.id, "x", now=T0)


class TestChargeHelpers:
    def test_process_subscription_charge_success(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        result = service.process_subscription_charge(sub.id, "0xexternal")

        assert result.success is True
        assert result.error is None
        db_session.refresh(sub)
        assert sub.charge_count == 1

    def test_process_subscription_charge_reports_failure(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant)

        result = service.process_subscription_charge(sub.id, "0xexternal")

        assert result.success is False
        assert "Cannot record a charge" in result.error

    def test_mark_past_due(self, db_session, service, merchant):
        sub = create_subscription(db_session, merchant, SubscriptionStatus.ACTIVE)

        sub = service.mark_past_due(sub.id, "manual review")

        assert sub.status == SubscriptionStatus.PAST_DUE.value
        assert sub.failure_reason == "manual review"
