"""Service for charge scheduling and subscription date logic."""

import calendar as cal
import math
from datetime import datetime, timedelta
from decimal import Decimal

from app.models.subscription import SubscriptionInterval

CHARGES_PER_YEAR = {
    SubscriptionInterval.WEEKLY.value: 52,
    SubscriptionInterval.MONTHLY.value: 12,
    SubscriptionInterval.YEARLY.value: 1,
}


class MissedCyclePolicy:
    SINGLE = "single"
    SKIP_AHEAD = "skip_ahead"


def _add_interval(dt: datetime, interval: str) -> datetime:
    """Add one billing interval to a datetime."""
    if interval == SubscriptionInterval.WEEKLY.value:
        return dt + timedelta(weeks=1)
    elif interval == SubscriptionInterval.MONTHLY.value:
        return _add_months(dt, 1)
    elif interval == SubscriptionInterval.YEARLY.value:
        return _add_months(dt, 12)
    raise ValueError(f"Unknown interval: {interval}")


def _add_months(dt: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to last day of month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    max_day = cal.monthrange(year, month)[1]
    day = min(dt.day, max_day)
    return dt.replace(year=year, month=month, day=day)


class SubscriptionDatesService:
    """Computes next charge times and approval allowances."""

    def __init__(self, missed_cycle_policy: str = MissedCyclePolicy.SINGLE):
        if missed_cycle_policy not in (MissedCyclePolicy.SINGLE, MissedCyclePolicy.SKIP_AHEAD):
            raise ValueError(f"Unknown missed cycle policy: {missed_cycle_policy}")
        self.missed_cycle_policy = missed_cycle_policy

    def first_charge_at(self, approved_at: datetime, interval: str) -> datetime:
        """The first charge falls one interval after approval."""
        return _add_interval(approved_at, interval)

    def next_charge_after(
        self,
        scheduled_at: datetime,
        interval: str,
        now: datetime,
    ) -> datetime:
        """Advance a schedule by one interval from its previous scheduled time.

        The schedule is anchored on ``scheduled_at`` (the charge that was due),
        never on when the charge actually executed, so late batch runs do not
        drift the billing date.

        Under the default ``single`` policy each successful charge moves the
        schedule exactly one interval, even when the result is still in the
        past. Missed periods are not billed together; each is picked up by a
        later run. The opt-in ``skip_ahead`` policy instead rolls a past
        result forward along the same schedule to the first slot after
        ``now``, so the skipped cycles are never billed.
        """
        next_at = _add_interval(scheduled_at, interval)
        if self.missed_cycle_policy == MissedCyclePolicy.SKIP_AHEAD:
            while next_at <= now:
                next_at = _add_interval(next_at, interval)
        return next_at

    def default_approved_amount(
        self, amount: Decimal, interval: str, horizon_months: int = 6
    ) -> Decimal:
        """Allowance covering ``horizon_months`` of charges, rounded up to whole charges."""
        if interval not in CHARGES_PER_YEAR:
            raise ValueError(f"Unknown interval: {interval}")
        charges = math.ceil(CHARGES_PER_YEAR[interval] * horizon_months / 12)
        return Decimal(amount) * max(charges, 1)

    def remaining_allowance(
        self, approved_amount: Decimal | None, amount: Decimal, charge_count: int
    ) -> Decimal:
        """Pre-authorised spend left after ``charge_count`` successful charges."""
        if approved_amount is None:
            return Decimal("0")
        return Decimal(approved_amount) - Decimal(amount) * charge_count
