"""Error taxonomy for the subscription billing engine.

Every error carries the HTTP status the API layer answers with, so routers
can let them propagate to the handler registered in ``app.main``.
"""


class BillingError(Exception):
    """Base exception for all billing-engine errors."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(BillingError):
    """Bad input shape or range. Never retried."""

    status_code = 422


class NotFoundError(BillingError):
    status_code = 404


class InvalidStateError(BillingError):
    """Illegal lifecycle transition for the subscription's current status."""

    status_code = 409


class AlreadyCancelledError(InvalidStateError):
    def __init__(self, subscription_id: object):
        super().__init__(f"Subscription {subscription_id} is already cancelled")


class SettlementError(BillingError):
    """The external settlement call failed or its outcome is unknown."""

    status_code = 402


class SettlementTimeoutError(SettlementError):
    pass


class Unauthorized(BillingError):
    status_code = 401


class Forbidden(BillingError):
    status_code = 403
