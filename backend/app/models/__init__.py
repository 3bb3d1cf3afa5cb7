from app.models.merchant import Merchant
from app.models.subscription import Subscription, SubscriptionInterval, SubscriptionStatus
from app.models.subscription_charge import ChargeStatus, SubscriptionCharge

__all__ = [
    "ChargeStatus",
    "Merchant",
    "Subscription",
    "SubscriptionCharge",
    "SubscriptionInterval",
    "SubscriptionStatus",
]
