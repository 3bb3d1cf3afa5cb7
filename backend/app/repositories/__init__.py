from app.repositories.merchant_repository import MerchantRepository
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from app.repositories.subscription_repository import SubscriptionRepository

__all__ = [
    "MerchantRepository",
    "SubscriptionChargeRepository",
    "SubscriptionRepository",
]
