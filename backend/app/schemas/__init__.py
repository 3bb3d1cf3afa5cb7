from app.schemas.batch import (
    BatchEnqueuedResponse,
    BatchError,
    BatchRunResponse,
    ChargeStatusResponse,
    DueSubscriptionSummary,
)
from app.schemas.merchant import MerchantCreate, MerchantCreateResponse, MerchantResponse
from app.schemas.subscription import (
    ApproveSubscriptionRequest,
    CustomerCancelRequest,
    PublicSubscriptionResponse,
    SubscriptionChargeResponse,
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionResponse,
    SubscriptionUpdate,
)

__all__ = [
    "ApproveSubscriptionRequest",
    "BatchEnqueuedResponse",
    "BatchError",
    "BatchRunResponse",
    "ChargeStatusResponse",
    "CustomerCancelRequest",
    "DueSubscriptionSummary",
    "MerchantCreate",
    "MerchantCreateResponse",
    "MerchantResponse",
    "PublicSubscriptionResponse",
    "SubscriptionChargeResponse",
    "SubscriptionCreate",
    "SubscriptionCreateResponse",
    "SubscriptionResponse",
    "SubscriptionUpdate",
]
