from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.core.auth import get_current_merchant
from app.core.config import settings
from app.core.database import get_db
from app.models.merchant import Merchant
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_charge import SubscriptionCharge
from app.repositories.subscription_charge_repository import SubscriptionChargeRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.schemas.subscription import (
    ApproveSubscriptionRequest,
    CustomerCancelRequest,
    PublicSubscriptionResponse,
    SubscriptionChargeResponse,
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionResponse,
)
from app.services.subscription_lifecycle import SubscriptionLifecycleService

router = APIRouter()

_AUTH_RESPONSES: dict[int | str, dict[str, str]] = {
    401: {"description": "Unauthorized – invalid or missing API key"},
}


def _get_owned_subscription(db: Session, subscription_id: UUID, merchant: Merchant) -> Subscription:
    subscription = SubscriptionRepository(db).get_by_id(subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if subscription.merchant_id != merchant.id:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return subscription


def _get_for_wallet(db: Session, subscription_id: UUID, wallet_address: str) -> Subscription:
    subscription = SubscriptionRepository(db).get_by_id(subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if str(subscription.customer_wallet).lower() != wallet_address.lower():
        raise HTTPException(status_code=403, detail="Wallet address mismatch")
    return subscription


@router.post(
    "/",
    response_model=SubscriptionCreateResponse,
    status_code=201,
    summary="Create subscription",
    responses={**_AUTH_RESPONSES, 422: {"description": "Validation error"}},
)
async def create_subscription(
    data: SubscriptionCreate,
    db: Session = Depends(get_db),
    merchant: Merchant = Depends(get_current_merchant),
) -> SubscriptionCreateResponse:
    """Create a subscription pending the customer's approval."""
    service = SubscriptionLifecycleService(db)
    subscription = service.create_subscription(merchant.id, data)  # type: ignore[arg-type]
    return SubscriptionCreateResponse(
        **SubscriptionResponse.model_validate(subscription).model_dump(),
        approval_url=f"{settings.APP_URL.rstrip('/')}/subscribe/{subscription.id}",
    )


@router.get(
    "/",
    response_model=list[SubscriptionResponse],
    summary="List subscriptions",
    responses=_AUTH_RESPONSES,
)
async def list_subscriptions(
    response: Response,
    status: SubscriptionStatus | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    merchant: Merchant = Depends(get_current_merchant),
) -> list[Subscription]:
    """List the merchant's subscriptions, optionally filtered by status."""
    repo = SubscriptionRepository(db)
    response.headers["X-Total-Count"] = str(repo.count_by_merchant(merchant.id, status))  # type: ignore[arg-type]
    return repo.list_by_merchant(merchant.id, status, skip=skip, limit=limit)  # type: ignore[arg-type]


@router.get(
    "/public/{subscription_id}",
    response_model=PublicSubscriptionResponse,
    summary="Get subscription (public)",
    responses={404: {"description": "Subscription not found"}},
)
async def get_public_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
) -> Subscription:
    """Subscription details for the customer approval page. No auth required."""
    subscription = SubscriptionRepository(db).get_by_id(subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return subscription


@router.get(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    summary="Get subscription",
    responses={
        **_AUTH_RESPONSES,
        403: {"description": "Subscription belongs to another merchant"},
        404: {"description": "Subscription not found"},
    },
)
async def get_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    merchant: Merchant = Depends(get_current_merchant),
) -> Subscription:
    return _get_owned_subscription(db, subscription_id, merchant)


@router.delete(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    summary="Cancel subscription (merchant)",
    responses={
        **_AUTH_RESPONSES,
        403: {"description": "Subscription belongs to another merchant"},
        404: {"description": "Subscription not found"},
        409: {"description": "Subscription is already cancelled"},
    },
)
async def cancel_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    merchant: Merchant = Depends(get_current_merchant),
) -> Subscription:
    """Merchant-initiated cancellation."""
    _get_owned_subscription(db, subscription_id, merchant)
    return SubscriptionLifecycleService(db).cancel(subscription_id)


@router.get(
    "/{subscription_id}/charges",
    response_model=list[SubscriptionChargeResponse],
    summary="List charge attempts",
    responses={
        **_AUTH_RESPONSES,
        403: {"description": "Subscription belongs to another merchant"},
        404: {"description": "Subscription not found"},
    },
)
async def list_subscription_charges(
    subscription_id: UUID,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    merchant: Merchant = Depends(get_current_merchant),
) -> list[SubscriptionCharge]:
    """Charge attempts for a subscription, newest first."""
    _get_owned_subscription(db, subscription_id, merchant)
    return SubscriptionChargeRepository(db).get_by_subscription_id(
        subscription_id, skip=skip, limit=limit
    )


@router.post(
    "/{subscription_id}/approve",
    response_model=PublicSubscriptionResponse,
    summary="Approve subscription",
    responses={
        403: {"description": "Wallet address mismatch"},
        404: {"description": "Subscription not found"},
        409: {"description": "Subscription is not pending approval"},
    },
)
async def approve_subscription(
    subscription_id: UUID,
    data: ApproveSubscriptionRequest,
    db: Session = Depends(get_db),
) -> Subscription:
    """Activate a subscription after the customer's USDC approval transaction."""
    _get_for_wallet(db, subscription_id, data.wallet_address)
    return SubscriptionLifecycleService(db).approve(
        subscription_id,
        approved_amount=data.approved_amount,
        approval_tx_hash=data.transaction_hash,
    )


@router.post(
    "/{subscription_id}/cancel",
    response_model=PublicSubscriptionResponse,
    summary="Cancel subscription (customer)",
    responses={
        403: {"description": "Wallet address mismatch"},
        404: {"description": "Subscription not found"},
        409: {"description": "Subscription is already cancelled"},
    },
)
async def customer_cancel_subscription(
    subscription_id: UUID,
    data: CustomerCancelRequest,
    db: Session = Depends(get_db),
) -> Subscription:
    """Customer-initiated cancellation, authorised by the subscribing wallet."""
    _get_for_wallet(db, subscription_id, data.wallet_address)
    return SubscriptionLifecycleService(db).cancel(subscription_id)
