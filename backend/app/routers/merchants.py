from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import get_current_merchant
from app.core.database import get_db
from app.models.merchant import Merchant
from app.repositories.merchant_repository import MerchantRepository
from app.schemas.merchant import MerchantCreate, MerchantCreateResponse, MerchantResponse

router = APIRouter()


@router.post(
    "/",
    response_model=MerchantCreateResponse,
    status_code=201,
    summary="Register merchant",
    responses={422: {"description": "Validation error"}},
)
async def register_merchant(
    data: MerchantCreate,
    db: Session = Depends(get_db),
) -> MerchantCreateResponse:
    """Register a merchant. The raw API key is only returned here."""
    merchant, raw_key = MerchantRepository(db).create(data)
    return MerchantCreateResponse(
        **MerchantResponse.model_validate(merchant).model_dump(),
        api_key=raw_key,
    )


@router.get(
    "/me",
    response_model=MerchantResponse,
    summary="Get current merchant",
    responses={401: {"description": "Unauthorized – invalid or missing API key"}},
)
async def get_me(merchant: Merchant = Depends(get_current_merchant)) -> Merchant:
    return merchant
