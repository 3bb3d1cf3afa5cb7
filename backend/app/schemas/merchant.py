from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl


class MerchantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    website: HttpUrl
    webhook_url: HttpUrl
    wallet_address: str = Field(..., pattern=r"^0x[a-fA-F0-9]{40}$")


class MerchantResponse(BaseModel):
    id: UUID
    name: str
    website: str | None
    webhook_url: str | None
    wallet_address: str
    api_key_prefix: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MerchantCreateResponse(MerchantResponse):
    """Returned only on registration, with the raw API key."""

    api_key: str
