import hmac

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import Unauthorized
from app.models.merchant import Merchant
from app.repositories.merchant_repository import MerchantRepository, hash_api_key


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise Unauthorized("Missing or invalid Authorization header")
    token = auth_header[7:]
    if not token:
        raise Unauthorized("API key is required")
    return token


def get_current_merchant(
    request: Request,
    db: Session = Depends(get_db),
) -> Merchant:
    """Resolve the merchant owning the API key in the Authorization header.

    The key is looked up by its hash; identity is never read out of the key
    string itself.
    """
    raw_key = _bearer_token(request)
    if not raw_key.startswith(("sk_live_", "sk_test_")):
        raise Unauthorized("Invalid API key format")

    merchant = MerchantRepository(db).get_by_api_key_hash(hash_api_key(raw_key))
    if not merchant:
        raise Unauthorized("Invalid API key")
    return merchant


def require_internal_service(request: Request) -> None:
    """Allow only the scheduler holding ``INTERNAL_SERVICE_TOKEN``.

    An unset token rejects every call.
    """
    expected = settings.INTERNAL_SERVICE_TOKEN
    auth_header = request.headers.get("Authorization") or ""
    if not expected or not hmac.compare_digest(
        auth_header.encode(), f"Bearer {expected}".encode()
    ):
        raise Unauthorized("Unauthorized - internal service only")
