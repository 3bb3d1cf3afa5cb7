import hashlib
import secrets
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.merchant import Merchant
from app.schemas.merchant import MerchantCreate


def generate_api_key() -> str:
    """Generate a random secret API key with the 'sk_live_' prefix."""
    return "sk_live_" + secrets.token_hex(24)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hash of the raw API key."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


class MerchantRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, merchant_id: UUID) -> Merchant | None:
        return self.db.query(Merchant).filter(Merchant.id == merchant_id).first()

    def get_by_api_key_hash(self, key_hash: str) -> Merchant | None:
        return self.db.query(Merchant).filter(Merchant.api_key_hash == key_hash).first()

    def create(self, data: MerchantCreate) -> tuple[Merchant, str]:
        """Register a merchant. Returns (merchant, raw_api_key)."""
        raw_key = generate_api_key()
        merchant = Merchant(
            name=data.name,
            website=str(data.website),
            webhook_url=str(data.webhook_url),
            wallet_address=data.wallet_address,
            api_key_hash=hash_api_key(raw_key),
            api_key_prefix=raw_key[:12],
        )
        self.db.add(merchant)
        self.db.commit()
        self.db.refresh(merchant)
        return merchant, raw_key

    def get_wallet_address(self, merchant_id: UUID) -> str | None:
        merchant = self.get_by_id(merchant_id)
        if not merchant:
            return None
        return str(merchant.wallet_address)
