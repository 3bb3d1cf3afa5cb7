from sqlalchemy import Column, String

from app.core.database import Base
from app.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    website = Column(String(2048), nullable=True)
    webhook_url = Column(String(2048), nullable=True)
    wallet_address = Column(String(42), nullable=False)
    api_key_hash = Column(String(255), nullable=False, unique=True, index=True)
    api_key_prefix = Column(String(16), nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
