"""Partner merchants funding code redemptions from a prepaid balance."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from placeclub_api.db.base import Base


class Merchant(Base):
    """Partner location with a prepaid points balance and a redemption code."""

    __tablename__ = "merchants"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_merchants_balance_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    city = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    balance = Column(Integer, nullable=False, default=0, server_default="0")
    redemption_code = Column(String(16), nullable=True, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
