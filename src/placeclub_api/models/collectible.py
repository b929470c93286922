"""Collectible cards and the per-user unlock ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from placeclub_api.db.base import Base, enum_values


class CollectibleKind(str, Enum):
    """How a collectible is unlocked."""

    LOCATION = "location"
    EVENT = "event"
    CODE = "code"


class UnlockSource(str, Enum):
    """Channel that produced an unlock record."""

    PROXIMITY = "proximity"
    CODE = "code"
    MANUAL = "manual"


class Collectible(Base):
    """Reference card unlocked by visiting a place, an event, or a partner code."""

    __tablename__ = "collectibles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    city = Column(String, nullable=True)
    kind = Column(SqlEnum(CollectibleKind, name="collectible_kind", values_callable=enum_values), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    unlock_radius_m = Column(Float, nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    merchant = relationship("Merchant")


class UnlockRecord(Base):
    """A collectible owned by a user. At most one per (user, collectible)."""

    __tablename__ = "unlock_records"
    __table_args__ = (
        UniqueConstraint("user_id", "collectible_id", name="uq_unlock_records_user_collectible"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    collectible_id = Column(UUID(as_uuid=True), ForeignKey("collectibles.id", ondelete="CASCADE"), nullable=False)
    source = Column(SqlEnum(UnlockSource, name="unlock_source", values_callable=enum_values), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False)

    collectible = relationship("Collectible")
