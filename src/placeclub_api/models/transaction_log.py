"""Append-only audit trail of merchant redemptions and boost activations."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID

from placeclub_api.db.base import Base, enum_values


class TransactionEntryKind(str, Enum):
    """Kinds of audit entries. Only redemptions count towards cooldowns."""

    REDEMPTION = "redemption"
    BOOST_ACTIVATION = "boost_activation"


class TransactionLog(Base):
    """Immutable record of a points movement. Rows are never updated or deleted."""

    __tablename__ = "transaction_logs"
    __table_args__ = (
        Index("ix_transaction_logs_user_merchant_occurred", "user_id", "merchant_id", "occurred_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=True)
    entry_kind = Column(
        SqlEnum(TransactionEntryKind, name="transaction_entry_kind", values_callable=enum_values),
        nullable=False,
    )
    base_points = Column(Integer, nullable=False, default=0)
    multiplier = Column(Numeric(4, 2), nullable=False, default=1)
    effective_points = Column(Integer, nullable=False, default=0)
    note = Column(String, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
