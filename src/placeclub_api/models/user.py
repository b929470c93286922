from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from placeclub_api.db.base import Base


class User(Base):
    """Club member holding a points balance and an optional reward multiplier."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    multiplier = Column(Numeric(4, 2), nullable=True)
    multiplier_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
