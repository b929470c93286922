"""Mission catalog and per-period submissions."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from placeclub_api.db.base import Base, enum_values


class MissionVerificationType(str, Enum):
    """How completion of a mission is established."""

    BUTTON = "button"
    AUTOMATIC = "automatic"
    STREAK = "streak"
    PROOF = "proof"


class MissionSubmissionStatus(str, Enum):
    """Review lifecycle of a mission submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


ACTIVE_SUBMISSION_STATUSES = (MissionSubmissionStatus.PENDING, MissionSubmissionStatus.APPROVED)


class MissionDefinition(Base):
    """Recurring or one-off task that credits points when claimed."""

    __tablename__ = "mission_definitions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    cadence = Column(String(16), nullable=False)
    verification_type = Column(
        SqlEnum(MissionVerificationType, name="mission_verification_type", values_callable=enum_values),
        nullable=False,
        default=MissionVerificationType.BUTTON,
    )
    reward_points = Column(Integer, nullable=False, default=0, server_default="0")
    streak_source_code = Column(String, nullable=True)
    streak_threshold = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class MissionSubmission(Base):
    """A user's claim of a mission for one period."""

    __tablename__ = "mission_submissions"
    __table_args__ = (
        # One live (pending/approved) claim per user, mission and period.
        Index(
            "uq_mission_submissions_active_period",
            "user_id",
            "mission_id",
            "period_key",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
            sqlite_where=text("status IN ('pending', 'approved')"),
        ),
        Index("ix_mission_submissions_user_mission", "user_id", "mission_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    mission_id = Column(UUID(as_uuid=True), ForeignKey("mission_definitions.id", ondelete="CASCADE"), nullable=False)
    period_key = Column(String(16), nullable=False)
    status = Column(
        SqlEnum(
            MissionSubmissionStatus,
            name="mission_submission_status",
            values_callable=enum_values,
        ),
        nullable=False,
        default=MissionSubmissionStatus.PENDING,
    )
    credited_points = Column(Integer, nullable=False, default=0, server_default="0")
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    mission = relationship("MissionDefinition")
