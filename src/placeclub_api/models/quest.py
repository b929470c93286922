"""Quest sets (sagas): ordered steps across collectibles and merchants."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from placeclub_api.db.base import Base, enum_values


class QuestEnrollmentStatus(str, Enum):
    """Lifecycle of a user's participation in a quest set."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestSet(Base):
    """Published sequence of steps. Step order is immutable once published."""

    __tablename__ = "quest_sets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    city = Column(String, nullable=True)
    reward_collectible_id = Column(UUID(as_uuid=True), ForeignKey("collectibles.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    steps = relationship("QuestStep", back_populates="quest_set", order_by="QuestStep.step_order")


class QuestStep(Base):
    """Single step pointing at exactly one collectible or merchant."""

    __tablename__ = "quest_steps"
    __table_args__ = (
        UniqueConstraint("quest_set_id", "step_order", name="uq_quest_steps_set_order"),
        CheckConstraint(
            "(collectible_id IS NOT NULL AND merchant_id IS NULL) "
            "OR (collectible_id IS NULL AND merchant_id IS NOT NULL)",
            name="ck_quest_steps_single_reference",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    quest_set_id = Column(UUID(as_uuid=True), ForeignKey("quest_sets.id", ondelete="CASCADE"), nullable=False)
    step_order = Column(Integer, nullable=False)
    title = Column(String, nullable=True)
    collectible_id = Column(UUID(as_uuid=True), ForeignKey("collectibles.id"), nullable=True)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=True)

    quest_set = relationship("QuestSet", back_populates="steps")


class QuestStepCompletion(Base):
    """Completion of one step by one user. Written once."""

    __tablename__ = "quest_step_completions"
    __table_args__ = (
        UniqueConstraint("user_id", "step_id", name="uq_quest_step_completions_user_step"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    step_id = Column(UUID(as_uuid=True), ForeignKey("quest_steps.id", ondelete="CASCADE"), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)


class QuestEnrollment(Base):
    """A user's started quest set."""

    __tablename__ = "quest_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_set_id", name="uq_quest_enrollments_user_set"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quest_set_id = Column(UUID(as_uuid=True), ForeignKey("quest_sets.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SqlEnum(QuestEnrollmentStatus, name="quest_enrollment_status", values_callable=enum_values),
        nullable=False,
        default=QuestEnrollmentStatus.IN_PROGRESS,
    )
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
