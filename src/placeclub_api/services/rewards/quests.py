"""Quest sets: derived step states, enrollment and single-step completion."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.models.quest import (
    QuestEnrollment,
    QuestEnrollmentStatus,
    QuestSet,
    QuestStep,
    QuestStepCompletion,
)
from .results import Accepted, Outcome, Rejected, RejectionReason
from .unit_of_work import accept, reject, resolve_now, store_guard


class StepStatus(str, Enum):
    COMPLETED = "completed"
    ACTIVE = "active"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class StepState:
    step_id: UUID
    step_order: int
    status: StepStatus


@dataclass(frozen=True, slots=True)
class QuestProgress:
    """Per-user view of a quest set."""

    quest_set_id: UUID
    slug: str
    steps: list[StepState]
    completed_steps: int
    total_steps: int
    enrollment_status: QuestEnrollmentStatus | None

    @property
    def percent(self) -> int:
        if not self.total_steps:
            return 0
        return (self.completed_steps * 100) // self.total_steps

    def state_for(self, step_id: UUID) -> StepState | None:
        for state in self.steps:
            if state.step_id == step_id:
                return state
        return None


def derive_step_states(steps: Iterable[QuestStep], completed_ids: Iterable[UUID]) -> list[StepState]:
    """Completed steps stay completed; the first open step is active, later ones locked."""

    done = set(completed_ids)
    states: list[StepState] = []
    active_assigned = False
    for step in sorted(steps, key=lambda item: item.step_order):
        if step.id in done:
            status = StepStatus.COMPLETED
        elif not active_assigned:
            status = StepStatus.ACTIVE
            active_assigned = True
        else:
            status = StepStatus.LOCKED
        states.append(StepState(step_id=step.id, step_order=step.step_order, status=status))
    return states


class QuestProgressService:
    """Tracks which quest steps a user has completed."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def start_quest(
        self,
        user_id: UUID,
        quest_set_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[QuestEnrollment]:
        """Enroll the user once; a repeated start returns the existing enrollment."""

        operation = "start_quest"
        current_time = resolve_now(now)
        async with store_guard(self._db, operation):
            quest = await self._db.get(QuestSet, quest_set_id)
            if quest is None or not quest.is_active:
                return await reject(
                    self._db, operation, Rejected(RejectionReason.QUEST_NOT_FOUND), quest_set_id=quest_set_id
                )

            existing = await self._enrollment(user_id, quest_set_id)
            if existing is not None:
                await self._db.commit()
                return Accepted(existing)

            enrollment = QuestEnrollment(
                user_id=user_id,
                quest_set_id=quest_set_id,
                status=QuestEnrollmentStatus.IN_PROGRESS,
                started_at=current_time,
            )
            self._db.add(enrollment)
            try:
                await self._db.flush()
            except IntegrityError:
                await self._db.rollback()
                existing = await self._enrollment(user_id, quest_set_id)
                await self._db.commit()
                if existing is None:
                    raise
                return Accepted(existing)

            logger.info("Quest started", user_id=str(user_id), quest_set_id=str(quest_set_id))
            return await accept(self._db, operation, Accepted(enrollment))

    async def get_progress(self, user_id: UUID, quest_set_id: UUID) -> Outcome[QuestProgress]:
        async with store_guard(self._db, "get_progress"):
            quest = await self._db.get(QuestSet, quest_set_id)
            if quest is None or not quest.is_active:
                return Rejected(RejectionReason.QUEST_NOT_FOUND)

            steps = await self._steps(quest_set_id)
            completed = await self._completed_step_ids(user_id, [step.id for step in steps])
            enrollment = await self._enrollment(user_id, quest_set_id)
            states = derive_step_states(steps, completed)
            progress = QuestProgress(
                quest_set_id=quest.id,
                slug=quest.slug,
                steps=states,
                completed_steps=sum(1 for state in states if state.status is StepStatus.COMPLETED),
                total_steps=len(states),
                enrollment_status=QuestEnrollmentStatus(enrollment.status) if enrollment is not None else None,
            )
            return Accepted(progress)

    async def step_state(self, user_id: UUID, step_id: UUID) -> Outcome[StepState]:
        """Derived state of one step for ``user_id``, used to gate completions."""

        async with store_guard(self._db, "step_state"):
            step = await self._db.get(QuestStep, step_id)
            if step is None:
                return Rejected(RejectionReason.STEP_NOT_FOUND)
            quest_set_id = step.quest_set_id

        progress = await self.get_progress(user_id, quest_set_id)
        if isinstance(progress, Rejected):
            return Rejected(RejectionReason.STEP_NOT_FOUND)
        state = progress.value.state_for(step_id)
        if state is None:
            return Rejected(RejectionReason.STEP_NOT_FOUND)
        return Accepted(state)

    async def complete_step(
        self,
        user_id: UUID,
        step_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[QuestStepCompletion]:
        """Record a step completion once.

        Whether the step is currently the active one is the caller's concern.
        Completing the last open step also closes the user's enrollment, in the
        same transaction.
        """

        operation = "complete_step"
        current_time = resolve_now(now)
        async with store_guard(self._db, operation):
            step = await self._db.get(QuestStep, step_id)
            if step is None:
                return await reject(self._db, operation, Rejected(RejectionReason.STEP_NOT_FOUND), step_id=step_id)
            quest_set_id = step.quest_set_id

            completion = QuestStepCompletion(user_id=user_id, step_id=step_id, completed_at=current_time)
            self._db.add(completion)
            try:
                await self._db.flush()
            except IntegrityError:
                return await reject(
                    self._db,
                    operation,
                    Rejected(RejectionReason.ALREADY_COMPLETED),
                    discard=True,
                    user_id=user_id,
                    step_id=step_id,
                )

            await self._close_enrollment_if_finished(user_id, quest_set_id, current_time)
            logger.info("Quest step completed", user_id=str(user_id), step_id=str(step_id))
            return await accept(self._db, operation, Accepted(completion))

    async def _close_enrollment_if_finished(self, user_id: UUID, quest_set_id: UUID, now: datetime) -> None:
        total_stmt = select(func.count(QuestStep.id)).where(QuestStep.quest_set_id == quest_set_id)
        done_stmt = (
            select(func.count(QuestStepCompletion.id))
            .join(QuestStep, QuestStep.id == QuestStepCompletion.step_id)
            .where(QuestStep.quest_set_id == quest_set_id, QuestStepCompletion.user_id == user_id)
        )
        total = (await self._db.execute(total_stmt)).scalar_one()
        done = (await self._db.execute(done_stmt)).scalar_one()
        if not total or done < total:
            return

        stmt = (
            update(QuestEnrollment)
            .where(
                QuestEnrollment.user_id == user_id,
                QuestEnrollment.quest_set_id == quest_set_id,
                QuestEnrollment.status == QuestEnrollmentStatus.IN_PROGRESS,
            )
            .values(status=QuestEnrollmentStatus.COMPLETED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._db.execute(stmt)
        logger.info("Quest completed", user_id=str(user_id), quest_set_id=str(quest_set_id))

    async def _steps(self, quest_set_id: UUID) -> Sequence[QuestStep]:
        stmt = select(QuestStep).where(QuestStep.quest_set_id == quest_set_id).order_by(QuestStep.step_order)
        return (await self._db.execute(stmt)).scalars().all()

    async def _completed_step_ids(self, user_id: UUID, step_ids: list[UUID]) -> set[UUID]:
        if not step_ids:
            return set()
        stmt = select(QuestStepCompletion.step_id).where(
            QuestStepCompletion.user_id == user_id,
            QuestStepCompletion.step_id.in_(step_ids),
        )
        return set((await self._db.execute(stmt)).scalars().all())

    async def _enrollment(self, user_id: UUID, quest_set_id: UUID) -> QuestEnrollment | None:
        stmt = select(QuestEnrollment).where(
            QuestEnrollment.user_id == user_id,
            QuestEnrollment.quest_set_id == quest_set_id,
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()


__all__ = [
    "QuestProgress",
    "QuestProgressService",
    "StepState",
    "StepStatus",
    "derive_step_states",
]
