from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from placeclub_api.models.collectible import Collectible, CollectibleKind
from placeclub_api.models.quest import QuestEnrollment, QuestEnrollmentStatus, QuestSet, QuestStep
from placeclub_api.models.user import User
from placeclub_api.services.rewards import (
    Accepted,
    QuestProgressService,
    Rejected,
    RejectionReason,
    StepStatus,
    derive_step_states,
)


NOW = datetime(2026, 8, 20, 16, 0, tzinfo=timezone.utc)


def _step(order: int) -> QuestStep:
    return QuestStep(id=uuid4(), step_order=order)


def test_derive_step_states_marks_first_open_step_active() -> None:
    a, b, c = _step(1), _step(2), _step(3)

    states = derive_step_states([c, a, b], {a.id})

    assert [state.status for state in states] == [StepStatus.COMPLETED, StepStatus.ACTIVE, StepStatus.LOCKED]
    assert [state.step_id for state in states] == [a.id, b.id, c.id]


def test_derive_step_states_tolerates_out_of_order_completions() -> None:
    a, b, c = _step(1), _step(2), _step(3)

    states = derive_step_states([a, b, c], {b.id})

    assert [state.status for state in states] == [StepStatus.ACTIVE, StepStatus.COMPLETED, StepStatus.LOCKED]


def test_derive_step_states_all_done() -> None:
    a, b = _step(1), _step(2)

    states = derive_step_states([a, b], {a.id, b.id})

    assert all(state.status is StepStatus.COMPLETED for state in states)


async def _seed(session_factory):
    async with session_factory() as session:
        user = User(email="quester@example.com")
        cards = [
            Collectible(
                slug=f"stop-{index}",
                title=f"Stop {index}",
                kind=CollectibleKind.LOCATION,
                latitude=41.89 + index / 1000,
                longitude=12.49,
            )
            for index in range(3)
        ]
        quest = QuestSet(slug="roman-forum", title="Roman Forum walk")
        session.add_all([user, quest, *cards])
        await session.flush()
        steps = [
            QuestStep(quest_set_id=quest.id, step_order=index + 1, collectible_id=card.id)
            for index, card in enumerate(cards)
        ]
        session.add_all(steps)
        await session.commit()
        return user.id, quest.id, [step.id for step in steps]


@pytest.mark.asyncio
async def test_start_quest_is_insert_once(session_factory) -> None:
    user_id, quest_id, _ = await _seed(session_factory)

    async with session_factory() as session:
        service = QuestProgressService(session)
        first = await service.start_quest(user_id, quest_id, now=NOW)
        second = await service.start_quest(user_id, quest_id, now=NOW)
        missing = await service.start_quest(user_id, uuid4(), now=NOW)

    assert isinstance(first, Accepted)
    assert isinstance(second, Accepted)
    assert first.value.id == second.value.id
    assert missing == Rejected(RejectionReason.QUEST_NOT_FOUND)


@pytest.mark.asyncio
async def test_complete_step_once_and_progress(session_factory) -> None:
    user_id, quest_id, (first_step, second_step, third_step) = await _seed(session_factory)

    async with session_factory() as session:
        service = QuestProgressService(session)
        await service.start_quest(user_id, quest_id, now=NOW)

        done = await service.complete_step(user_id, first_step, now=NOW)
        assert isinstance(done, Accepted)
        assert done.value.step_id == first_step

        again = await service.complete_step(user_id, first_step, now=NOW)
        assert again == Rejected(RejectionReason.ALREADY_COMPLETED)

        progress = await service.get_progress(user_id, quest_id)
        assert isinstance(progress, Accepted)
        assert [state.status for state in progress.value.steps] == [
            StepStatus.COMPLETED,
            StepStatus.ACTIVE,
            StepStatus.LOCKED,
        ]
        assert progress.value.percent == 33
        assert progress.value.enrollment_status is QuestEnrollmentStatus.IN_PROGRESS

        locked = await service.step_state(user_id, third_step)
        assert locked.value.status is StepStatus.LOCKED

        unknown = await service.complete_step(user_id, uuid4(), now=NOW)
        assert unknown == Rejected(RejectionReason.STEP_NOT_FOUND)


@pytest.mark.asyncio
async def test_last_step_completes_enrollment(session_factory) -> None:
    user_id, quest_id, step_ids = await _seed(session_factory)

    async with session_factory() as session:
        service = QuestProgressService(session)
        await service.start_quest(user_id, quest_id, now=NOW)
        for step_id in step_ids:
            outcome = await service.complete_step(user_id, step_id, now=NOW)
            assert isinstance(outcome, Accepted)

    async with session_factory() as session:
        progress = await QuestProgressService(session).get_progress(user_id, quest_id)
        stmt = select(QuestEnrollment).where(
            QuestEnrollment.user_id == user_id,
            QuestEnrollment.quest_set_id == quest_id,
        )
        enrollment = (await session.execute(stmt)).scalar_one()

    assert progress.value.percent == 100
    assert progress.value.enrollment_status is QuestEnrollmentStatus.COMPLETED
    assert enrollment.completed_at is not None

