import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from placeclub_api.models.mission import (
    MissionDefinition,
    MissionSubmission,
    MissionSubmissionStatus,
    MissionVerificationType,
)
from placeclub_api.models.user import User
from placeclub_api.services.rewards import (
    Accepted,
    MissionClaimCoordinator,
    Rejected,
    RejectionReason,
)


MONDAY = datetime(2026, 5, 11, 8, 0, tzinfo=timezone.utc)


async def _seed(session_factory):
    async with session_factory() as session:
        user = User(email="daily@example.com")
        session.add_all(
            [
                user,
                MissionDefinition(
                    code="daily-checkin",
                    title="Daily check-in",
                    cadence="daily",
                    verification_type=MissionVerificationType.BUTTON,
                    reward_points=10,
                ),
                MissionDefinition(
                    code="welcome",
                    title="Welcome aboard",
                    cadence="special",
                    verification_type=MissionVerificationType.BUTTON,
                    reward_points=25,
                ),
                MissionDefinition(
                    code="daily-login",
                    title="Open the app",
                    cadence="daily",
                    verification_type=MissionVerificationType.AUTOMATIC,
                    reward_points=5,
                ),
                MissionDefinition(
                    code="weekly-streak",
                    title="Check in three days this week",
                    cadence="weekly",
                    verification_type=MissionVerificationType.STREAK,
                    reward_points=50,
                    streak_source_code="daily-checkin",
                    streak_threshold=3,
                ),
            ]
        )
        await session.commit()
        return user.id


async def _balance(session_factory, user_id) -> int:
    async with session_factory() as session:
        user = await session.get(User, user_id)
        return user.points_balance


@pytest.mark.asyncio
async def test_daily_claim_once_per_period(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        first = await coordinator.claim(user_id, "daily-checkin", now=MONDAY)
        assert isinstance(first, Accepted)
        assert first.value.period_key == "2026-05-11"
        assert first.value.credited_points == 10
        assert first.value.balance == 10

        again = await coordinator.claim(user_id, "daily-checkin", now=MONDAY + timedelta(hours=6))
        assert again == Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD)

        next_day = await coordinator.claim(user_id, "daily-checkin", now=MONDAY + timedelta(days=1))
        assert isinstance(next_day, Accepted)
        assert next_day.value.period_key == "2026-05-12"

    assert await _balance(session_factory, user_id) == 20


@pytest.mark.asyncio
async def test_concurrent_claim_loses_on_unique_index(session_factory, monkeypatch) -> None:
    user_id = await _seed(session_factory)

    async def _no_prior(self, user_id, mission, period):
        return None

    monkeypatch.setattr(MissionClaimCoordinator, "_check_prior_submissions", _no_prior)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        winner = await coordinator.claim(user_id, "daily-checkin", now=MONDAY)
        loser = await coordinator.claim(user_id, "daily-checkin", now=MONDAY)

    assert isinstance(winner, Accepted)
    assert loser == Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD)
    assert await _balance(session_factory, user_id) == 10

    async with session_factory() as session:
        count = (await session.execute(select(func.count(MissionSubmission.id)))).scalar_one()
        assert count == 1



async def _claim_in_own_session(session_factory, user_id):
    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        return await coordinator.claim(user_id, "daily-checkin", now=MONDAY)


@pytest.mark.asyncio
async def test_parallel_claims_credit_exactly_once(shared_session_factory) -> None:
    user_id = await _seed(shared_session_factory)

    outcomes = await asyncio.gather(
        *(_claim_in_own_session(shared_session_factory, user_id) for _ in range(5))
    )

    accepted = [outcome for outcome in outcomes if isinstance(outcome, Accepted)]
    assert len(accepted) == 1
    assert all(
        outcome == Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD)
        for outcome in outcomes
        if not isinstance(outcome, Accepted)
    )
    assert await _balance(shared_session_factory, user_id) == 10

    async with shared_session_factory() as session:
        approved = (
            await session.execute(
                select(func.count(MissionSubmission.id)).where(
                    MissionSubmission.status == MissionSubmissionStatus.APPROVED
                )
            )
        ).scalar_one()
        assert approved == 1

@pytest.mark.asyncio
async def test_rejected_submission_does_not_block_claim(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        mission = (
            await session.execute(select(MissionDefinition).where(MissionDefinition.code == "daily-checkin"))
        ).scalar_one()
        session.add(
            MissionSubmission(
                user_id=user_id,
                mission_id=mission.id,
                period_key="2026-05-11",
                status=MissionSubmissionStatus.REJECTED,
                submitted_at=MONDAY - timedelta(hours=1),
            )
        )
        await session.commit()

    async with session_factory() as session:
        outcome = await MissionClaimCoordinator(session, timezone="Europe/Rome").claim(
            user_id, "daily-checkin", now=MONDAY
        )

    assert isinstance(outcome, Accepted)


@pytest.mark.asyncio
async def test_one_off_mission_is_claimed_once(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        first = await coordinator.claim(user_id, "welcome", now=MONDAY)
        assert isinstance(first, Accepted)
        assert first.value.period_key == "permanent"
        assert first.value.reset_at is None

        later = await coordinator.claim(user_id, "welcome", now=MONDAY + timedelta(days=90))
        assert later == Rejected(RejectionReason.ALREADY_CLAIMED_ONCE)

    assert await _balance(session_factory, user_id) == 25


@pytest.mark.asyncio
async def test_verification_type_must_match_operation(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        button_on_auto = await coordinator.claim(user_id, "daily-login", now=MONDAY)
        auto_on_button = await coordinator.record_automatic(user_id, "daily-checkin", now=MONDAY)
        auto = await coordinator.record_automatic(user_id, "daily-login", now=MONDAY)
        unknown = await coordinator.claim(user_id, "does-not-exist", now=MONDAY)

    assert button_on_auto == Rejected(RejectionReason.WRONG_VERIFICATION_TYPE)
    assert auto_on_button == Rejected(RejectionReason.WRONG_VERIFICATION_TYPE)
    assert isinstance(auto, Accepted)
    assert unknown == Rejected(RejectionReason.MISSION_NOT_FOUND)


@pytest.mark.asyncio
async def test_weekly_streak_needs_threshold_of_daily_claims(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        for offset in (0, 2):
            outcome = await coordinator.claim(user_id, "daily-checkin", now=MONDAY + timedelta(days=offset))
            assert isinstance(outcome, Accepted)

        too_early = await coordinator.evaluate_streak(user_id, "weekly-streak", now=MONDAY + timedelta(days=2))
        assert too_early == Rejected(RejectionReason.STREAK_THRESHOLD_NOT_MET)

        third = await coordinator.claim(user_id, "daily-checkin", now=MONDAY + timedelta(days=4))
        assert isinstance(third, Accepted)

        streak = await coordinator.evaluate_streak(user_id, "weekly-streak", now=MONDAY + timedelta(days=4))
        assert isinstance(streak, Accepted)
        assert streak.value.period_key == "2026-W20"
        assert streak.value.credited_points == 50

        repeat = await coordinator.evaluate_streak(user_id, "weekly-streak", now=MONDAY + timedelta(days=5))
        assert repeat == Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD)

        not_streak = await coordinator.evaluate_streak(user_id, "daily-checkin", now=MONDAY)
        assert not_streak == Rejected(RejectionReason.WRONG_VERIFICATION_TYPE)

    assert await _balance(session_factory, user_id) == 80


@pytest.mark.asyncio
async def test_streak_ignores_claims_from_previous_week(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        for offset in (-3, -2, -1):
            await coordinator.claim(user_id, "daily-checkin", now=MONDAY + timedelta(days=offset))

        outcome = await coordinator.evaluate_streak(user_id, "weekly-streak", now=MONDAY)

    assert outcome == Rejected(RejectionReason.STREAK_THRESHOLD_NOT_MET)


@pytest.mark.asyncio
async def test_mission_status_reports_current_period(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        coordinator = MissionClaimCoordinator(session, timezone="Europe/Rome")
        before = await coordinator.mission_status(user_id, "daily-checkin", now=MONDAY)
        await coordinator.claim(user_id, "daily-checkin", now=MONDAY)
        after = await coordinator.mission_status(user_id, "daily-checkin", now=MONDAY)
        tomorrow = await coordinator.mission_status(user_id, "daily-checkin", now=MONDAY + timedelta(days=1))

    assert isinstance(before, Accepted) and not before.value.claimed
    assert after.value.claimed
    assert after.value.status is MissionSubmissionStatus.APPROVED
    assert not tomorrow.value.claimed
    assert tomorrow.value.period_key == "2026-05-12"


@pytest.mark.asyncio
async def test_naive_now_is_refused(session_factory) -> None:
    user_id = await _seed(session_factory)

    async with session_factory() as session:
        with pytest.raises(ValueError):
            await MissionClaimCoordinator(session).claim(user_id, "daily-checkin", now=datetime(2026, 5, 11, 8, 0))


@pytest.mark.asyncio
async def test_mission_with_legacy_cadence_label_is_claimable(session_factory) -> None:
    user_id = await _seed(session_factory)
    async with session_factory() as session:
        session.add(
            MissionDefinition(
                code="visita-settimanale",
                title="Visit a partner this week",
                cadence="settimanale",
                verification_type=MissionVerificationType.BUTTON,
                reward_points=15,
            )
        )
        await session.commit()

    async with session_factory() as session:
        outcome = await MissionClaimCoordinator(session, timezone="Europe/Rome").claim(
            user_id, "visita-settimanale", now=MONDAY
        )

    assert isinstance(outcome, Accepted)
    assert outcome.value.period_key == "2026-W20"
