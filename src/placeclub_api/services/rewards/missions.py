"""Claims for recurring, one-off, automatic, and streak missions.

A claim is a single insert into ``mission_submissions``. The partial unique
index on (user, mission, period_key) over live statuses is the final arbiter
when two requests race past the read checks; the loser's insert fails and is
reported as ``already_claimed_period``. The reward credit happens in the same
transaction as the insert, so a submission never exists without its points.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.core.settings import settings
from placeclub_api.domain.catalog import CatalogIntegrityError, MissionSpec, load_mission
from placeclub_api.domain.periods import (
    Cadence,
    PeriodKey,
    compute_period,
    daily_keys_within,
    resolve_zone,
)
from placeclub_api.models.mission import (
    ACTIVE_SUBMISSION_STATUSES,
    MissionDefinition,
    MissionSubmission,
    MissionSubmissionStatus,
    MissionVerificationType,
)
from placeclub_api.models.user import User
from .results import Accepted, Outcome, Rejected, RejectionReason
from .unit_of_work import accept, reject, resolve_now, store_guard


@dataclass(frozen=True, slots=True)
class MissionClaim:
    """Receipt for an approved claim."""

    submission_id: UUID
    mission_code: str
    period_key: str
    reset_at: datetime | None
    credited_points: int
    balance: int


@dataclass(frozen=True, slots=True)
class MissionStatus:
    """Read-only view of where a user stands for the current period."""

    mission_code: str
    cadence: Cadence
    period_key: str
    reset_at: datetime | None
    claimed: bool
    status: MissionSubmissionStatus | None


class MissionClaimCoordinator:
    """Decides whether a mission may be claimed for the current period and records it."""

    def __init__(self, db_session: AsyncSession, *, timezone: tzinfo | str | None = None) -> None:
        self._db = db_session
        self._zone = resolve_zone(timezone or settings.service_timezone)

    async def claim(
        self,
        user_id: UUID,
        mission_code: str,
        *,
        now: datetime | None = None,
    ) -> Outcome[MissionClaim]:
        """Button-style claim, auto-approved."""

        return await self._claim_verified(
            "claim_mission",
            user_id,
            mission_code,
            MissionVerificationType.BUTTON,
            now=now,
        )

    async def record_automatic(
        self,
        user_id: UUID,
        mission_code: str,
        *,
        now: datetime | None = None,
    ) -> Outcome[MissionClaim]:
        """Server-observed activity such as a daily login."""

        return await self._claim_verified(
            "record_automatic_mission",
            user_id,
            mission_code,
            MissionVerificationType.AUTOMATIC,
            now=now,
        )

    async def evaluate_streak(
        self,
        user_id: UUID,
        mission_code: str,
        *,
        now: datetime | None = None,
    ) -> Outcome[MissionClaim]:
        """Claim a streak mission once enough daily source claims fall in its period.

        The count is recomputed from approved source submissions on every call;
        the streak claim itself goes through the same insert as any other claim,
        keyed by the streak mission's own period (the ISO week for weekly streaks).
        """

        operation = "evaluate_streak"
        current_time = resolve_now(now)
        async with store_guard(self._db, operation):
            mission = await self._load_spec(mission_code)
            if mission is None:
                return await reject(self._db, operation, Rejected(RejectionReason.MISSION_NOT_FOUND), code=mission_code)
            if mission.verification_type is not MissionVerificationType.STREAK:
                return await reject(
                    self._db, operation, Rejected(RejectionReason.WRONG_VERIFICATION_TYPE), code=mission_code
                )

            period = compute_period(mission.cadence, current_time, self._zone)
            prior = await self._check_prior_submissions(user_id, mission, period)
            if prior is not None:
                return await reject(self._db, operation, prior, code=mission_code, period_key=period.key)

            source = await self._load_spec(mission.streak_source_code or "")
            if source is None or source.cadence is not Cadence.DAILY:
                logger.warning(
                    "Streak source mission is not an active daily mission",
                    code=mission_code,
                    source_code=mission.streak_source_code,
                )
                count = 0
            else:
                count = await self._count_source_days(user_id, source.id, period)
            if count < (mission.streak_threshold or 0):
                return await reject(
                    self._db,
                    operation,
                    Rejected(RejectionReason.STREAK_THRESHOLD_NOT_MET),
                    code=mission_code,
                    count=count,
                    threshold=mission.streak_threshold,
                )

            return await self._insert_claim(operation, user_id, mission, period, current_time)

    async def mission_status(
        self,
        user_id: UUID,
        mission_code: str,
        *,
        now: datetime | None = None,
    ) -> Outcome[MissionStatus]:
        current_time = resolve_now(now)
        async with store_guard(self._db, "mission_status"):
            mission = await self._load_spec(mission_code)
            if mission is None:
                return Rejected(RejectionReason.MISSION_NOT_FOUND)

            period = compute_period(mission.cadence, current_time, self._zone)
            if mission.is_one_off:
                latest = await self._latest_approved(user_id, mission.id)
            else:
                latest = await self._latest_submission(user_id, mission.id)
                if latest is not None and latest.period_key != period.key:
                    latest = None

            status = MissionSubmissionStatus(latest.status) if latest is not None else None
            return Accepted(
                MissionStatus(
                    mission_code=mission.code,
                    cadence=mission.cadence,
                    period_key=period.key,
                    reset_at=period.reset_at,
                    claimed=status in ACTIVE_SUBMISSION_STATUSES,
                    status=status,
                )
            )

    async def _claim_verified(
        self,
        operation: str,
        user_id: UUID,
        mission_code: str,
        verification_type: MissionVerificationType,
        *,
        now: datetime | None,
    ) -> Outcome[MissionClaim]:
        current_time = resolve_now(now)
        async with store_guard(self._db, operation):
            mission = await self._load_spec(mission_code)
            if mission is None:
                return await reject(self._db, operation, Rejected(RejectionReason.MISSION_NOT_FOUND), code=mission_code)
            if mission.verification_type is not verification_type:
                return await reject(
                    self._db, operation, Rejected(RejectionReason.WRONG_VERIFICATION_TYPE), code=mission_code
                )

            period = compute_period(mission.cadence, current_time, self._zone)
            prior = await self._check_prior_submissions(user_id, mission, period)
            if prior is not None:
                return await reject(self._db, operation, prior, code=mission_code, period_key=period.key)

            return await self._insert_claim(operation, user_id, mission, period, current_time)

    async def _load_spec(self, mission_code: str) -> MissionSpec | None:
        stmt = select(MissionDefinition).where(MissionDefinition.code == mission_code)
        row = (await self._db.execute(stmt)).scalar_one_or_none()
        if row is None or not row.is_active:
            return None
        try:
            return load_mission(row)
        except CatalogIntegrityError as error:
            logger.warning("Ignoring malformed mission definition", code=mission_code, error=str(error))
            return None

    async def _latest_submission(self, user_id: UUID, mission_id: UUID) -> MissionSubmission | None:
        stmt = (
            select(MissionSubmission)
            .where(MissionSubmission.user_id == user_id, MissionSubmission.mission_id == mission_id)
            .order_by(MissionSubmission.submitted_at.desc())
            .limit(1)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _latest_approved(self, user_id: UUID, mission_id: UUID) -> MissionSubmission | None:
        stmt = (
            select(MissionSubmission)
            .where(
                MissionSubmission.user_id == user_id,
                MissionSubmission.mission_id == mission_id,
                MissionSubmission.status == MissionSubmissionStatus.APPROVED,
            )
            .order_by(MissionSubmission.submitted_at.desc())
            .limit(1)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _check_prior_submissions(
        self,
        user_id: UUID,
        mission: MissionSpec,
        period: PeriodKey,
    ) -> Rejected | None:
        if mission.is_one_off and await self._latest_approved(user_id, mission.id) is not None:
            return Rejected(RejectionReason.ALREADY_CLAIMED_ONCE)

        latest = await self._latest_submission(user_id, mission.id)
        if (
            latest is not None
            and latest.period_key == period.key
            and MissionSubmissionStatus(latest.status) in ACTIVE_SUBMISSION_STATUSES
        ):
            return Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD)
        return None

    async def _count_source_days(self, user_id: UUID, source_id: UUID, period: PeriodKey) -> int:
        day_keys = daily_keys_within(period)
        stmt = (
            select(func.count(func.distinct(MissionSubmission.period_key)))
            .where(
                MissionSubmission.user_id == user_id,
                MissionSubmission.mission_id == source_id,
                MissionSubmission.status == MissionSubmissionStatus.APPROVED,
                MissionSubmission.period_key.in_(day_keys),
            )
        )
        return int((await self._db.execute(stmt)).scalar_one() or 0)

    async def _insert_claim(
        self,
        operation: str,
        user_id: UUID,
        mission: MissionSpec,
        period: PeriodKey,
        now: datetime,
    ) -> Outcome[MissionClaim]:
        submission = MissionSubmission(
            user_id=user_id,
            mission_id=mission.id,
            period_key=period.key,
            status=MissionSubmissionStatus.APPROVED,
            credited_points=mission.reward_points,
            submitted_at=now,
            reviewed_at=now,
        )
        self._db.add(submission)
        try:
            await self._db.flush()
        except IntegrityError:
            logger.warning(
                "Detected concurrent mission claim",
                user_id=str(user_id),
                code=mission.code,
                period_key=period.key,
            )
            return await reject(
                self._db,
                operation,
                Rejected(RejectionReason.ALREADY_CLAIMED_PERIOD),
                discard=True,
                code=mission.code,
            )

        credit = (
            update(User)
            .where(User.id == user_id)
            .values(points_balance=User.points_balance + mission.reward_points)
            .returning(User.points_balance)
            .execution_options(synchronize_session=False)
        )
        balance = (await self._db.execute(credit)).scalar_one_or_none()
        if balance is None:
            return await reject(
                self._db,
                operation,
                Rejected(RejectionReason.USER_NOT_FOUND),
                discard=True,
                user_id=user_id,
            )

        claim = MissionClaim(
            submission_id=submission.id,
            mission_code=mission.code,
            period_key=period.key,
            reset_at=period.reset_at,
            credited_points=mission.reward_points,
            balance=int(balance),
        )
        logger.info(
            "Mission claimed",
            user_id=str(user_id),
            code=mission.code,
            period_key=period.key,
            points=mission.reward_points,
        )
        return await accept(self._db, operation, Accepted(claim))


__all__ = ["MissionClaim", "MissionClaimCoordinator", "MissionStatus"]
