"""API endpoints for missions, partner redemptions, collectibles, and quests."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.api.dependencies.security import require_operator_api_key
from placeclub_api.api.dependencies.session import require_member_session
from placeclub_api.db.session import get_session
from placeclub_api.domain.proximity import Coordinate
from placeclub_api.models.collectible import UnlockRecord, UnlockSource
from placeclub_api.models.quest import QuestEnrollmentStatus
from placeclub_api.models.user import User
from placeclub_api.services.rewards import (
    MissionClaim,
    MissionClaimCoordinator,
    QuestProgress,
    QuestProgressService,
    RedemptionService,
    Rejected,
    RejectionCategory,
    RejectionReason,
    RewardStoreError,
    StepStatus,
    UnlockLedger,
)


router = APIRouter(prefix="/rewards", tags=["rewards"])


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.MISSION_NOT_FOUND: "This mission does not exist or is no longer active.",
    RejectionReason.CODE_NOT_FOUND: "This code is not valid.",
    RejectionReason.USER_NOT_FOUND: "Member account not found.",
    RejectionReason.COLLECTIBLE_NOT_FOUND: "This card does not exist or is no longer available.",
    RejectionReason.QUEST_NOT_FOUND: "This quest does not exist or is no longer active.",
    RejectionReason.STEP_NOT_FOUND: "This quest step does not exist.",
    RejectionReason.WRONG_VERIFICATION_TYPE: "This mission cannot be completed this way.",
    RejectionReason.ALREADY_CLAIMED_PERIOD: "You already claimed this mission for the current period.",
    RejectionReason.ALREADY_CLAIMED_ONCE: "You already completed this mission.",
    RejectionReason.STREAK_THRESHOLD_NOT_MET: "Keep going, the streak is not complete yet.",
    RejectionReason.MERCHANT_INACTIVE: "This partner is not accepting redemptions right now.",
    RejectionReason.INSUFFICIENT_BALANCE: "This partner has run out of points for now.",
    RejectionReason.COOLDOWN_ACTIVE: "You already redeemed at this partner recently. Try again later.",
    RejectionReason.ALREADY_UNLOCKED: "You already own this card.",
    RejectionReason.OUT_OF_RANGE: "You are too far away to unlock this card.",
    RejectionReason.EVENT_NOT_LIVE: "This event is not taking place right now.",
    RejectionReason.ALREADY_COMPLETED: "You already completed this quest step.",
    RejectionReason.STEP_LOCKED: "Complete the previous steps first.",
}

STORE_UNAVAILABLE_MESSAGE = "Rewards are temporarily unavailable. Please try again."


class RewardRejectedError(Exception):
    """Raised by endpoints to turn a rejected outcome into an HTTP response."""

    def __init__(self, reason: RejectionReason) -> None:
        super().__init__(reason.value)
        self.reason = reason

    @property
    def status_code(self) -> int:
        if self.reason.category is RejectionCategory.VALIDATION:
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_409_CONFLICT

    def as_payload(self) -> dict[str, str]:
        return {"reason": self.reason.value, "message": REJECTION_MESSAGES[self.reason]}


def _unwrap(outcome):
    if isinstance(outcome, Rejected):
        raise RewardRejectedError(outcome.reason)
    return outcome.value


class MissionClaimResponse(BaseModel):
    submissionId: UUID
    missionCode: str
    periodKey: str
    resetAt: Optional[datetime]
    creditedPoints: int
    pointsBalance: int


class MissionStatusResponse(BaseModel):
    missionCode: str
    cadence: str
    periodKey: str
    resetAt: Optional[datetime]
    claimed: bool
    status: Optional[str]


class RedemptionRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64, description="Partner redemption code")


class RedemptionResponse(BaseModel):
    transactionId: UUID
    merchantId: UUID
    basePoints: int
    multiplier: float
    effectivePoints: int
    merchantBalance: int
    pointsBalance: int
    collectibleUnlocked: bool


class BoostRequest(BaseModel):
    userId: UUID
    multiplier: float = Field(..., ge=1.0, description="Reward multiplier to apply")
    durationHours: int = Field(..., gt=0, description="How long the multiplier stays active")


class BoostResponse(BaseModel):
    userId: UUID
    multiplier: float
    expiresAt: datetime


class CoordinateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class UnlockResponse(BaseModel):
    id: UUID
    collectibleId: UUID
    source: str
    unlockedAt: datetime


class NearbyUnlockResponse(BaseModel):
    collectibleId: UUID
    slug: str
    distanceMeters: float
    unlockedAt: datetime


class UnlockStatusResponse(BaseModel):
    collectibleId: UUID
    unlocked: bool


class QuestStepResponse(BaseModel):
    stepId: UUID
    stepOrder: int
    status: str


class QuestProgressResponse(BaseModel):
    questSetId: UUID
    slug: str
    enrollmentStatus: Optional[str]
    completedSteps: int
    totalSteps: int
    percent: int
    steps: List[QuestStepResponse]


class QuestEnrollmentResponse(BaseModel):
    questSetId: UUID
    status: str
    startedAt: datetime


class StepCompletionResponse(BaseModel):
    stepId: UUID
    completedAt: datetime


def _claim_response(claim: MissionClaim) -> MissionClaimResponse:
    return MissionClaimResponse(
        submissionId=claim.submission_id,
        missionCode=claim.mission_code,
        periodKey=claim.period_key,
        resetAt=claim.reset_at,
        creditedPoints=claim.credited_points,
        pointsBalance=claim.balance,
    )


def _unlock_response(record: UnlockRecord) -> UnlockResponse:
    return UnlockResponse(
        id=record.id,
        collectibleId=record.collectible_id,
        source=UnlockSource(record.source).value,
        unlockedAt=record.unlocked_at,
    )


def _progress_response(progress: QuestProgress) -> QuestProgressResponse:
    return QuestProgressResponse(
        questSetId=progress.quest_set_id,
        slug=progress.slug,
        enrollmentStatus=progress.enrollment_status.value if progress.enrollment_status else None,
        completedSteps=progress.completed_steps,
        totalSteps=progress.total_steps,
        percent=progress.percent,
        steps=[
            QuestStepResponse(stepId=state.step_id, stepOrder=state.step_order, status=state.status.value)
            for state in progress.steps
        ],
    )


@router.post("/missions/{code}/claim", response_model=MissionClaimResponse, status_code=status.HTTP_201_CREATED)
async def claim_mission(
    code: str,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> MissionClaimResponse:
    coordinator = MissionClaimCoordinator(db)
    claim = _unwrap(await coordinator.claim(member.id, code))
    return _claim_response(claim)


@router.post("/missions/{code}/auto", response_model=MissionClaimResponse, status_code=status.HTTP_201_CREATED)
async def record_automatic_mission(
    code: str,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> MissionClaimResponse:
    coordinator = MissionClaimCoordinator(db)
    claim = _unwrap(await coordinator.record_automatic(member.id, code))
    return _claim_response(claim)


@router.post("/missions/{code}/streak", response_model=MissionClaimResponse, status_code=status.HTTP_201_CREATED)
async def evaluate_streak_mission(
    code: str,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> MissionClaimResponse:
    coordinator = MissionClaimCoordinator(db)
    claim = _unwrap(await coordinator.evaluate_streak(member.id, code))
    return _claim_response(claim)


@router.get("/missions/{code}/status", response_model=MissionStatusResponse)
async def get_mission_status(
    code: str,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> MissionStatusResponse:
    coordinator = MissionClaimCoordinator(db)
    view = _unwrap(await coordinator.mission_status(member.id, code))
    return MissionStatusResponse(
        missionCode=view.mission_code,
        cadence=view.cadence.value,
        periodKey=view.period_key,
        resetAt=view.reset_at,
        claimed=view.claimed,
        status=view.status.value if view.status else None,
    )


@router.post("/redemptions", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def redeem_code(
    payload: RedemptionRequest,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Redeem a partner code, then record the partner's card for the member.

    The card unlock is a separate unit of work: the committed redemption stands
    even when the unlock is rejected or the store fails while recording it.
    """

    user_id = member.id
    service = RedemptionService(db)
    receipt = _unwrap(await service.redeem(user_id, payload.code))

    collectible_unlocked = False
    ledger = UnlockLedger(db)
    try:
        unlock = await ledger.unlock_for_merchant(user_id, receipt.merchant_id)
    except RewardStoreError:
        logger.warning(
            "Partner card unlock skipped after redemption",
            user_id=str(user_id),
            merchant_id=str(receipt.merchant_id),
        )
    else:
        collectible_unlocked = not isinstance(unlock, Rejected)

    return RedemptionResponse(
        transactionId=receipt.transaction_id,
        merchantId=receipt.merchant_id,
        basePoints=receipt.base_points,
        multiplier=float(receipt.multiplier),
        effectivePoints=receipt.effective_points,
        merchantBalance=receipt.merchant_balance,
        pointsBalance=receipt.user_balance,
        collectibleUnlocked=collectible_unlocked,
    )


@router.post(
    "/boosts",
    response_model=BoostResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_operator_api_key)],
)
async def activate_boost(
    payload: BoostRequest,
    db: AsyncSession = Depends(get_session),
) -> BoostResponse:
    """Apply a purchased multiplier once the payment has settled (operator only)."""

    service = RedemptionService(db)
    try:
        outcome = await service.activate_boost(payload.userId, payload.multiplier, payload.durationHours)
    except ValueError as error:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)) from error
    grant = _unwrap(outcome)
    return BoostResponse(userId=grant.user_id, multiplier=float(grant.multiplier), expiresAt=grant.expires_at)


@router.post("/unlocks/nearby", response_model=List[NearbyUnlockResponse])
async def unlock_nearby(
    payload: CoordinateRequest,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> List[NearbyUnlockResponse]:
    ledger = UnlockLedger(db)
    unlocked = await ledger.unlock_nearby(member.id, payload.to_coordinate())
    return [
        NearbyUnlockResponse(
            collectibleId=item.collectible_id,
            slug=item.slug,
            distanceMeters=round(item.distance_m, 1),
            unlockedAt=item.unlocked_at,
        )
        for item in unlocked
    ]


@router.post(
    "/unlocks/{collectible_id}/check-in",
    response_model=UnlockResponse,
    status_code=status.HTTP_201_CREATED,
)
async def check_in(
    collectible_id: UUID,
    payload: CoordinateRequest,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> UnlockResponse:
    ledger = UnlockLedger(db)
    record = _unwrap(await ledger.unlock_at_location(member.id, collectible_id, payload.to_coordinate()))
    return _unlock_response(record)


@router.get("/unlocks/{collectible_id}", response_model=UnlockStatusResponse)
async def get_unlock_status(
    collectible_id: UUID,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> UnlockStatusResponse:
    ledger = UnlockLedger(db)
    unlocked = await ledger.is_unlocked(member.id, collectible_id)
    return UnlockStatusResponse(collectibleId=collectible_id, unlocked=unlocked)


@router.post(
    "/quests/{quest_set_id}/start",
    response_model=QuestEnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_quest(
    quest_set_id: UUID,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> QuestEnrollmentResponse:
    service = QuestProgressService(db)
    enrollment = _unwrap(await service.start_quest(member.id, quest_set_id))
    return QuestEnrollmentResponse(
        questSetId=enrollment.quest_set_id,
        status=QuestEnrollmentStatus(enrollment.status).value,
        startedAt=enrollment.started_at,
    )


@router.get("/quests/{quest_set_id}", response_model=QuestProgressResponse)
async def get_quest_progress(
    quest_set_id: UUID,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> QuestProgressResponse:
    service = QuestProgressService(db)
    progress = _unwrap(await service.get_progress(member.id, quest_set_id))
    return _progress_response(progress)


@router.post(
    "/quests/steps/{step_id}/complete",
    response_model=StepCompletionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def complete_quest_step(
    step_id: UUID,
    member: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> StepCompletionResponse:
    """Complete the member's active step; earlier or later steps are refused."""

    user_id = member.id
    service = QuestProgressService(db)
    state = _unwrap(await service.step_state(user_id, step_id))
    if state.status is StepStatus.COMPLETED:
        raise RewardRejectedError(RejectionReason.ALREADY_COMPLETED)
    if state.status is StepStatus.LOCKED:
        raise RewardRejectedError(RejectionReason.STEP_LOCKED)

    completion = _unwrap(await service.complete_step(user_id, step_id))
    return StepCompletionResponse(stepId=completion.step_id, completedAt=completion.completed_at)
