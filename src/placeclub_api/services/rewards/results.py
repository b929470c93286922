"""Discriminated outcomes returned by reward operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union


T = TypeVar("T")


class RejectionCategory(str, Enum):
    """Validation rejections may be retried with corrected input; eligibility ones may not."""

    VALIDATION = "validation"
    ELIGIBILITY = "eligibility"


class RejectionReason(str, Enum):
    """Every reason a reward operation may decline without a fault."""

    MISSION_NOT_FOUND = "mission_not_found"
    CODE_NOT_FOUND = "code_not_found"
    USER_NOT_FOUND = "user_not_found"
    COLLECTIBLE_NOT_FOUND = "collectible_not_found"
    QUEST_NOT_FOUND = "quest_not_found"
    STEP_NOT_FOUND = "step_not_found"

    WRONG_VERIFICATION_TYPE = "wrong_verification_type"
    ALREADY_CLAIMED_PERIOD = "already_claimed_period"
    ALREADY_CLAIMED_ONCE = "already_claimed_once"
    STREAK_THRESHOLD_NOT_MET = "streak_threshold_not_met"
    MERCHANT_INACTIVE = "merchant_inactive"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    COOLDOWN_ACTIVE = "cooldown_active"
    ALREADY_UNLOCKED = "already_unlocked"
    OUT_OF_RANGE = "out_of_range"
    EVENT_NOT_LIVE = "event_not_live"
    ALREADY_COMPLETED = "already_completed"
    STEP_LOCKED = "step_locked"

    @property
    def category(self) -> RejectionCategory:
        if self in _VALIDATION_REASONS:
            return RejectionCategory.VALIDATION
        return RejectionCategory.ELIGIBILITY


_VALIDATION_REASONS = frozenset(
    {
        RejectionReason.MISSION_NOT_FOUND,
        RejectionReason.CODE_NOT_FOUND,
        RejectionReason.USER_NOT_FOUND,
        RejectionReason.COLLECTIBLE_NOT_FOUND,
        RejectionReason.QUEST_NOT_FOUND,
        RejectionReason.STEP_NOT_FOUND,
    }
)


@dataclass(frozen=True, slots=True)
class Accepted(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: RejectionReason

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Accepted[T], Rejected]


class RewardStoreError(RuntimeError):
    """The store failed mid-operation; nothing was committed and the call may be retried."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Reward store unavailable during {operation}")
        self.operation = operation


__all__ = [
    "Accepted",
    "Outcome",
    "Rejected",
    "RejectionCategory",
    "RejectionReason",
    "RewardStoreError",
]
