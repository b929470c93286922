"""Reward engine exports."""

from .missions import MissionClaim, MissionClaimCoordinator, MissionStatus  # noqa: F401
from .quests import (  # noqa: F401
    QuestProgress,
    QuestProgressService,
    StepState,
    StepStatus,
    derive_step_states,
)
from .redemption import (  # noqa: F401
    BoostGrant,
    RedemptionReceipt,
    RedemptionService,
    effective_multiplier,
    effective_points,
)
from .results import (  # noqa: F401
    Accepted,
    Outcome,
    Rejected,
    RejectionCategory,
    RejectionReason,
    RewardStoreError,
)
from .unlock_ledger import NearbyUnlock, UnlockLedger  # noqa: F401
