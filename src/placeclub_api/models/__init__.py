"""SQLAlchemy models package."""

from .user import User  # noqa: F401
from .merchant import Merchant  # noqa: F401
from .collectible import (  # noqa: F401
    Collectible,
    CollectibleKind,
    UnlockRecord,
    UnlockSource,
)
from .mission import (  # noqa: F401
    ACTIVE_SUBMISSION_STATUSES,
    MissionDefinition,
    MissionSubmission,
    MissionSubmissionStatus,
    MissionVerificationType,
)
from .transaction_log import TransactionEntryKind, TransactionLog  # noqa: F401
from .quest import (  # noqa: F401
    QuestEnrollment,
    QuestEnrollmentStatus,
    QuestSet,
    QuestStep,
    QuestStepCompletion,
)
