from classdraw.models.draw_record import DrawRecord
from classdraw.models.entity import Entity, Rarity
from classdraw.models.events import (
    BaseDrawObserver,
    DrawCompleted,
    DrawFailed,
    DrawNotification,
    DrawObserver,
    DrawStarted,
    RecordingObserver,
    ResetCompleted,
)
from classdraw.models.failure import (
    CommitConflictError,
    DrawBusyError,
    ExhaustedPoolError,
    FailureDetail,
    FailureKind,
    InvalidPolicyError,
    KnownError,
    RosterValidationError,
    describe_unexpected_failure,
)
from classdraw.models.policy import (
    DEFAULT_RARITY_WEIGHTS,
    PolicyConfig,
    SelectionPolicy,
)

__all__ = [
    "BaseDrawObserver",
    "CommitConflictError",
    "DEFAULT_RARITY_WEIGHTS",
    "DrawBusyError",
    "DrawCompleted",
    "DrawFailed",
    "DrawNotification",
    "DrawObserver",
    "DrawRecord",
    "DrawStarted",
    "Entity",
    "ExhaustedPoolError",
    "FailureDetail",
    "FailureKind",
    "InvalidPolicyError",
    "KnownError",
    "PolicyConfig",
    "Rarity",
    "RecordingObserver",
    "ResetCompleted",
    "RosterValidationError",
    "SelectionPolicy",
    "describe_unexpected_failure",
]
