"""
Failure Classification for the draw core.

Every expected failure raised by the pool or the engine is a KnownError
carrying a FailureKind. Presentation code never has to parse messages:
it switches on the kind and shows the suggestion.

Failure kinds:
- invalid_roster: import payload or roster edit rejected
- draw_in_progress: draw requested while another draw is in flight
- pool_exhausted: draw requested with nothing left to draw
- commit_conflict: selected entity became unavailable before commit
- invalid_policy: unknown selection policy or malformed weights

INVARIANT: Every failure leaves the engine idle and the pool consistent,
so the caller can always retry.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_ROSTER = "invalid_roster"
    INVALID_POLICY = "invalid_policy"

    # Draw lifecycle failures
    DRAW_IN_PROGRESS = "draw_in_progress"
    POOL_EXHAUSTED = "pool_exhausted"
    COMMIT_CONFLICT = "commit_conflict"

    # Unknown
    UNKNOWN = "unknown"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class RosterValidationError(KnownError):
    """Raised when an imported roster or a roster edit is malformed."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_ROSTER,
            message=message,
            detail=detail,
            suggestion="Fix the roster data and import it again.",
        )


class DrawBusyError(KnownError):
    """Raised when a draw is requested while another draw is in flight."""

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.DRAW_IN_PROGRESS,
            message="A draw is already in progress.",
            suggestion="Wait for the current draw to finish.",
        )


class ExhaustedPoolError(KnownError):
    """Raised when a draw is requested and every entity is already drawn."""

    def __init__(self, total_count: int):
        self.total_count = total_count
        super().__init__(
            kind=FailureKind.POOL_EXHAUSTED,
            message="There is nobody left to draw.",
            detail=f"all {total_count} entities drawn",
            suggestion="Reset the roster to start a new cycle.",
        )


class CommitConflictError(KnownError):
    """
    Raised when the selected entity can no longer be committed.

    Happens when the roster was reset, reloaded or edited during the
    presentation gap between selection and commit.
    """

    def __init__(self, entity_id: int):
        self.entity_id = entity_id
        super().__init__(
            kind=FailureKind.COMMIT_CONFLICT,
            message="The selected entity is no longer available.",
            detail=f"entity {entity_id} changed before commit",
            suggestion="Draw again.",
        )


class InvalidPolicyError(KnownError):
    """Raised for an unknown selection policy or malformed weights."""

    def __init__(self, policy: object, detail: str | None = None):
        self.policy = policy
        super().__init__(
            kind=FailureKind.INVALID_POLICY,
            message=f"Invalid selection policy: {policy!r}",
            detail=detail,
            suggestion="Use one of: uniform, weighted, sequential.",
        )


def describe_unexpected_failure(exception: Exception) -> FailureDetail:
    """
    Describe an exception that is not a KnownError.

    The message is fixed. Only the exception type is reported as detail.
    """
    return FailureDetail(
        kind=FailureKind.UNKNOWN,
        message="The draw failed and I don't know why. Try drawing again.",
        detail=type(exception).__name__,
        suggestion="If this persists, please report the issue.",
    )
