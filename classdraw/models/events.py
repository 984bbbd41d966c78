"""
Draw lifecycle notifications.

One frozen type per notification kind. Observers implement one method per
kind, so adding a kind is a type error everywhere it is not handled.

Delivery is synchronous, at the moment the engine transitions. Slow work
(rendering, sound) belongs off this call path.
"""

from dataclasses import dataclass
from typing import ClassVar, Protocol, runtime_checkable

from classdraw.models.draw_record import DrawRecord
from classdraw.models.entity import Entity
from classdraw.models.failure import FailureDetail


@dataclass(frozen=True, slots=True)
class DrawStarted:
    """A draw passed its preconditions and entered the drawing state."""

    kind: ClassVar[str] = "draw-start"

    available_count: int


@dataclass(frozen=True, slots=True)
class DrawCompleted:
    """A draw committed. Also the return value of DrawEngine.draw()."""

    kind: ClassVar[str] = "draw-complete"

    entity: Entity
    remaining_count: int
    draw_record: DrawRecord


@dataclass(frozen=True, slots=True)
class DrawFailed:
    """A draw failed before or at commit; nothing was mutated."""

    kind: ClassVar[str] = "draw-error"

    reason: FailureDetail


@dataclass(frozen=True, slots=True)
class ResetCompleted:
    """The roster was reset and history cleared."""

    kind: ClassVar[str] = "reset-complete"

    total_count: int


DrawNotification = DrawStarted | DrawCompleted | DrawFailed | ResetCompleted


@runtime_checkable
class DrawObserver(Protocol):
    """Receiver of draw lifecycle notifications."""

    def on_draw_start(self, event: DrawStarted) -> None: ...

    def on_draw_complete(self, event: DrawCompleted) -> None: ...

    def on_draw_error(self, event: DrawFailed) -> None: ...

    def on_reset(self, event: ResetCompleted) -> None: ...


class BaseDrawObserver:
    """DrawObserver with no-op handlers. Override what you need."""

    def on_draw_start(self, event: DrawStarted) -> None:
        pass

    def on_draw_complete(self, event: DrawCompleted) -> None:
        pass

    def on_draw_error(self, event: DrawFailed) -> None:
        pass

    def on_reset(self, event: ResetCompleted) -> None:
        pass


class RecordingObserver(BaseDrawObserver):
    """Keeps every notification in arrival order."""

    def __init__(self) -> None:
        self.events: list[DrawNotification] = []

    def on_draw_start(self, event: DrawStarted) -> None:
        self.events.append(event)

    def on_draw_complete(self, event: DrawCompleted) -> None:
        self.events.append(event)

    def on_draw_error(self, event: DrawFailed) -> None:
        self.events.append(event)

    def on_reset(self, event: ResetCompleted) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        """Notification kinds in arrival order."""
        return [event.kind for event in self.events]
