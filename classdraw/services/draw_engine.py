"""
Draw Allocation Engine - one policy-consistent draw at a time.

State machine: IDLE -> DRAWING -> IDLE, on success and on failure.

INVARIANTS:
- The busy flag is set before the first await and cleared in a finally
  block, so no exception or cancellation leaves the engine DRAWING
- A draw either fully completes (pool mutated, history appended,
  draw-complete emitted) or mutates nothing
- The commit re-validates the selected snapshot AND the pool generation;
  a reset, removal or id reuse during the presentation gap turns the
  stale selection into a CommitConflictError
- The active PolicyConfig is immutable and swapped by reference, so a
  draw never observes a half-updated policy

The engine never writes entity fields; it delegates to EntityPool.mark_drawn.
"""

import asyncio
import logging
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, assert_never

from classdraw.config import DEFAULT_PREVIEW_LIMIT, settings
from classdraw.models.draw_record import DrawRecord
from classdraw.models.entity import Entity, Rarity
from classdraw.models.events import (
    DrawCompleted,
    DrawFailed,
    DrawNotification,
    DrawObserver,
    DrawStarted,
    ResetCompleted,
)
from classdraw.models.failure import (
    CommitConflictError,
    DrawBusyError,
    ExhaustedPoolError,
    FailureDetail,
    KnownError,
    describe_unexpected_failure,
)
from classdraw.models.policy import PolicyConfig, SelectionPolicy
from classdraw.services.entity_pool import EntityPool
from classdraw.services.selection import RandomSource, preview_candidates, select_entity

logger = logging.getLogger(__name__)


class DrawState(str, Enum):
    """Engine state."""

    IDLE = "idle"
    DRAWING = "drawing"


@dataclass(frozen=True)
class DrawReadiness:
    """Whether a draw can start right now, and why not."""

    can_draw: bool
    is_drawing: bool
    available_count: int
    reason: str | None = None


@dataclass(frozen=True)
class DrawStatistics:
    """Figures derived from history and pool state."""

    total_draws: int
    drawn_count: int
    available_count: int
    total_count: int
    drawn_by_rarity: dict[str, int] = field(default_factory=dict)
    roster_by_rarity: dict[str, int] = field(default_factory=dict)
    draws_by_policy: dict[str, int] = field(default_factory=dict)
    mean_interval_seconds: float = 0.0
    draw_rate: float = 0.0
    policy: SelectionPolicy = SelectionPolicy.UNIFORM
    is_drawing: bool = False


def _handler_for(observer: DrawObserver, event: DrawNotification) -> Callable[[Any], None]:
    """Observer method for a notification kind. Raises on an unhandled kind."""
    match event:
        case DrawStarted():
            return observer.on_draw_start
        case DrawCompleted():
            return observer.on_draw_complete
        case DrawFailed():
            return observer.on_draw_error
        case ResetCompleted():
            return observer.on_reset
        case _:
            assert_never(event)


class DrawEngine:
    """
    Turns draw requests into single selections with a full audit history.

    Usage:
        engine = DrawEngine(pool, delay_seconds=0.8)
        engine.subscribe(observer)
        completed = await engine.draw()
    """

    def __init__(
        self,
        pool: EntityPool,
        *,
        policy: str | SelectionPolicy | None = None,
        weights: Mapping[str | Rarity, float] | None = None,
        delay_seconds: float | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self._pool = pool
        self._config = PolicyConfig.build(policy or settings.default_policy, weights)
        self._delay_seconds = (
            settings.draw_delay_seconds if delay_seconds is None else delay_seconds
        )
        if self._delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")
        self._rng = rng or random.Random()
        self._state = DrawState.IDLE
        self._history: list[DrawRecord] = []
        self._observers: list[DrawObserver] = []

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def pool(self) -> EntityPool:
        return self._pool

    @property
    def state(self) -> DrawState:
        return self._state

    @property
    def is_drawing(self) -> bool:
        return self._state is DrawState.DRAWING

    @property
    def policy(self) -> SelectionPolicy:
        return self._config.policy

    @property
    def policy_config(self) -> PolicyConfig:
        return self._config

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, observer: DrawObserver) -> None:
        """Register an observer. Subscribing twice has no effect."""
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: DrawObserver) -> bool:
        """Remove an observer. Returns False if it was not subscribed."""
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    def _notify(self, event: DrawNotification) -> None:
        for observer in list(self._observers):
            handler = _handler_for(observer, event)
            try:
                handler(event)
            except Exception:
                # One broken observer must not starve the others
                logger.exception("Observer %r failed handling %s", observer, event.kind)

    def _fail(self, reason: FailureDetail) -> None:
        self._notify(DrawFailed(reason=reason))

    # =========================================================================
    # DRAW
    # =========================================================================

    async def draw(self) -> DrawCompleted:
        """
        Draw one available entity under the active policy.

        Returns:
            The draw-complete notification (entity, remaining count, record)

        Raises:
            DrawBusyError: Another draw is in flight (no notification)
            ExhaustedPoolError: Nothing left to draw
            CommitConflictError: The selection went stale during the
                presentation gap (reset, reload or removal)
        """
        if self._state is DrawState.DRAWING:
            logger.warning("Rejected draw: another draw is in progress")
            raise DrawBusyError()

        available = self._pool.list_available()
        if not available:
            error = ExhaustedPoolError(total_count=len(self._pool))
            logger.warning("Rejected draw: pool exhausted")
            self._fail(error.to_detail())
            raise error

        self._state = DrawState.DRAWING
        try:
            self._notify(DrawStarted(available_count=len(available)))

            config = self._config
            generation = self._pool.generation
            selected = select_entity(available, config, self._rng)

            # Presentation gap; nothing is mutated until the commit below
            await asyncio.sleep(self._delay_seconds)

            if not self._pool.mark_drawn(selected.id, generation=generation, expected=selected):
                raise CommitConflictError(selected.id)

            drawn = self._pool.find_by_id(selected.id)
            if drawn is None or drawn.drawn_at is None:
                raise RuntimeError(f"entity {selected.id} missing after commit")

            remaining = len(self._pool.list_available())
            record = DrawRecord(
                entity_id=drawn.id,
                timestamp=drawn.drawn_at,
                policy_used=config.policy,
                remaining_count_after=remaining,
            )
            self._history.append(record)
            logger.info(
                "Drew entity %d (%s, %s), %d remaining",
                drawn.id,
                drawn.name,
                drawn.rarity.value,
                remaining,
            )

            completed = DrawCompleted(entity=drawn, remaining_count=remaining, draw_record=record)
            self._notify(completed)
            return completed
        except KnownError as e:
            logger.warning("Draw failed: %s", e.message)
            self._fail(e.to_detail())
            raise
        except Exception as e:
            logger.error("Draw failed unexpectedly: %s", e)
            self._fail(describe_unexpected_failure(e))
            raise
        finally:
            self._state = DrawState.IDLE

    # =========================================================================
    # CONTROL
    # =========================================================================

    def reset(self) -> None:
        """
        Reset every entity, clear history, start a new cycle.

        Allowed while a draw is in flight: that draw resolves with
        CommitConflictError instead of committing into the fresh cycle.
        """
        self._pool.reset_all()
        self._history.clear()
        self._notify(ResetCompleted(total_count=len(self._pool)))

    def set_policy(
        self,
        policy: str | SelectionPolicy,
        weights: Mapping[str | Rarity, float] | None = None,
    ) -> PolicyConfig:
        """
        Replace the active policy.

        Weights, when given, are merged over the defaults; otherwise the
        current weights are kept.

        Raises:
            InvalidPolicyError: Unknown policy or malformed weights. The
                active policy is unchanged.
        """
        if weights is None:
            config = self._config.with_policy(policy)
        else:
            config = PolicyConfig.build(policy, weights)
        self._config = config
        logger.info("Selection policy set to %s", config.policy.value)
        return config

    def set_rarity_weights(self, weights: Mapping[str | Rarity, float]) -> PolicyConfig:
        """Merge weights into the active mapping, keeping the policy."""
        self._config = self._config.with_weights(weights)
        return self._config

    # =========================================================================
    # QUERIES
    # =========================================================================

    def history(self, limit: int | None = None) -> list[DrawRecord]:
        """
        Draw records, most recent first.

        Args:
            limit: Maximum records to return; None for all
        """
        records = list(reversed(self._history))
        if limit is None:
            return records
        return records[: max(limit, 0)]

    def can_draw(self) -> DrawReadiness:
        available_count = len(self._pool.list_available())
        reason = None
        if self.is_drawing:
            reason = "draw in progress"
        elif available_count == 0:
            reason = "pool exhausted"
        return DrawReadiness(
            can_draw=reason is None,
            is_drawing=self.is_drawing,
            available_count=available_count,
            reason=reason,
        )

    def preview_next_draw(self, limit: int = DEFAULT_PREVIEW_LIMIT) -> list[Entity]:
        """Likely outcomes of the next draw under the active policy."""
        return preview_candidates(self._pool.list_available(), self._config, limit)

    def statistics(self) -> DrawStatistics:
        summary = self._pool.summary()

        drawn_by_rarity: dict[str, int] = {}
        for entity in self._pool.list_drawn():
            key = entity.rarity.value
            drawn_by_rarity[key] = drawn_by_rarity.get(key, 0) + 1

        draws_by_policy: dict[str, int] = {}
        for record in self._history:
            key = record.policy_used.value
            draws_by_policy[key] = draws_by_policy.get(key, 0) + 1

        return DrawStatistics(
            total_draws=len(self._history),
            drawn_count=summary.drawn,
            available_count=summary.available,
            total_count=summary.total,
            drawn_by_rarity=drawn_by_rarity,
            roster_by_rarity=summary.by_rarity,
            draws_by_policy=draws_by_policy,
            mean_interval_seconds=self._mean_interval_seconds(),
            draw_rate=summary.draw_rate,
            policy=self._config.policy,
            is_drawing=self.is_drawing,
        )

    def _mean_interval_seconds(self) -> float:
        if len(self._history) < 2:
            return 0.0
        intervals = [
            (later.timestamp - earlier.timestamp).total_seconds()
            for earlier, later in zip(self._history, self._history[1:])
        ]
        return sum(intervals) / len(intervals)
