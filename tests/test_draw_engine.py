"""
Tests for the Draw Allocation Engine.

Covers the IDLE -> DRAWING -> IDLE state machine, the busy guard,
commit re-validation across resets, history, statistics and
notification delivery.
"""

import asyncio
import random

import pytest

from classdraw.models.entity import Rarity
from classdraw.models.events import (
    BaseDrawObserver,
    DrawCompleted,
    DrawFailed,
    DrawObserver,
    DrawStarted,
    RecordingObserver,
    ResetCompleted,
)
from classdraw.models.failure import (
    CommitConflictError,
    DrawBusyError,
    ExhaustedPoolError,
    FailureKind,
    InvalidPolicyError,
)
from classdraw.models.policy import SelectionPolicy
from classdraw.services.draw_engine import DrawEngine, DrawState
from classdraw.services.entity_pool import EntityPool

# =============================================================================
# DRAW - SUCCESS PATH
# =============================================================================


class TestDraw:
    @pytest.mark.asyncio
    async def test_draw_commits_one_entity(
        self, engine: DrawEngine, pool: EntityPool
    ) -> None:
        completed = await engine.draw()

        assert isinstance(completed, DrawCompleted)
        assert completed.entity.is_drawn
        assert completed.remaining_count == 3
        assert pool.find_by_id(completed.entity.id) == completed.entity
        assert engine.state is DrawState.IDLE

    @pytest.mark.asyncio
    async def test_draw_record_fields(self, engine: DrawEngine) -> None:
        completed = await engine.draw()
        record = completed.draw_record

        assert record.entity_id == completed.entity.id
        assert record.timestamp == completed.entity.drawn_at
        assert record.policy_used is SelectionPolicy.UNIFORM
        assert record.remaining_count_after == 3
        assert engine.history() == [record]

    @pytest.mark.asyncio
    async def test_notifications_in_order(
        self, engine: DrawEngine, observer: RecordingObserver
    ) -> None:
        completed = await engine.draw()

        assert observer.kinds() == ["draw-start", "draw-complete"]
        started = observer.events[0]
        assert isinstance(started, DrawStarted)
        assert started.available_count == 4
        assert observer.events[1] == completed

    @pytest.mark.asyncio
    async def test_state_is_drawing_during_gap(self, pool: EntityPool) -> None:
        engine = DrawEngine(pool, delay_seconds=0.01, rng=random.Random(1))
        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)

        assert engine.state is DrawState.DRAWING
        assert engine.can_draw().reason == "draw in progress"

        await task
        assert engine.state is DrawState.IDLE

    @pytest.mark.asyncio
    async def test_sequential_policy_order(self, pool: EntityPool) -> None:
        """Roster ids {5, 3, 8, 1} are drawn as 1, 3, 5, 8."""
        engine = DrawEngine(pool, policy="sequential", delay_seconds=0)

        drawn = [(await engine.draw()).entity.id for _ in range(4)]

        assert drawn == [1, 3, 5, 8]

    @pytest.mark.asyncio
    async def test_weighted_policy_recorded(self, pool: EntityPool, stub_random) -> None:
        engine = DrawEngine(pool, policy="weighted", delay_seconds=0, rng=stub_random(0.0))
        completed = await engine.draw()

        assert completed.entity.id == 5
        assert completed.draw_record.policy_used is SelectionPolicy.WEIGHTED


# =============================================================================
# DRAW - FAILURE PATHS
# =============================================================================


class TestDrawFailures:
    @pytest.mark.asyncio
    async def test_busy_guard(self, pool: EntityPool) -> None:
        """A second draw before the first resolves fails with DrawBusyError."""
        observer = RecordingObserver()
        engine = DrawEngine(pool, delay_seconds=0.01, rng=random.Random(3))
        engine.subscribe(observer)

        first = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)

        with pytest.raises(DrawBusyError):
            await engine.draw()

        assert len(engine.history()) == 0
        assert observer.kinds() == ["draw-start"]

        await first
        assert len(engine.history()) == 1
        assert observer.kinds() == ["draw-start", "draw-complete"]

    @pytest.mark.asyncio
    async def test_exhausted_pool(
        self, engine: DrawEngine, observer: RecordingObserver
    ) -> None:
        for _ in range(4):
            await engine.draw()

        with pytest.raises(ExhaustedPoolError):
            await engine.draw()

        assert len(engine.history()) == 4
        assert engine.state is DrawState.IDLE
        failure = observer.events[-1]
        assert isinstance(failure, DrawFailed)
        assert failure.reason.kind is FailureKind.POOL_EXHAUSTED

    @pytest.mark.asyncio
    async def test_exhausted_does_not_emit_start(self) -> None:
        observer = RecordingObserver()
        engine = DrawEngine(EntityPool(), delay_seconds=0)
        engine.subscribe(observer)

        with pytest.raises(ExhaustedPoolError):
            await engine.draw()

        assert observer.kinds() == ["draw-error"]

    @pytest.mark.asyncio
    async def test_reset_during_gap_is_commit_conflict(self, pool: EntityPool) -> None:
        """A selection made before reset must not commit into the fresh cycle."""
        observer = RecordingObserver()
        engine = DrawEngine(pool, delay_seconds=0.01, rng=random.Random(9))
        engine.subscribe(observer)

        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)
        engine.reset()

        with pytest.raises(CommitConflictError):
            await task

        assert pool.list_drawn() == []
        assert engine.history() == []
        assert engine.state is DrawState.IDLE
        assert observer.kinds() == ["draw-start", "reset-complete", "draw-error"]
        failure = observer.events[-1]
        assert isinstance(failure, DrawFailed)
        assert failure.reason.kind is FailureKind.COMMIT_CONFLICT

    @pytest.mark.asyncio
    async def test_removed_during_gap_is_commit_conflict(self) -> None:
        pool = EntityPool()
        pool.initialize(2)
        engine = DrawEngine(pool, policy="sequential", delay_seconds=0.01)

        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)
        pool.remove(1)

        with pytest.raises(CommitConflictError) as exc_info:
            await task
        assert exc_info.value.entity_id == 1

        # The caller can retry immediately
        completed = await engine.draw()
        assert completed.entity.id == 2

    @pytest.mark.asyncio
    async def test_reused_id_during_gap_is_commit_conflict(self, stub_random) -> None:
        """A newcomer taking the selected id is not what the policy chose."""
        pool = EntityPool()
        pool.initialize([{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}])
        engine = DrawEngine(pool, policy="uniform", delay_seconds=0.01, rng=stub_random(0.9))

        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)
        pool.remove(2)
        newcomer = pool.add("Newcomer")
        assert newcomer.id == 2

        with pytest.raises(CommitConflictError) as exc_info:
            await task
        assert exc_info.value.entity_id == 2

        assert pool.list_drawn() == []
        assert engine.history() == []
        assert engine.state is DrawState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_to_idle(
        self, engine: DrawEngine, observer: RecordingObserver, monkeypatch
    ) -> None:
        def broken_mark_drawn(entity_id: int, **kwargs: object) -> bool:
            raise RuntimeError("storage fell over")

        monkeypatch.setattr(engine.pool, "mark_drawn", broken_mark_drawn)

        with pytest.raises(RuntimeError):
            await engine.draw()

        assert engine.state is DrawState.IDLE
        failure = observer.events[-1]
        assert isinstance(failure, DrawFailed)
        assert failure.reason.kind is FailureKind.UNKNOWN
        assert failure.reason.detail == "RuntimeError"

    @pytest.mark.asyncio
    async def test_cancelled_draw_returns_to_idle(self, pool: EntityPool) -> None:
        engine = DrawEngine(pool, delay_seconds=10)
        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.state is DrawState.IDLE
        assert pool.list_drawn() == []


# =============================================================================
# RESET / POLICY
# =============================================================================


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_restores_roster_and_clears_history(
        self, engine: DrawEngine, pool: EntityPool, observer: RecordingObserver
    ) -> None:
        await engine.draw()
        await engine.draw()
        engine.reset()

        assert len(pool.list_available()) == len(pool.list_all())
        assert engine.history() == []
        reset = observer.events[-1]
        assert isinstance(reset, ResetCompleted)
        assert reset.total_count == 4

    @pytest.mark.asyncio
    async def test_reset_twice_equals_once(self, engine: DrawEngine, pool: EntityPool) -> None:
        await engine.draw()
        engine.reset()
        once = (pool.list_all(), engine.history(), engine.statistics().total_draws)
        engine.reset()
        twice = (pool.list_all(), engine.history(), engine.statistics().total_draws)

        assert once == twice


class TestSetPolicy:
    def test_set_policy(self, engine: DrawEngine) -> None:
        config = engine.set_policy("weighted", {"SR": 2.0})

        assert engine.policy is SelectionPolicy.WEIGHTED
        assert config.weight_for(Rarity.SUPER_RARE) == 2.0
        assert config.weight_for(Rarity.RARE) == 0.5

    def test_set_policy_keeps_weights_when_omitted(self, engine: DrawEngine) -> None:
        engine.set_rarity_weights({"R": 4.0})
        engine.set_policy("sequential")

        assert engine.policy is SelectionPolicy.SEQUENTIAL
        assert engine.policy_config.weight_for(Rarity.RARE) == 4.0

    def test_invalid_policy_leaves_config_unchanged(self, engine: DrawEngine) -> None:
        before = engine.policy_config

        with pytest.raises(InvalidPolicyError):
            engine.set_policy("lottery")
        with pytest.raises(InvalidPolicyError):
            engine.set_policy("weighted", {"N": -1})

        assert engine.policy_config is before

    def test_constructor_rejects_unknown_policy(self, pool: EntityPool) -> None:
        with pytest.raises(InvalidPolicyError):
            DrawEngine(pool, policy="lottery")

    def test_constructor_rejects_negative_delay(self, pool: EntityPool) -> None:
        with pytest.raises(ValueError):
            DrawEngine(pool, delay_seconds=-1)

    @pytest.mark.asyncio
    async def test_policy_change_during_gap_does_not_affect_inflight_draw(
        self, pool: EntityPool
    ) -> None:
        engine = DrawEngine(pool, policy="sequential", delay_seconds=0.01)
        task = asyncio.create_task(engine.draw())
        await asyncio.sleep(0)
        engine.set_policy("uniform")

        completed = await task
        assert completed.entity.id == 1
        assert completed.draw_record.policy_used is SelectionPolicy.SEQUENTIAL


# =============================================================================
# QUERIES
# =============================================================================


class TestHistory:
    @pytest.mark.asyncio
    async def test_most_recent_first_and_limit(self, pool: EntityPool) -> None:
        engine = DrawEngine(pool, policy="sequential", delay_seconds=0)
        for _ in range(3):
            await engine.draw()

        assert [r.entity_id for r in engine.history()] == [5, 3, 1]
        assert [r.entity_id for r in engine.history(limit=2)] == [5, 3]
        assert engine.history(limit=0) == []

    @pytest.mark.asyncio
    async def test_history_is_a_copy(self, engine: DrawEngine) -> None:
        await engine.draw()
        engine.history().clear()
        assert len(engine.history()) == 1


class TestStatistics:
    def test_empty_statistics(self, engine: DrawEngine) -> None:
        stats = engine.statistics()

        assert stats.total_draws == 0
        assert stats.drawn_count == 0
        assert stats.available_count == 4
        assert stats.total_count == 4
        assert stats.drawn_by_rarity == {}
        assert stats.roster_by_rarity == {"N": 2, "R": 1, "SR": 1}
        assert stats.mean_interval_seconds == 0.0
        assert stats.is_drawing is False

    @pytest.mark.asyncio
    async def test_statistics_after_draws(self, pool: EntityPool) -> None:
        """The fixture clock ticks 2 seconds per draw."""
        engine = DrawEngine(pool, policy="sequential", delay_seconds=0)
        for _ in range(3):
            await engine.draw()
        engine.set_policy("weighted")

        stats = engine.statistics()
        assert stats.total_draws == 3
        assert stats.drawn_count == 3
        assert stats.available_count == 1
        assert stats.drawn_by_rarity == {"N": 2, "R": 1}
        assert stats.draws_by_policy == {"sequential": 3}
        assert stats.mean_interval_seconds == pytest.approx(2.0)
        assert stats.draw_rate == 75.0
        assert stats.policy is SelectionPolicy.WEIGHTED

    @pytest.mark.asyncio
    async def test_single_draw_has_zero_interval(self, engine: DrawEngine) -> None:
        await engine.draw()
        assert engine.statistics().mean_interval_seconds == 0.0


class TestReadinessAndPreview:
    def test_can_draw_when_idle(self, engine: DrawEngine) -> None:
        readiness = engine.can_draw()
        assert readiness.can_draw is True
        assert readiness.available_count == 4
        assert readiness.reason is None

    @pytest.mark.asyncio
    async def test_cannot_draw_when_exhausted(self, engine: DrawEngine) -> None:
        for _ in range(4):
            await engine.draw()
        readiness = engine.can_draw()
        assert readiness.can_draw is False
        assert readiness.reason == "pool exhausted"

    def test_preview_follows_policy(self, engine: DrawEngine) -> None:
        engine.set_policy("sequential")
        assert [e.id for e in engine.preview_next_draw()] == [1]

        engine.set_policy("weighted")
        assert [e.rarity for e in engine.preview_next_draw(limit=2)] == [
            Rarity.ORDINARY,
            Rarity.ORDINARY,
        ]

        engine.set_policy("uniform")
        assert len(engine.preview_next_draw()) == 4


# =============================================================================
# OBSERVERS
# =============================================================================


class TestObservers:
    def test_base_observer_satisfies_protocol(self) -> None:
        assert isinstance(BaseDrawObserver(), DrawObserver)

    def test_unknown_notification_kind_is_not_routed(
        self, engine: DrawEngine, observer: RecordingObserver
    ) -> None:
        """Only the four declared kinds reach observers; anything else fails loudly."""
        with pytest.raises(AssertionError):
            engine._notify(object())  # type: ignore[arg-type]
        assert observer.events == []

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_draw(
        self, engine: DrawEngine, observer: RecordingObserver, caplog
    ) -> None:
        class Exploding(BaseDrawObserver):
            def on_draw_start(self, event: DrawStarted) -> None:
                raise RuntimeError("render failed")

        engine.unsubscribe(observer)
        engine.subscribe(Exploding())
        engine.subscribe(observer)

        completed = await engine.draw()

        assert observer.kinds() == ["draw-start", "draw-complete"]
        assert completed.remaining_count == 3
        assert "failed handling draw-start" in caplog.text

    def test_subscribe_is_idempotent(self, engine: DrawEngine, observer: RecordingObserver) -> None:
        engine.subscribe(observer)
        engine.reset()
        assert observer.kinds() == ["reset-complete"]

    def test_unsubscribe(self, engine: DrawEngine, observer: RecordingObserver) -> None:
        assert engine.unsubscribe(observer) is True
        assert engine.unsubscribe(observer) is False
        engine.reset()
        assert observer.events == []
