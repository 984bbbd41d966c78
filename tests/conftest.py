import random
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

import pytest

from classdraw.models.events import RecordingObserver
from classdraw.services.draw_engine import DrawEngine
from classdraw.services.entity_pool import EntityPool


class StubRandom:
    """RNG returning a fixed script of values, repeating the last one."""

    def __init__(self, values: Iterable[float]) -> None:
        self._values = list(values)
        self.calls = 0

    def random(self) -> float:
        index = min(self.calls, len(self._values) - 1)
        self.calls += 1
        return self._values[index]


class TickingClock:
    """Clock advancing a fixed step on every call."""

    def __init__(self, start: datetime, step: timedelta) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


@pytest.fixture
def stub_random() -> Callable[..., StubRandom]:
    """Factory for scripted RNGs: stub_random(0.0, 0.5, ...)."""

    def _make(*values: float) -> StubRandom:
        return StubRandom(values)

    return _make


@pytest.fixture
def clock() -> TickingClock:
    """Clock starting at a fixed instant, 2 seconds per tick."""
    return TickingClock(
        start=datetime(2024, 9, 2, 8, 0, tzinfo=timezone.utc),
        step=timedelta(seconds=2),
    )


@pytest.fixture
def sample_roster() -> list[dict]:
    """Small imported roster with explicit ids and rarities."""
    return [
        {"id": 5, "name": "Ada", "avatarRef": "./images/ada.jpg", "rarity": "N"},
        {"id": 3, "name": "Grace", "avatarRef": "./images/grace.jpg", "rarity": "R"},
        {"id": 8, "name": "Linus", "avatarRef": "./images/linus.jpg", "rarity": "SR"},
        {"id": 1, "name": "Barbara", "avatarRef": "./images/barbara.jpg", "rarity": "N"},
    ]


@pytest.fixture
def pool(sample_roster: list[dict], clock: TickingClock) -> EntityPool:
    """Pool loaded with the sample roster."""
    entity_pool = EntityPool(rng=random.Random(7), clock=clock)
    entity_pool.initialize(sample_roster)
    return entity_pool


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def engine(pool: EntityPool, observer: RecordingObserver) -> DrawEngine:
    """Engine with no presentation delay and a seeded RNG."""
    draw_engine = DrawEngine(pool, policy="uniform", delay_seconds=0, rng=random.Random(42))
    draw_engine.subscribe(observer)
    return draw_engine
