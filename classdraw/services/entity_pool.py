"""
Entity Pool - source of truth for roster membership and drawn state.

INVARIANT: The pool is the ONLY writer of is_drawn / drawn_at.
Entities are frozen; the pool swaps in replaced instances, so every
value a caller holds is a copy that cannot corrupt pool state.

INVARIANT: drawn_at never decreases within one cycle.

INVARIANT: Every reset or roster load starts a new cycle (generation).
A commit tagged with an old generation is rejected, so a selection made
before a reset can never resurrect a drawn entity in the fresh cycle.
"""

import logging
import random
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from classdraw.config import RARE_THRESHOLD, SUPER_RARE_THRESHOLD, settings
from classdraw.models.entity import Entity, Rarity
from classdraw.models.failure import RosterValidationError
from classdraw.services.roster_payload import (
    build_entities,
    default_avatar_ref,
    default_name,
    dumps_payload,
    export_payload,
    loads_payload,
    parse_payload,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_rarity(rng: random.Random | None = None) -> Rarity:
    """
    Draw a rarity from the fixed 1% / 9% / 90% distribution.

    Other components rely on this distribution for expected-value tests.
    """
    roll = (rng or random).random()
    if roll < SUPER_RARE_THRESHOLD:
        return Rarity.SUPER_RARE
    if roll < RARE_THRESHOLD:
        return Rarity.RARE
    return Rarity.ORDINARY


@dataclass(frozen=True)
class PoolSummary:
    """Counts derived from the current roster."""

    total: int
    drawn: int
    available: int
    by_rarity: dict[str, int] = field(default_factory=dict)

    @property
    def draw_rate(self) -> float:
        """Percentage of the roster drawn this cycle."""
        if self.total == 0:
            return 0.0
        return round(self.drawn / self.total * 100, 1)


class EntityPool:
    """
    Ordered roster of entities with drawn/undrawn status.

    Usage:
        pool = EntityPool()
        pool.initialize(30)
        for entity in pool.list_available():
            ...
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        avatar_base_url: str | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self._avatar_base_url = avatar_base_url or settings.avatar_base_url
        self._entities: dict[int, Entity] = {}
        self._generation = 0
        self._last_drawn_at: datetime | None = None

    # =========================================================================
    # LOADING
    # =========================================================================

    def initialize(self, source: int | Sequence[Mapping[str, Any]]) -> int:
        """
        Populate the roster from a count or an imported list.

        Args:
            source: Number of synthetic entities to generate, or a payload
                of entity records (see roster_payload)

        Returns:
            New roster size

        Raises:
            RosterValidationError: If the count is negative or the payload
                is malformed. The roster is left unchanged.
        """
        if isinstance(source, bool):
            raise RosterValidationError(
                "Roster source must be a count or a list of records.",
                detail="got bool",
            )
        if isinstance(source, int):
            entities = self._generate(source)
        else:
            records = parse_payload(source)
            entities = build_entities(
                records,
                avatar_base_url=self._avatar_base_url,
                rarity_source=lambda: generate_rarity(self._rng),
            )

        self._entities = {entity.id: entity for entity in entities}
        self._start_cycle()
        logger.info("Roster loaded with %d entities", len(self._entities))
        return len(self._entities)

    def _generate(self, count: int) -> list[Entity]:
        if count < 0:
            raise RosterValidationError(
                "Roster size cannot be negative.",
                detail=f"count={count}",
            )
        return [
            Entity(
                id=entity_id,
                name=default_name(entity_id),
                avatar_ref=default_avatar_ref(self._avatar_base_url, entity_id),
                rarity=generate_rarity(self._rng),
            )
            for entity_id in range(1, count + 1)
        ]

    def import_roster(self, payload: Sequence[Mapping[str, Any]]) -> int:
        """Replace the roster with an imported payload. All entities start undrawn."""
        if isinstance(payload, int):
            raise RosterValidationError(
                "Roster payload must be a list of records.",
                detail=f"got {type(payload).__name__}",
            )
        return self.initialize(payload)

    def import_roster_json(self, text: str) -> int:
        """Replace the roster with a JSON-encoded payload."""
        return self.import_roster(loads_payload(text))

    def export_roster(self) -> list[dict[str, Any]]:
        """Export the roster as [{id, name, avatarRef, rarity}] without drawn state."""
        return export_payload(self.list_all())

    def export_roster_json(self, indent: int | None = 2) -> str:
        """Export the roster as JSON text."""
        return dumps_payload(self.export_roster(), indent=indent)

    # =========================================================================
    # QUERIES (all return copies)
    # =========================================================================

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    @property
    def generation(self) -> int:
        """Cycle counter, bumped by every reset and roster load."""
        return self._generation

    def list_all(self) -> list[Entity]:
        return list(self._entities.values())

    def list_available(self) -> list[Entity]:
        return [entity for entity in self._entities.values() if not entity.is_drawn]

    def list_drawn(self) -> list[Entity]:
        return [entity for entity in self._entities.values() if entity.is_drawn]

    def find_by_id(self, entity_id: int) -> Entity | None:
        """Return the entity, or None if the id is unknown. Never raises."""
        return self._entities.get(entity_id)

    def summary(self) -> PoolSummary:
        by_rarity: dict[str, int] = {}
        drawn = 0
        for entity in self._entities.values():
            by_rarity[entity.rarity.value] = by_rarity.get(entity.rarity.value, 0) + 1
            if entity.is_drawn:
                drawn += 1
        total = len(self._entities)
        return PoolSummary(
            total=total,
            drawn=drawn,
            available=total - drawn,
            by_rarity=by_rarity,
        )

    def integrity_issues(self) -> list[str]:
        """
        Check roster data integrity.

        Returns:
            Human-readable problems, empty when the roster is valid
        """
        issues: list[str] = []
        for key, entity in self._entities.items():
            if key != entity.id:
                issues.append(f"Entity {entity.id} is stored under id {key}")
            if entity.id <= 0:
                issues.append(f"Entity {entity.id} has a non-positive id")
            if not entity.name.strip():
                issues.append(f"Entity {entity.id} has no name")
            if not entity.avatar_ref.strip():
                issues.append(f"Entity {entity.id} has no avatar reference")
            if entity.is_drawn != (entity.drawn_at is not None):
                issues.append(f"Entity {entity.id} has inconsistent drawn state")
        return issues

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def mark_drawn(
        self,
        entity_id: int,
        *,
        generation: int | None = None,
        expected: Entity | None = None,
    ) -> bool:
        """
        Transition one entity from undrawn to drawn.

        Args:
            entity_id: Entity to mark
            generation: Cycle the caller selected in; when given and stale
                the commit is rejected
            expected: Snapshot the caller selected; when given the stored
                entity must still equal it (a removed-then-added id, or an
                edit, is rejected)

        Returns:
            True on success. False if the id is unknown, the entity is
            already drawn, the generation is stale or the entity changed
            since it was selected. Double-marking is reported, never
            silently accepted.
        """
        if generation is not None and generation != self._generation:
            logger.warning(
                "Rejected mark_drawn(%d): generation %d is stale (current %d)",
                entity_id,
                generation,
                self._generation,
            )
            return False

        entity = self._entities.get(entity_id)
        if entity is None or entity.is_drawn:
            logger.warning("Rejected mark_drawn(%d): unknown or already drawn", entity_id)
            return False
        if expected is not None and entity != expected:
            logger.warning("Rejected mark_drawn(%d): entity changed since selection", entity_id)
            return False

        stamp = self._clock()
        if self._last_drawn_at is not None and stamp < self._last_drawn_at:
            stamp = self._last_drawn_at
        self._last_drawn_at = stamp

        self._entities[entity_id] = replace(entity, is_drawn=True, drawn_at=stamp)
        logger.debug("Marked entity %d drawn at %s", entity_id, stamp.isoformat())
        return True

    def reset_all(self) -> None:
        """Mark every entity undrawn and start a new cycle. Idempotent."""
        self._entities = {
            entity_id: replace(entity, is_drawn=False, drawn_at=None)
            if entity.is_drawn
            else entity
            for entity_id, entity in self._entities.items()
        }
        self._start_cycle()
        logger.info("Roster reset (%d entities)", len(self._entities))

    def add(
        self,
        name: str,
        avatar_ref: str | None = None,
        rarity: str | Rarity | None = None,
        entity_id: int | None = None,
    ) -> Entity:
        """
        Append a new undrawn entity.

        Args:
            name: Display name (non-empty)
            avatar_ref: Avatar reference; derived from the id when omitted
            rarity: Rarity; generated when omitted
            entity_id: Explicit id; next unused id when omitted

        Returns:
            The added entity

        Raises:
            RosterValidationError: On an empty name, a non-positive or
                duplicate id, or an unknown rarity
        """
        if not isinstance(name, str) or not name.strip():
            raise RosterValidationError("Entity name cannot be empty.")

        if entity_id is None:
            entity_id = max(self._entities, default=0) + 1
        elif isinstance(entity_id, bool) or not isinstance(entity_id, int) or entity_id <= 0:
            raise RosterValidationError(
                "Entity id must be a positive integer.",
                detail=f"id={entity_id!r}",
            )
        elif entity_id in self._entities:
            raise RosterValidationError(
                "Roster contains duplicate ids.",
                detail=f"duplicate id {entity_id}",
            )

        entity = Entity(
            id=entity_id,
            name=name.strip(),
            avatar_ref=(avatar_ref or "").strip()
            or default_avatar_ref(self._avatar_base_url, entity_id),
            rarity=self._resolve_rarity(rarity),
        )
        self._entities[entity_id] = entity
        logger.info("Added entity %d (%s)", entity_id, entity.name)
        return entity

    def remove(self, entity_id: int) -> bool:
        """Remove an entity. Returns False if the id is absent."""
        if self._entities.pop(entity_id, None) is None:
            return False
        logger.info("Removed entity %d", entity_id)
        return True

    def update(
        self,
        entity_id: int,
        *,
        name: str | None = None,
        avatar_ref: str | None = None,
        rarity: str | Rarity | None = None,
    ) -> bool:
        """
        Edit display fields of an entity. Drawn state is not editable.

        Returns:
            False if the id is absent

        Raises:
            RosterValidationError: On a blank name or avatar reference, or an
                unknown rarity
        """
        entity = self._entities.get(entity_id)
        if entity is None:
            return False

        changes: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise RosterValidationError("Entity name cannot be empty.")
            changes["name"] = name.strip()
        if avatar_ref is not None:
            if not avatar_ref.strip():
                raise RosterValidationError("Avatar reference cannot be empty.")
            changes["avatar_ref"] = avatar_ref.strip()
        if rarity is not None:
            changes["rarity"] = self._resolve_rarity(rarity)

        self._entities[entity_id] = replace(entity, **changes)
        return True

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _resolve_rarity(self, rarity: str | Rarity | None) -> Rarity:
        if rarity is None:
            return generate_rarity(self._rng)
        try:
            return Rarity.parse(rarity)
        except ValueError as e:
            raise RosterValidationError("Unknown rarity.", detail=str(e)) from e

    def _start_cycle(self) -> None:
        self._generation += 1
        self._last_drawn_at = None
