"""
Selection policies - pick one entity from an available snapshot.

All functions are pure with respect to the pool: they read a snapshot
and return one of its elements. Randomness comes from an injected RNG
so tests can pin outcomes.

Algorithms (snapshot S, n = len(S) >= 1):
- uniform: S[floor(U * n)]
- weighted: linear walk subtracting weights from R = U * W until R <= 0,
  last entity as fallback when float error exhausts the walk
- sequential: minimum id
"""

import logging
import math
import random
from collections.abc import Sequence
from typing import Protocol

from classdraw.models.entity import Entity
from classdraw.models.policy import FALLBACK_WEIGHT, PolicyConfig, SelectionPolicy

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    """Anything with random() -> float in [0, 1)."""

    def random(self) -> float: ...


def select_uniform(candidates: Sequence[Entity], rng: RandomSource) -> Entity:
    """Every candidate has probability 1/n."""
    _require_candidates(candidates)
    n = len(candidates)
    index = int(rng.random() * n)
    return candidates[min(index, n - 1)]


def select_weighted(
    candidates: Sequence[Entity],
    config: PolicyConfig,
    rng: RandomSource,
) -> Entity:
    """
    Weighted walk over candidates in their given order.

    A linear scan is fine for classroom-sized rosters.
    If every candidate weighs zero the draw falls back to uniform.
    """
    _require_candidates(candidates)
    weight_map = config.weights_dict()
    weights = [weight_map.get(entity.rarity, FALLBACK_WEIGHT) for entity in candidates]
    total_weight = sum(weights)

    if not math.isfinite(total_weight):
        # Each weight is finite, so scaling by the largest keeps the sum finite
        peak = max(weights)
        weights = [weight / peak for weight in weights]
        total_weight = sum(weights)

    if total_weight <= 0:
        logger.warning(
            "All %d candidates have zero weight; falling back to uniform",
            len(candidates),
        )
        return select_uniform(candidates, rng)

    remaining = rng.random() * total_weight
    for entity, weight in zip(candidates, weights):
        remaining -= weight
        if remaining <= 0:
            return entity

    # Only reachable through float error at the upper boundary
    return candidates[-1]


def select_sequential(candidates: Sequence[Entity]) -> Entity:
    """Candidate with the smallest id."""
    _require_candidates(candidates)
    return min(candidates, key=lambda entity: entity.id)


def select_entity(
    candidates: Sequence[Entity],
    config: PolicyConfig,
    rng: RandomSource | None = None,
) -> Entity:
    """Apply the policy in config to candidates."""
    source = rng or random
    if config.policy is SelectionPolicy.WEIGHTED:
        selected = select_weighted(candidates, config, source)
    elif config.policy is SelectionPolicy.SEQUENTIAL:
        selected = select_sequential(candidates)
    else:
        selected = select_uniform(candidates, source)

    logger.debug(
        "Selected entity %d with %s policy from %d candidates",
        selected.id,
        config.policy.value,
        len(candidates),
    )
    return selected


def preview_candidates(
    candidates: Sequence[Entity],
    config: PolicyConfig,
    limit: int,
) -> list[Entity]:
    """
    Likely outcomes of the next draw, for debugging and previews.

    - sequential: the single next entity
    - weighted: highest-weight candidates first, up to limit
    - uniform: every candidate
    """
    if not candidates:
        return []
    if config.policy is SelectionPolicy.SEQUENTIAL:
        return [select_sequential(candidates)]
    if config.policy is SelectionPolicy.WEIGHTED:
        ranked = sorted(
            candidates,
            key=lambda entity: config.weight_for(entity.rarity),
            reverse=True,
        )
        return ranked[:limit]
    return list(candidates)


def _require_candidates(candidates: Sequence[Entity]) -> None:
    if not candidates:
        raise ValueError("cannot select from an empty snapshot")
