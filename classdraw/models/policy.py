"""
Selection Policy configuration.

A PolicyConfig is immutable. The engine swaps the whole object when the
policy changes, so a draw always observes one consistent configuration.

Default weights are inversely related to scarcity: super-rare entities stay
drawable but feel rare.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from classdraw.models.entity import Rarity
from classdraw.models.failure import InvalidPolicyError


class SelectionPolicy(str, Enum):
    """Selection algorithm in effect."""

    UNIFORM = "uniform"
    WEIGHTED = "weighted"
    SEQUENTIAL = "sequential"

    @classmethod
    def parse(cls, value: "str | SelectionPolicy") -> "SelectionPolicy":
        """
        Resolve a policy by name.

        Raises:
            InvalidPolicyError: If the value is outside the closed set
        """
        if isinstance(value, SelectionPolicy):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidPolicyError(value)


DEFAULT_RARITY_WEIGHTS: dict[Rarity, float] = {
    Rarity.ORDINARY: 1.0,
    Rarity.RARE: 0.5,
    Rarity.SUPER_RARE: 0.1,
}

# Weight used for a rarity absent from the mapping
FALLBACK_WEIGHT = 1.0


def normalize_weights(weights: Mapping[str | Rarity, float]) -> dict[Rarity, float]:
    """
    Validate a rarity -> weight mapping.

    Raises:
        InvalidPolicyError: On an unknown rarity or a negative, non-finite
            or non-numeric weight
    """
    if not isinstance(weights, Mapping):
        raise InvalidPolicyError("weighted", detail="weights must be a mapping")

    normalized: dict[Rarity, float] = {}
    for key, value in weights.items():
        try:
            rarity = Rarity.parse(key)
        except ValueError as e:
            raise InvalidPolicyError("weighted", detail=str(e)) from e

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidPolicyError(
                "weighted", detail=f"weight for {rarity.value} must be a number"
            )
        weight = float(value)
        if not math.isfinite(weight) or weight < 0:
            raise InvalidPolicyError(
                "weighted",
                detail=f"weight for {rarity.value} must be non-negative, got {value}",
            )
        normalized[rarity] = weight
    return normalized


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """
    Active policy plus its rarity weights.

    Weights are stored as sorted pairs so the config stays hashable and
    cannot be mutated through a shared dict.
    """

    policy: SelectionPolicy = SelectionPolicy.UNIFORM
    weights: tuple[tuple[Rarity, float], ...] = field(
        default_factory=lambda: tuple(DEFAULT_RARITY_WEIGHTS.items())
    )

    @classmethod
    def build(
        cls,
        policy: str | SelectionPolicy,
        weights: Mapping[str | Rarity, float] | None = None,
    ) -> "PolicyConfig":
        """
        Build a validated config.

        Given weights are merged over the defaults.
        """
        resolved = SelectionPolicy.parse(policy)
        merged = dict(DEFAULT_RARITY_WEIGHTS)
        if weights is not None:
            merged.update(normalize_weights(weights))
        return cls(policy=resolved, weights=tuple(sorted(merged.items())))

    def weight_for(self, rarity: Rarity) -> float:
        """Weight of a rarity, FALLBACK_WEIGHT if unmapped."""
        for mapped, weight in self.weights:
            if mapped is rarity:
                return weight
        return FALLBACK_WEIGHT

    def weights_dict(self) -> dict[Rarity, float]:
        """Weights as a fresh dict."""
        return dict(self.weights)

    def with_policy(self, policy: str | SelectionPolicy) -> "PolicyConfig":
        """Copy with another policy and the same weights."""
        return PolicyConfig(policy=SelectionPolicy.parse(policy), weights=self.weights)

    def with_weights(self, weights: Mapping[str | Rarity, float]) -> "PolicyConfig":
        """Copy with weights merged over the current ones."""
        merged = self.weights_dict()
        merged.update(normalize_weights(weights))
        return PolicyConfig(policy=self.policy, weights=tuple(sorted(merged.items())))
