"""
Entity Models.

An Entity is one drawable roster member (a student in the classroom tool).

INVARIANTS:
- Entities are frozen: the pool replaces instances, it never edits them
- Exactly one of {undrawn, drawn with drawn_at} holds per entity
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Rarity(str, Enum):
    """Closed set of rarity categories. Values are the export codes."""

    ORDINARY = "N"
    RARE = "R"
    SUPER_RARE = "SR"

    @classmethod
    def parse(cls, value: "str | Rarity") -> "Rarity":
        """
        Resolve a rarity from its code or long name.

        Accepts "N"/"R"/"SR" and "ordinary"/"rare"/"super-rare"/"super_rare",
        case-insensitively.

        Raises:
            ValueError: If the value names no rarity
        """
        if isinstance(value, Rarity):
            return value
        if not isinstance(value, str):
            raise ValueError(f"rarity must be a string, got {type(value).__name__}")
        key = value.strip().lower().replace("-", "_")
        for rarity in cls:
            if key in (rarity.value.lower(), rarity.name.lower()):
                return rarity
        raise ValueError(f"unknown rarity {value!r}")


@dataclass(frozen=True, slots=True)
class Entity:
    """
    A roster member as seen by every caller.

    Attributes:
        id: Unique positive id, stable for one roster load
        name: Display label (non-empty)
        avatar_ref: Opaque reference to a visual asset
        rarity: Category driving weighted selection
        is_drawn: True once drawn in the current cycle
        drawn_at: UTC timestamp of the draw, None while undrawn
    """

    id: int
    name: str
    avatar_ref: str
    rarity: Rarity = Rarity.ORDINARY
    is_drawn: bool = False
    drawn_at: datetime | None = None

    @property
    def is_available(self) -> bool:
        """True while the entity can still be drawn."""
        return not self.is_drawn
