"""
ClassDraw services.

Roster ownership, selection policies and the draw engine.
"""

from classdraw.services.draw_engine import (
    DrawEngine,
    DrawReadiness,
    DrawState,
    DrawStatistics,
)
from classdraw.services.entity_pool import EntityPool, PoolSummary, generate_rarity
from classdraw.services.roster_payload import EntityPayload, export_payload, parse_payload
from classdraw.services.selection import (
    preview_candidates,
    select_entity,
    select_sequential,
    select_uniform,
    select_weighted,
)

__all__ = [
    "DrawEngine",
    "DrawReadiness",
    "DrawState",
    "DrawStatistics",
    "EntityPayload",
    "EntityPool",
    "PoolSummary",
    "export_payload",
    "generate_rarity",
    "parse_payload",
    "preview_candidates",
    "select_entity",
    "select_sequential",
    "select_uniform",
    "select_weighted",
]
