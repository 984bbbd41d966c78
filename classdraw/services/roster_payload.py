"""
Roster Payload - import validation and export shaping.

This module is the trust boundary between raw roster data supplied by a
presentation layer (or a JSON file) and the entity pool.

INVARIANTS:
- Import payloads are UNTRUSTED; nothing reaches the pool unvalidated
- Validation is all-or-nothing: one bad record rejects the whole payload
- Export never contains drawn state (an exported roster is always fresh)

Payload shape (ordered sequence):
    [{"id": 1, "name": "Ada", "avatarRef": "...", "rarity": "N"}, ...]

Every field is optional on import. "avatar" and "avatar_ref" are accepted
as aliases of "avatarRef".
"""

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
)

from classdraw.models.entity import Entity, Rarity
from classdraw.models.failure import RosterValidationError

logger = logging.getLogger(__name__)


class EntityPayload(BaseModel):
    """One untrusted roster record."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: PositiveInt | None = Field(
        default=None,
        description="Unique positive id; assigned when missing",
    )
    name: str | None = Field(
        default=None,
        description="Display name; defaulted when missing or blank",
    )
    avatar_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("avatarRef", "avatar_ref", "avatar"),
        serialization_alias="avatarRef",
        description="Opaque avatar reference",
    )
    rarity: Rarity | None = Field(
        default=None,
        description="Rarity code or name; generated when missing",
    )

    @field_validator("id", mode="before")
    @classmethod
    def _reject_bool_id(cls, value: Any) -> Any:
        # bool is an int subclass; True would silently become id 1
        if isinstance(value, bool):
            raise ValueError("id must be an integer")
        return value

    @field_validator("name", "avatar_ref", mode="before")
    @classmethod
    def _blank_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("rarity", mode="before")
    @classmethod
    def _parse_rarity(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return Rarity.parse(value)


def _format_errors(error: ValidationError, index: int) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "record"
        parts.append(f"[{index}].{location}: {item['msg']}")
    return "; ".join(parts)


def parse_payload(payload: Any) -> list[EntityPayload]:
    """
    Validate an import payload into EntityPayload records.

    Args:
        payload: Ordered sequence of mappings

    Returns:
        Validated records in payload order

    Raises:
        RosterValidationError: If the payload is not a sequence of
            entity-shaped mappings, or ids are non-positive or duplicated
    """
    if isinstance(payload, (str, bytes, Mapping)) or not isinstance(payload, Sequence):
        raise RosterValidationError(
            "Roster payload must be a list of records.",
            detail=f"got {type(payload).__name__}",
        )

    records: list[EntityPayload] = []
    seen_ids: set[int] = set()

    for index, raw in enumerate(payload):
        if not isinstance(raw, Mapping):
            raise RosterValidationError(
                "Every roster record must be an object.",
                detail=f"[{index}]: got {type(raw).__name__}",
            )
        try:
            record = EntityPayload.model_validate(dict(raw))
        except ValidationError as e:
            raise RosterValidationError(
                "Roster record is malformed.",
                detail=_format_errors(e, index),
            ) from e

        if record.id is not None:
            if record.id in seen_ids:
                raise RosterValidationError(
                    "Roster contains duplicate ids.",
                    detail=f"[{index}].id: duplicate id {record.id}",
                )
            seen_ids.add(record.id)
        records.append(record)

    logger.debug("Validated %d roster records", len(records))
    return records


def default_avatar_ref(base_url: str, entity_id: int) -> str:
    """Avatar reference for an entity supplied without one."""
    return f"{base_url}?seed={entity_id}"


def default_name(entity_id: int) -> str:
    """Display name for an entity supplied without one."""
    return f"Student {entity_id}"


def build_entities(
    records: list[EntityPayload],
    *,
    avatar_base_url: str,
    rarity_source: Callable[[], Rarity],
) -> list[Entity]:
    """
    Turn validated records into fresh (undrawn) entities.

    Missing ids are assigned after the highest explicit id, in payload
    order, so a payload without ids gets ids 1..n.
    """
    next_id = max((r.id for r in records if r.id is not None), default=0) + 1

    entities: list[Entity] = []
    for record in records:
        if record.id is not None:
            entity_id = record.id
        else:
            entity_id = next_id
            next_id += 1

        entities.append(
            Entity(
                id=entity_id,
                name=record.name or default_name(entity_id),
                avatar_ref=record.avatar_ref or default_avatar_ref(avatar_base_url, entity_id),
                rarity=record.rarity if record.rarity is not None else rarity_source(),
            )
        )
    return entities


def export_payload(entities: Sequence[Entity]) -> list[dict[str, Any]]:
    """
    Shape entities as an export payload.

    Drawn state is intentionally excluded.
    """
    return [
        EntityPayload(
            id=entity.id,
            name=entity.name,
            avatar_ref=entity.avatar_ref,
            rarity=entity.rarity,
        ).model_dump(mode="json", by_alias=True)
        for entity in entities
    ]


def loads_payload(text: str) -> Any:
    """
    Decode JSON roster text.

    Raises:
        RosterValidationError: If the text is not valid JSON
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise RosterValidationError(
            "Roster text is not valid JSON.",
            detail=f"line {e.lineno} column {e.colno}: {e.msg}",
        ) from e


def dumps_payload(payload: list[dict[str, Any]], indent: int | None = 2) -> str:
    """Encode an export payload as JSON text."""
    return json.dumps(payload, ensure_ascii=False, indent=indent)
