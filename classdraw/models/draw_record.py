from dataclasses import dataclass
from datetime import datetime

from classdraw.models.policy import SelectionPolicy


@dataclass(frozen=True, slots=True)
class DrawRecord:
    """
    One completed draw.

    Attributes:
        entity_id: Id of the drawn entity
        timestamp: Commit time (equal to the entity's drawn_at)
        policy_used: Policy in effect when the entity was selected
        remaining_count_after: Entities still available after the commit
    """

    entity_id: int
    timestamp: datetime
    policy_used: SelectionPolicy
    remaining_count_after: int
