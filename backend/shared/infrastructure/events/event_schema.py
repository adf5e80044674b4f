"""
Event Schema.

Defines the unified Event dataclass for all published events.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass
class Event:
    """
    Unified event schema.

    'entity' carries the event-specific payload (order number, items, totals).
    'actor' identifies who triggered the event (user id and role, or "customer").
    """

    type: str
    restaurant_id: int
    table_id: int | None = None
    order_id: int | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if not _is_positive_int(self.restaurant_id):
            raise ValueError("Event restaurant_id must be a positive integer")

        if self.table_id is not None and not _is_positive_int(self.table_id):
            raise ValueError("Event table_id must be a positive integer or None")

        if self.order_id is not None and not _is_positive_int(self.order_id):
            raise ValueError("Event order_id must be a positive integer or None")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

        if self.actor is not None and not isinstance(self.actor, dict):
            raise ValueError("Event actor must be a dict or None")

    def to_json(self) -> str:
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["actor"] = data["actor"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize; validation runs in __post_init__."""
        return cls(**json.loads(json_str))
