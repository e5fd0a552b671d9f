from typing import Any

from pydantic import Field

from watchearn.models.base import Record


class AuditLog(Record):
    actor_id: str | None = None  # None for system events
    event_type: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
