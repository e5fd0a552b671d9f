"""Audit log for admin decisions and other money-relevant actions."""

from typing import Any

from watchearn.db.base import UnitOfWork
from watchearn.models.audit_log import AuditLog


async def log_event(
    uow: UnitOfWork,
    actor_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs inside the caller's transaction."""
    await uow.audit_logs.insert(
        AuditLog(
            actor_id=actor_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        )
    )
