# Overview: Append-only audit trail writes; encapsulates AuditLog creation.

"""
Audit Log Invariants

- Append-only: no updates or deletes of existing rows.
- No domain/business logic here.
- Entries are written inside the same DB transaction as the change they record.
- occurred_at is business time supplied by the caller's clock; falls back to the DB default.
"""

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditLog


def log_audit(
    *,
    action: str,
    entity,
    company_id: int | None,
    user_id: int | None = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditLog:
    """
    Append one audit entry for `entity` (any mapped row with an id).

    The row is flushed but not committed; it commits or rolls back with the
    surrounding unit of work.
    """
    entry = AuditLog(
        company_id=company_id,
        user_id=user_id,
        action=action,
        auditable_type=type(entity).__name__,
        auditable_id=entity.id,
        old_values=old_values,
        new_values=new_values,
    )
    if occurred_at is not None:
        entry.occurred_at = occurred_at
    db.session.add(entry)
    db.session.flush()
    return entry


def get_audit_trail(tenant, entity_type: str, entity_id: int) -> list[AuditLog]:
    """Audit entries for one entity, oldest first."""
    return (
        tenant.query(AuditLog)
        .filter(AuditLog.auditable_type == entity_type, AuditLog.auditable_id == entity_id)
        .order_by(AuditLog.id)
        .all()
    )
