from __future__ import annotations

from ..extensions import db
from contribution.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only audit fact table.

    - auditable_type/auditable_id form a polymorphic reference to the affected row.
    - old_values/new_values are JSON snapshots.
    - Rows are written in the same transaction as the change they record and
      are never updated or deleted.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_auditable", "auditable_type", "auditable_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)
    auditable_type = db.Column(db.String(64), nullable=False)
    auditable_id = db.Column(db.Integer, nullable=False)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "user_id": self.user_id,
            "action": self.action,
            "auditable_type": self.auditable_type,
            "auditable_id": self.auditable_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "occurred_at": to_utc_z(self.occurred_at),
        }
