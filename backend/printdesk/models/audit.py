from __future__ import annotations

from ..extensions import db
from ..schemas import snapshot_from_json
from ..time_utils import to_utc_z


class AuditEntry(db.Model):
    """
    Append-only record of a confirmed state change.

    entity_id is a weak reference: cancelled orders are deleted but their
    audit entries stay.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)

    before_state = db.Column(db.JSON, nullable=True)
    after_state = db.Column(db.JSON, nullable=True)

    actor = db.Column(db.String(128), nullable=False)
    ip_address = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def before(self):
        return snapshot_from_json(self.before_state)

    @property
    def after(self):
        return snapshot_from_json(self.after_state)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "beforeState": self.before_state,
            "afterState": self.after_state,
            "actor": self.actor,
            "ipAddress": self.ip_address,
            "createdAt": to_utc_z(self.created_at),
        }
