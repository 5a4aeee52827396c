# Overview: Append-only audit trail for order and settings changes.

from __future__ import annotations

from ..extensions import db
from ..models import AuditEntry
from ..schemas import Snapshot
from ..time_utils import utcnow

"""
Audit Trail Invariants

- Append-only. There is no update or delete path for AuditEntry.
- Entries are written inside the same DB transaction as the change they
  record, so a rolled-back change leaves no entry behind.
- Entries are written only for confirmed changes, never for rejected
  attempts.
"""


ACTION_CREATE_ORDER = "create_order"
ACTION_UPDATE_ORDER_STATUS = "update_order_status"
ACTION_INITIATE_PAYMENT = "initiate_payment"
ACTION_UPDATE_PAYMENT_STATUS = "update_payment_status"
ACTION_CANCEL_ORDER = "cancel_order"
ACTION_UPDATE_PAYMENT_SETTINGS = "update_payment_settings"

ENTITY_ORDER = "orders"
ENTITY_SETTINGS = "system_settings"


def append_audit_entry(
    *,
    action: str,
    entity_type: str,
    entity_id: int | None,
    before: Snapshot | None,
    after: Snapshot | None,
    actor: str,
    ip_address: str | None = None,
) -> AuditEntry:
    """Add an entry to the current session and flush. The caller commits."""
    entry = AuditEntry(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        before_state=before.to_json() if before is not None else None,
        after_state=after.to_json() if after is not None else None,
        actor=actor,
        ip_address=ip_address,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_entity_history(entity_type: str, entity_id: int) -> list[AuditEntry]:
    return (
        db.session.query(AuditEntry)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditEntry.created_at.asc(), AuditEntry.id.asc())
        .all()
    )


def count_entries(*, action: str | None = None, entity_id: int | None = None) -> int:
    query = db.session.query(AuditEntry)
    if action:
        query = query.filter_by(action=action)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    return query.count()
