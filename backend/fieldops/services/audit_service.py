# Overview: Service-layer operations for audit; append-only change records.

from __future__ import annotations

from ..extensions import db
from ..models import AuditLog
"""
Audit Log Invariants

- Append-only: no updates or deletes of existing rows.
- Rows are written inside the same DB transaction as the change they record.
- old_value / new_value hold only the fields that changed.
"""


AUDIT_ACTIONS = ("insert", "update", "delete")


def append_audit(
    *,
    account_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    actor_id: int | None = None,
    old_value: dict | None = None,
    new_value: dict | None = None,
) -> AuditLog:
    """Add an audit row to the current session without committing."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Invalid audit action '{action}'")

    entry = AuditLog(
        account_id=account_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        old_value=_jsonable(old_value),
        new_value=_jsonable(new_value),
    )
    db.session.add(entry)
    return entry


def list_audit(account_id: int, entity_type: str, entity_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(account_id=account_id, entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.id.asc())
        .all()
    )


def _jsonable(values: dict | None) -> dict | None:
    if values is None:
        return None
    out = {}
    for key, value in values.items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
            value = str(value)
        out[key] = value
    return out
