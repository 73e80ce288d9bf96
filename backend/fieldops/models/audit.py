from __future__ import annotations

from ..extensions import db
from fieldops.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only record of every committed mutation made by the core.

    Rows are written inside the same transaction as the change they record,
    so a rolled-back transition leaves no audit trace.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_account_entity", "account_id", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(16), nullable=False)  # insert, update, delete
    actor_id = db.Column(db.Integer, nullable=True)

    old_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "created_at": to_utc_z(self.created_at),
        }


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    Tracks authorization denials (cross-tenant probes, role and assignment
    failures). IMMUTABLE: never update or delete.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_account_occurred", "account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Actor's account, not the account of the resource that was probed
    account_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # CROSS_TENANT, FORBIDDEN_ROLE, ...
    resource = db.Column(db.String(128), nullable=True)  # e.g., "visit:42"
    action = db.Column(db.String(64), nullable=True)  # e.g., "transition:arrived"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class AutomationEvent(db.Model):
    """
    Outbox of automation events for the notification collaborator.

    dedupe_key lets scans emit an event at most once per subject (one reminder
    per visit, one follow-up per invoice and cadence step).
    """
    __tablename__ = "automation_events"
    __table_args__ = (
        db.UniqueConstraint("account_id", "event_type", "dedupe_key", name="uq_automation_events_dedupe"),
        db.Index("ix_automation_events_account_type", "account_id", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    event_type = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    dedupe_key = db.Column(db.String(128), nullable=True)

    payload = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "dedupe_key": self.dedupe_key,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
