from __future__ import annotations

from ..extensions import db
from fieldops.time_utils import to_utc_z


class Job(db.Model):
    """
    Unit of work for a client.

    LIFECYCLE: draft -> quoted -> scheduled -> in_progress -> completed -> invoiced,
    with cancellation from any non-terminal state. invoiced and cancelled are terminal.
    """
    __tablename__ = "jobs"
    __table_args__ = (
        db.Index("ix_jobs_account_status", "account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft")

    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=True)
    scheduled_end = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    account = db.relationship("Account", backref=db.backref("jobs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "scheduled_start": to_utc_z(self.scheduled_start),
            "scheduled_end": to_utc_z(self.scheduled_end),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Visit(db.Model):
    """
    A scheduled trip to the job site, optionally assigned to a technician.

    arrived_at and completed_at are written only by the workflow engine when
    the visit transitions into arrived / completed.
    """
    __tablename__ = "visits"
    __table_args__ = (
        db.CheckConstraint("scheduled_end > scheduled_start", name="ck_visits_schedule_window"),
        db.Index("ix_visits_account_status_start", "account_id", "status", "scheduled_start"),
        db.Index("ix_visits_assigned_user", "assigned_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)
    assigned_user_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="scheduled")

    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end = db.Column(db.DateTime(timezone=True), nullable=False)
    arrived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tech_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    job = db.relationship("Job", backref=db.backref("visits", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "job_id": self.job_id,
            "assigned_user_id": self.assigned_user_id,
            "status": self.status,
            "scheduled_start": to_utc_z(self.scheduled_start),
            "scheduled_end": to_utc_z(self.scheduled_end),
            "arrived_at": to_utc_z(self.arrived_at),
            "completed_at": to_utc_z(self.completed_at),
            "tech_notes": self.tech_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
