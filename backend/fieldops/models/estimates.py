from __future__ import annotations

from ..extensions import db
from fieldops.time_utils import to_utc_z


class Estimate(db.Model):
    """
    Priced proposal for a client.

    Totals are derived from line items (all amounts in cents) and are only
    recomputed while the estimate is draft. Once sent, the estimate is frozen.
    """
    __tablename__ = "estimates"
    __table_args__ = (
        db.CheckConstraint("total_cents = subtotal_cents + tax_cents", name="ck_estimates_total"),
        db.Index("ix_estimates_account_status", "account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    line_items = db.relationship(
        "EstimateLineItem",
        backref="estimate",
        lazy=True,
        order_by="(EstimateLineItem.sort_order, EstimateLineItem.id)",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "account_id": self.account_id,
            "client_id": self.client_id,
            "job_id": self.job_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "internal_notes": self.internal_notes,
            "sent_at": to_utc_z(self.sent_at),
            "expires_at": to_utc_z(self.expires_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["line_items"] = [line.to_dict() for line in self.line_items]
        return data


class EstimateLineItem(db.Model):
    """Individual priced line on an estimate."""
    __tablename__ = "estimate_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id"), nullable=False, index=True)

    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "estimate_id": self.estimate_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }
