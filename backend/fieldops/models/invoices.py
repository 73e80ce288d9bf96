from __future__ import annotations

from ..extensions import db
from fieldops.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Billable document for a client (all amounts in cents).

    CONVERSION: source_estimate_id is unique, so an approved estimate yields
    at most one invoice no matter how many times conversion is requested.

    INVARIANT: paid_cents <= total_cents unless the invoice is void.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("source_estimate_id", name="uq_invoices_source_estimate"),
        db.UniqueConstraint("account_id", "invoice_number", name="uq_invoices_account_number"),
        db.CheckConstraint("paid_cents >= 0", name="ck_invoices_paid_non_negative"),
        db.CheckConstraint(
            "paid_cents <= total_cents OR status = 'void'",
            name="ck_invoices_paid_within_total",
        ),
        db.Index("ix_invoices_account_status_due", "account_id", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)
    source_estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id"), nullable=True)

    invoice_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="draft")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    line_items = db.relationship(
        "InvoiceLineItem",
        backref="invoice",
        lazy=True,
        order_by="(InvoiceLineItem.sort_order, InvoiceLineItem.id)",
        cascade="all, delete-orphan",
    )

    @property
    def amount_due_cents(self) -> int:
        return max(0, (self.total_cents or 0) - (self.paid_cents or 0))

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "account_id": self.account_id,
            "client_id": self.client_id,
            "job_id": self.job_id,
            "source_estimate_id": self.source_estimate_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "notes": self.notes,
            "due_date": to_utc_z(self.due_date),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["line_items"] = [line.to_dict() for line in self.line_items]
        return data


class InvoiceLineItem(db.Model):
    """Invoice line; estimate_line_item_id traces lines copied by conversion."""
    __tablename__ = "invoice_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    estimate_line_item_id = db.Column(db.Integer, db.ForeignKey("estimate_line_items.id"), nullable=True)

    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "estimate_line_item_id": self.estimate_line_item_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Money received against an invoice.

    Payments are separate from invoices so an invoice can be settled by
    several partial payments. The invoice's paid_cents is the running sum.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-account document sequences.

    WHY: Prevent race conditions when generating invoice numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("account_id", "document_type", name="uq_doc_sequences_account_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
