# Overview: Estimate -> Invoice conversion pipeline (idempotent).

"""
Estimate to Invoice Conversion

An approved estimate becomes exactly one draft invoice, no matter how many
times (or how concurrently) conversion is requested.

IDEMPOTENCY:
- Pre-check: an invoice with source_estimate_id == estimate.id is returned as is
- Backstop: invoices.source_estimate_id is UNIQUE; if two requests pass the
  pre-check together, the loser's insert fails and it re-fetches the winner's row

The estimate itself is never modified by conversion.
"""

from __future__ import annotations

from ..models import Invoice, InvoiceLineItem
from ..permissions import Action, EntityType
from . import automation_service
from .entity_store import UniqueViolation, default_store
from .permission_service import require_capability
from .results import RejectReason, TriggeredEvent, WorkflowRejection
from .tenant_service import ensure_same_account
from .workflow_service import run_operation


def convert_to_invoice(actor, estimate_id: int, *, store=None, sink=None):
    """
    Create (or return) the invoice for an approved estimate.

    Returns:
        WorkflowResult: value is the Invoice; created is True only for the
        call that inserted it.

    Rejections, in check order:
        NOT_FOUND, CROSS_TENANT, FORBIDDEN_ROLE (cannot transition invoices),
        ESTIMATE_NOT_APPROVED
    """
    store = store or default_store()

    def _op():
        estimate = store.load_scoped(EntityType.ESTIMATE, estimate_id, actor.account_id)
        if estimate is None:
            raise WorkflowRejection(RejectReason.NOT_FOUND, f"estimate {estimate_id} not found")
        ensure_same_account(actor, estimate)
        require_capability(actor, Action.TRANSITION, EntityType.INVOICE)

        if estimate.status != "approved":
            raise WorkflowRejection(
                RejectReason.ESTIMATE_NOT_APPROVED,
                f"Estimate is '{estimate.status}'; only approved estimates can be invoiced",
            )

        existing = store.find_invoice_for_estimate(estimate.id, actor.account_id)
        if existing is not None:
            return existing, [], False

        invoice = build_invoice(estimate, invoice_number=store.next_invoice_number(actor.account_id), created_by=actor.user_id)
        try:
            store.insert_scoped(EntityType.INVOICE, invoice)
        except UniqueViolation:
            existing = store.find_invoice_for_estimate(estimate_id, actor.account_id)
            if existing is None:
                # Collided on something other than the source estimate
                raise WorkflowRejection(RejectReason.STORAGE_ERROR, "Could not allocate invoice")
            return existing, [], False

        store.record_audit(
            account_id=actor.account_id,
            entity_type=EntityType.INVOICE.value,
            entity_id=invoice.id,
            action="insert",
            actor_id=actor.user_id,
            new_value={
                "source_estimate_id": invoice.source_estimate_id,
                "invoice_number": invoice.invoice_number,
                "status": invoice.status,
                "total_cents": invoice.total_cents,
            },
        )
        store.commit()

        event = TriggeredEvent(
            event_type=automation_service.INVOICE_CREATED_FROM_ESTIMATE,
            payload={
                "account_id": actor.account_id,
                "entity_type": EntityType.INVOICE.value,
                "entity_id": invoice.id,
                "estimate_id": estimate_id,
                "client_id": invoice.client_id,
                "invoice_number": invoice.invoice_number,
                "total_cents": invoice.total_cents,
                "actor_id": actor.user_id,
            },
        )
        return invoice, [event], True

    return run_operation(
        actor,
        _op,
        store=store,
        sink=sink,
        resource=f"estimate:{estimate_id}",
        action="convert",
    )


def build_invoice(estimate, *, invoice_number: str, created_by: int | None = None) -> Invoice:
    """Draft invoice copying the estimate's lines and totals verbatim."""
    invoice = Invoice(
        account_id=estimate.account_id,
        client_id=estimate.client_id,
        job_id=estimate.job_id,
        source_estimate_id=estimate.id,
        invoice_number=invoice_number,
        status="draft",
        subtotal_cents=estimate.subtotal_cents,
        tax_cents=estimate.tax_cents,
        total_cents=estimate.total_cents,
        paid_cents=0,
        notes=estimate.notes,
        created_by=created_by,
    )
    for line in estimate.line_items:
        invoice.line_items.append(
            InvoiceLineItem(
                estimate_line_item_id=line.id,
                description=line.description,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_cents=line.total_cents,
                sort_order=line.sort_order,
            )
        )
    return invoice
