# Overview: Service-layer operations for payment; records payments and drives invoice payment status.

"""
Invoice Payments

WHY: An invoice is settled by one or more payments. Recording a payment is
the everyday way an invoice moves to partial or paid, and it goes through the
same engine step as a manual transition, so the same guards apply.

DESIGN PRINCIPLES:
- Payments are separate rows (many-to-one with invoices)
- invoice.paid_cents is the running sum; it never exceeds total_cents
- No overpayment: an amount above the balance due is rejected
- Payment insert, invoice status write and audit rows share one transaction
- "overdue" is a display label (sent/partial past due date), never stored
"""

from __future__ import annotations

from datetime import datetime

from ..models import Payment
from ..permissions import Action, EntityType
from fieldops.time_utils import utcnow
from .entity_store import StatusConflict, default_store
from .permission_service import require_capability
from .results import RejectReason, WorkflowRejection
from .tenant_service import ensure_same_account
from .workflow_service import apply_transition, run_operation


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CHECK = "check"
METHOD_CARD = "card"
METHOD_TRANSFER = "transfer"
METHOD_OTHER = "other"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_CHECK,
    METHOD_CARD,
    METHOD_TRANSFER,
    METHOD_OTHER,
]

PAYABLE_STATUSES = ("sent", "partial")
OVERDUE_ELIGIBLE_STATUSES = ("sent", "partial")


# =============================================================================
# PURE HELPERS
# =============================================================================

def amount_due_cents(total_cents: int, paid_cents: int) -> int:
    return max(0, total_cents - paid_cents)


def validate_payment_amount(amount_cents, total_cents: int, paid_cents: int) -> str | None:
    """
    Return an error message for a bad payment amount, or None when valid.

    >>> validate_payment_amount(5000, 10000, 8000)
    'Payment exceeds balance due (2000 cents)'
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        return "Payment amount must be an integer number of cents"
    if amount_cents <= 0:
        return "Payment amount must be positive"
    due = amount_due_cents(total_cents, paid_cents)
    if due == 0:
        return "Invoice is already fully paid"
    if amount_cents > due:
        return f"Payment exceeds balance due ({due} cents)"
    return None


def derive_invoice_status(total_cents: int, paid_cents: int) -> str:
    """Payment status implied by the amounts: sent (nothing paid), partial or paid."""
    if paid_cents <= 0:
        return "sent"
    if paid_cents >= total_cents:
        return "paid"
    return "partial"


def is_overdue(invoice, as_of: datetime | None = None) -> bool:
    """Sent or partially paid with a due date in the past."""
    if invoice.status not in OVERDUE_ELIGIBLE_STATUSES or invoice.due_date is None:
        return False
    return invoice.due_date < (as_of or utcnow())


def display_status(invoice, as_of: datetime | None = None) -> str:
    return "overdue" if is_overdue(invoice, as_of) else invoice.status


# =============================================================================
# PAYMENT RECORDING
# =============================================================================

def record_payment(
    actor,
    invoice_id: int,
    amount_cents: int,
    method: str,
    received_at: datetime | None = None,
    notes: str | None = None,
    *,
    store=None,
    sink=None,
    now: datetime | None = None,
):
    """
    Record a payment against a sent or partial invoice.

    The invoice moves to partial or paid through the engine's transition step
    (same authorizer, same optimistic status guard). A further partial payment
    on a partial invoice only raises paid_cents.

    Returns:
        WorkflowResult whose value is the Payment.

    Rejections:
        VALIDATION_ERROR: Unknown method or bad received_at
        NOT_FOUND / CROSS_TENANT / FORBIDDEN_ROLE
        ILLEGAL_TRANSITION: Invoice is draft or void
        INVALID_PAYMENT: Non-positive amount, overpayment, already paid
        CONCURRENT_MODIFICATION: Invoice changed while recording
    """
    store = store or default_store()

    def _op():
        if method not in VALID_METHODS:
            raise WorkflowRejection(
                RejectReason.VALIDATION_ERROR,
                f"Invalid payment method: {method}. Must be one of {VALID_METHODS}",
            )
        if received_at is not None and not isinstance(received_at, datetime):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "received_at must be a datetime")

        invoice = store.load_scoped(EntityType.INVOICE, invoice_id, actor.account_id)
        if invoice is None:
            raise WorkflowRejection(RejectReason.NOT_FOUND, f"invoice {invoice_id} not found")
        ensure_same_account(actor, invoice)
        require_capability(actor, Action.TRANSITION, EntityType.INVOICE)

        if invoice.status == "paid":
            raise WorkflowRejection(RejectReason.INVALID_PAYMENT, "Invoice is already fully paid")
        if invoice.status not in PAYABLE_STATUSES:
            raise WorkflowRejection(
                RejectReason.ILLEGAL_TRANSITION,
                f"Cannot record a payment on a '{invoice.status}' invoice",
            )

        error = validate_payment_amount(amount_cents, invoice.total_cents, invoice.paid_cents)
        if error:
            raise WorkflowRejection(RejectReason.INVALID_PAYMENT, error)

        current = now or utcnow()
        new_paid = invoice.paid_cents + amount_cents
        target = derive_invoice_status(invoice.total_cents, new_paid)

        payment = Payment(
            account_id=actor.account_id,
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            method=method,
            received_at=received_at or current,
            notes=notes,
            created_by=actor.user_id,
        )
        store.insert_scoped("payment", payment)
        store.record_audit(
            account_id=actor.account_id,
            entity_type="payment",
            entity_id=payment.id,
            action="insert",
            actor_id=actor.user_id,
            new_value={"invoice_id": invoice.id, "amount_cents": amount_cents, "method": method},
        )

        if target == invoice.status:
            events = _raise_paid_amount(actor, invoice, new_paid, store)
        else:
            events = apply_transition(
                actor,
                EntityType.INVOICE,
                invoice,
                target,
                {"paid_cents": new_paid},
                store=store,
                now=current,
                guard={"paid_cents": invoice.paid_cents},
            )

        store.commit()
        return payment, events, True

    return run_operation(
        actor,
        _op,
        store=store,
        sink=sink,
        resource=f"invoice:{invoice_id}",
        action="record_payment",
    )


def _raise_paid_amount(actor, invoice, new_paid: int, store) -> list:
    """partial -> partial: no transition, only paid_cents grows."""
    old_paid = invoice.paid_cents
    try:
        store.write_scoped(
            EntityType.INVOICE,
            invoice.id,
            actor.account_id,
            invoice.status,
            {"paid_cents": new_paid},
            guard={"paid_cents": old_paid},
        )
    except StatusConflict as exc:
        raise WorkflowRejection(RejectReason.CONCURRENT_MODIFICATION, str(exc))
    store.record_audit(
        account_id=actor.account_id,
        entity_type=EntityType.INVOICE.value,
        entity_id=invoice.id,
        action="update",
        actor_id=actor.user_id,
        old_value={"paid_cents": old_paid},
        new_value={"paid_cents": new_paid},
    )
    return []
