# Overview: Service-layer operations for estimates; draft-only line items and totals.

"""
Estimate Line Items and Totals

All amounts are integer cents. A line total is quantity * unit price,
rounded half up to the cent. Estimate totals are always derived:

    subtotal_cents = sum(line.total_cents)
    total_cents    = subtotal_cents + tax_cents

Line items and tax may only change while the estimate is draft. A sent
estimate is what the client saw, so it is frozen (IMMUTABLE_ENTITY).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..models import EstimateLineItem
from ..permissions import Action, EntityType
from .entity_store import StatusConflict, default_store
from .permission_service import require_capability
from .results import RejectReason, WorkflowRejection
from .tenant_service import ensure_same_account
from .workflow_service import run_operation


MAX_DESCRIPTION_LENGTH = 500


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def line_item_total(quantity, unit_price_cents: int) -> int:
    """
    quantity * unit_price_cents rounded half up to a whole cent.

    >>> line_item_total("1.5", 333)
    500
    """
    amount = Decimal(str(quantity)) * Decimal(unit_price_cents)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calc_totals(items, tax_cents: int = 0) -> Totals:
    """Totals for line items given as models or dicts with quantity / unit_price_cents."""
    subtotal = 0
    for item in items:
        if isinstance(item, dict):
            subtotal += line_item_total(item["quantity"], item["unit_price_cents"])
        else:
            subtotal += line_item_total(item.quantity, item.unit_price_cents)
    return Totals(subtotal_cents=subtotal, tax_cents=tax_cents, total_cents=subtotal + tax_cents)


def validate_line_item(description, quantity, unit_price_cents) -> tuple[str, Decimal, int]:
    """
    Normalize one line item's fields.

    Raises:
        WorkflowRejection(VALIDATION_ERROR)
    """
    if not isinstance(description, str) or not description.strip():
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "description is required")
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "description is too long")

    if isinstance(quantity, bool):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "quantity must be a number")
    try:
        qty = Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "quantity must be a number")
    if not qty.is_finite() or qty <= 0:
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "quantity must be positive")
    if qty != qty.quantize(Decimal("0.01")):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "quantity allows at most two decimals")

    if isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "unit_price_cents must be an integer")
    if unit_price_cents < 0:
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "unit_price_cents cannot be negative")

    return description, qty, unit_price_cents


def _validate_tax(tax_cents) -> int:
    if isinstance(tax_cents, bool) or not isinstance(tax_cents, int) or tax_cents < 0:
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "tax_cents must be a non-negative integer")
    return tax_cents


def _new_line(description, quantity, unit_price_cents, sort_order: int) -> EstimateLineItem:
    description, qty, price = validate_line_item(description, quantity, unit_price_cents)
    if isinstance(sort_order, bool) or not isinstance(sort_order, int):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "sort_order must be an integer")
    return EstimateLineItem(
        description=description,
        quantity=qty,
        unit_price_cents=price,
        total_cents=line_item_total(qty, price),
        sort_order=sort_order,
    )


def _mutate_draft(actor, estimate_id: int, mutate, *, store, action: str):
    """
    Shared frame for every draft-only estimate change.

    mutate(estimate) changes line items and returns the tax to apply. Totals
    are then recomputed and written with a status guard, so an estimate sent
    mid-edit rejects the edit instead of changing after the fact.
    """
    def _op():
        estimate = store.load_scoped(EntityType.ESTIMATE, estimate_id, actor.account_id)
        if estimate is None:
            raise WorkflowRejection(RejectReason.NOT_FOUND, f"estimate {estimate_id} not found")
        ensure_same_account(actor, estimate)
        require_capability(actor, Action.CREATE, EntityType.ESTIMATE)
        if estimate.status != "draft":
            raise WorkflowRejection(
                RejectReason.IMMUTABLE_ENTITY,
                f"Estimate is '{estimate.status}'; only draft estimates can be edited",
            )

        before = {
            "subtotal_cents": estimate.subtotal_cents,
            "tax_cents": estimate.tax_cents,
            "total_cents": estimate.total_cents,
        }
        tax_cents = mutate(estimate)
        totals = calc_totals(estimate.line_items, tax_cents)

        try:
            store.write_scoped(EntityType.ESTIMATE, estimate.id, actor.account_id, "draft", totals.to_dict())
        except StatusConflict as exc:
            raise WorkflowRejection(RejectReason.CONCURRENT_MODIFICATION, str(exc))

        store.record_audit(
            account_id=actor.account_id,
            entity_type=EntityType.ESTIMATE.value,
            entity_id=estimate.id,
            action="update",
            actor_id=actor.user_id,
            old_value=before,
            new_value={**totals.to_dict(), "change": action},
        )
        store.commit()
        return estimate, [], False

    return run_operation(
        actor,
        _op,
        store=store,
        resource=f"estimate:{estimate_id}",
        action=action,
    )


def add_line_item(
    actor,
    estimate_id: int,
    description: str,
    quantity,
    unit_price_cents: int,
    sort_order: int | None = None,
    *,
    store=None,
):
    """Append a line to a draft estimate and recompute its totals."""
    store = store or default_store()

    def _mutate(estimate):
        order = sort_order
        if order is None:
            order = max((line.sort_order for line in estimate.line_items), default=-1) + 1
        estimate.line_items.append(_new_line(description, quantity, unit_price_cents, order))
        return estimate.tax_cents

    return _mutate_draft(actor, estimate_id, _mutate, store=store, action="add_line_item")


def replace_line_items(actor, estimate_id: int, items, tax_cents=None, *, store=None):
    """
    Replace all lines of a draft estimate.

    items is a list of {"description", "quantity", "unit_price_cents",
    optional "sort_order"}; list position is the default sort order.
    tax_cents, when given, is applied in the same write; None keeps the
    current tax.
    """
    store = store or default_store()

    def _mutate(estimate):
        new_tax = estimate.tax_cents if tax_cents is None else _validate_tax(tax_cents)
        if not isinstance(items, list):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "items must be a list")
        new_lines = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise WorkflowRejection(RejectReason.VALIDATION_ERROR, f"item {index} must be an object")
            new_lines.append(
                _new_line(
                    item.get("description"),
                    item.get("quantity"),
                    item.get("unit_price_cents"),
                    item.get("sort_order", index),
                )
            )
        # delete-orphan cascade removes the old rows
        estimate.line_items[:] = new_lines
        return new_tax

    return _mutate_draft(actor, estimate_id, _mutate, store=store, action="replace_line_items")


def remove_line_item(actor, estimate_id: int, line_item_id: int, *, store=None):
    store = store or default_store()

    def _mutate(estimate):
        line = next((line for line in estimate.line_items if line.id == line_item_id), None)
        if line is None:
            raise WorkflowRejection(RejectReason.NOT_FOUND, f"line item {line_item_id} not found")
        estimate.line_items.remove(line)
        return estimate.tax_cents

    return _mutate_draft(actor, estimate_id, _mutate, store=store, action="remove_line_item")


def set_tax(actor, estimate_id: int, tax_cents: int, *, store=None):
    store = store or default_store()

    def _mutate(estimate):
        return _validate_tax(tax_cents)

    return _mutate_draft(actor, estimate_id, _mutate, store=store, action="set_tax")
