# Overview: Flask API routes for workflow operations; parses input and returns JSON responses.

# backend/fieldops/routes/workflow.py
"""
Workflow API Routes

Thin HTTP surface over the workflow core. Every route:
- takes the actor from g.actor (set by @require_actor), never from the body
- calls exactly one core operation
- maps the WorkflowResult to JSON and a status code

REJECT REASON -> HTTP STATUS:
- CROSS_TENANT, NOT_FOUND                  -> 404 (foreign rows look absent)
- FORBIDDEN_ROLE, NOT_ASSIGNED             -> 403
- ILLEGAL_TRANSITION                       -> 409
- CONCURRENT_MODIFICATION                  -> 409, "retry": true
- INCOMPLETE_PAYMENT, INVALID_PAYMENT,
  ESTIMATE_NOT_APPROVED, IMMUTABLE_ENTITY  -> 422
- VALIDATION_ERROR                         -> 400
- STORAGE_ERROR                            -> 500
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..permissions import EntityType, capabilities_for, coerce_entity_type
from ..services import (
    conversion_service,
    estimate_service,
    lifecycle_service,
    payment_service,
    visit_service,
    workflow_service,
)
from ..services.concurrency import retry_on_conflict
from ..services.results import RejectReason
from fieldops.time_utils import parse_iso_datetime


workflow_bp = Blueprint("workflow", __name__, url_prefix="/api")


STATUS_BY_REASON = {
    RejectReason.CROSS_TENANT: 404,
    RejectReason.NOT_FOUND: 404,
    RejectReason.FORBIDDEN_ROLE: 403,
    RejectReason.NOT_ASSIGNED: 403,
    RejectReason.ILLEGAL_TRANSITION: 409,
    RejectReason.CONCURRENT_MODIFICATION: 409,
    RejectReason.INCOMPLETE_PAYMENT: 422,
    RejectReason.INVALID_PAYMENT: 422,
    RejectReason.ESTIMATE_NOT_APPROVED: 422,
    RejectReason.IMMUTABLE_ENTITY: 422,
    RejectReason.VALIDATION_ERROR: 400,
    RejectReason.STORAGE_ERROR: 500,
}

# URL segment -> entity type
ENTITY_SEGMENTS = {
    "jobs": EntityType.JOB,
    "visits": EntityType.VISIT,
    "estimates": EntityType.ESTIMATE,
    "invoices": EntityType.INVOICE,
}


def _rejection_response(result):
    # Cross-tenant rows are reported exactly like missing ones
    if result.reason is RejectReason.CROSS_TENANT:
        body = {"error": "Not found", "reason": RejectReason.NOT_FOUND.value}
    else:
        body = {"error": result.message, "reason": result.reason.value}
    if result.reason is RejectReason.CONCURRENT_MODIFICATION:
        body["retry"] = True
    return jsonify(body), STATUS_BY_REASON[result.reason]


def _json_body() -> dict | None:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _bad_request(message: str):
    return jsonify({"error": message, "reason": RejectReason.VALIDATION_ERROR.value}), 400


# =============================================================================
# TRANSITIONS
# =============================================================================

@workflow_bp.post("/<string:entity>/<int:entity_id>/transition")
@require_actor
def transition_route(entity: str, entity_id: int):
    """
    Move an entity to a new status.

    Request body:
    {
        "status": "arrived",
        "tech_notes": "...",   (visits, optional)
        "paid_cents": 60000    (invoices -> paid/partial, optional)
    }

    Response:
        {"entity": {...}, "events": ["visit_completed"]}
    """
    entity_type = ENTITY_SEGMENTS.get(entity)
    if entity_type is None:
        return jsonify({"error": "Not found", "reason": RejectReason.NOT_FOUND.value}), 404

    data = _json_body()
    if data is None:
        return _bad_request("JSON object body is required")
    target = data.pop("status", None)
    if not isinstance(target, str) or not target:
        return _bad_request("status is required")

    result = retry_on_conflict(
        lambda: workflow_service.transition(g.actor, entity_type, entity_id, target, data)
    )
    if not result.ok:
        return _rejection_response(result)

    return jsonify({
        "entity": result.value.to_dict(),
        "events": [event.event_type for event in result.events],
    }), 200


# =============================================================================
# ESTIMATES
# =============================================================================

@workflow_bp.post("/estimates/<int:estimate_id>/convert")
@require_actor
def convert_estimate_route(estimate_id: int):
    """
    Convert an approved estimate to an invoice.

    Idempotent: 201 with the new invoice on first call, 200 with the same
    invoice on every later call.
    """
    result = conversion_service.convert_to_invoice(g.actor, estimate_id)
    if not result.ok:
        return _rejection_response(result)

    return jsonify({
        "invoice": result.value.to_dict(include_lines=True),
        "created": result.created,
    }), 201 if result.created else 200


@workflow_bp.put("/estimates/<int:estimate_id>/line-items")
@require_actor
def replace_line_items_route(estimate_id: int):
    """
    Replace a draft estimate's line items (and optionally its tax).

    Request body:
    {
        "items": [{"description": "Labor", "quantity": "2.5", "unit_price_cents": 9000}],
        "tax_cents": 1500   (optional)
    }
    """
    data = _json_body()
    if data is None:
        return _bad_request("JSON object body is required")

    result = estimate_service.replace_line_items(
        g.actor, estimate_id, data.get("items"), data.get("tax_cents")
    )
    if not result.ok:
        return _rejection_response(result)

    return jsonify({"estimate": result.value.to_dict(include_lines=True)}), 200


# =============================================================================
# INVOICES
# =============================================================================

@workflow_bp.post("/invoices/<int:invoice_id>/payments")
@require_actor
def record_payment_route(invoice_id: int):
    """
    Record a payment against a sent or partial invoice.

    Request body:
    {
        "amount_cents": 30000,
        "method": "card",
        "received_at": "2024-05-01T10:00:00Z",  (optional)
        "notes": "..."                          (optional)
    }
    """
    data = _json_body()
    if data is None:
        return _bad_request("JSON object body is required")

    received_at = None
    if data.get("received_at") is not None:
        try:
            received_at = parse_iso_datetime(str(data["received_at"]))
        except ValueError:
            return _bad_request("received_at must be an ISO 8601 datetime")

    result = retry_on_conflict(
        lambda: payment_service.record_payment(
            g.actor,
            invoice_id,
            data.get("amount_cents"),
            data.get("method"),
            received_at=received_at,
            notes=data.get("notes"),
        )
    )
    if not result.ok:
        return _rejection_response(result)

    payment = result.value
    return jsonify({
        "payment": payment.to_dict(),
        "invoice": payment.invoice.to_dict(),
    }), 201


# =============================================================================
# VISITS
# =============================================================================

@workflow_bp.patch("/visits/<int:visit_id>/notes")
@require_actor
def update_visit_notes_route(visit_id: int):
    data = _json_body()
    if data is None or "tech_notes" not in data:
        return _bad_request("tech_notes is required")

    result = visit_service.update_visit_notes(g.actor, visit_id, data["tech_notes"])
    if not result.ok:
        return _rejection_response(result)
    return jsonify({"visit": result.value.to_dict()}), 200


@workflow_bp.post("/visits/<int:visit_id>/assign")
@require_actor
def assign_visit_route(visit_id: int):
    """Request body: {"user_id": 12} (null unassigns)."""
    data = _json_body()
    if data is None or "user_id" not in data:
        return _bad_request("user_id is required")

    result = visit_service.assign_visit(g.actor, visit_id, data["user_id"])
    if not result.ok:
        return _rejection_response(result)
    return jsonify({"visit": result.value.to_dict()}), 200


# =============================================================================
# INTROSPECTION (UI rendering)
# =============================================================================

@workflow_bp.get("/workflow/<string:entity>/transitions")
@require_actor
def allowed_transitions_route(entity: str):
    """
    Graph targets from a status, for rendering action buttons.

    Query: ?from=<status>. Role is not applied; pair with /capabilities.
    """
    try:
        entity_type = coerce_entity_type(entity)
    except ValueError as e:
        return jsonify({"error": str(e), "reason": RejectReason.NOT_FOUND.value}), 404

    from_status = request.args.get("from")
    if not from_status:
        return _bad_request("from is required")
    try:
        lifecycle_service.validate_status(entity_type, from_status)
    except lifecycle_service.LifecycleError as e:
        return _bad_request(str(e))

    return jsonify({
        "entity_type": entity_type.value,
        "from": from_status,
        "targets": list(workflow_service.allowed_transitions(entity_type, from_status)),
    }), 200


@workflow_bp.get("/workflow/capabilities")
@require_actor
def capabilities_route():
    return jsonify({
        "role": g.actor.role.value,
        "capabilities": capabilities_for(g.actor.role),
    }), 200
