# Overview: Workflow engine; validates, applies side effects, persists and emits for status transitions.

"""
Workflow Engine

================================================================================
FLOW (every transition, every entity type)
================================================================================

1. Load the entity scoped to actor.account_id          (absent -> NOT_FOUND)
2. Authorize: tenant, role, assignment, graph          (deny reason unchanged)
3. Build the side-effect patch for (entity type, target)
4. Conditional write WHERE id/account_id/status = observed, plus audit row
                                                 (0 rows -> CONCURRENT_MODIFICATION)
5. Commit, then emit automation events (best effort)

A rejection at any step rolls the session back; the entity is left exactly
as it was. Business rejections come back as WorkflowResult values, never as
exceptions. Storage failures come back as STORAGE_ERROR.

The engine reads the status it authorized against and writes only if that
status is still current, so two racing requests cannot both succeed: the
loser sees CONCURRENT_MODIFICATION and may reload and retry.
================================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..permissions import EntityType, coerce_entity_type
from fieldops.time_utils import utcnow
from . import automation_service, lifecycle_service
from .authorization_service import authorize
from .entity_store import StatusConflict, UniqueViolation, default_store
from .permission_service import log_security_event
from .results import (
    SECURITY_REASONS,
    RejectReason,
    TriggeredEvent,
    WorkflowRejection,
    WorkflowResult,
)


def allowed_transitions(entity_type, current_status: str) -> tuple[str, ...]:
    """Graph lookup exposed for UI rendering (no authorization applied)."""
    return lifecycle_service.allowed_transitions(entity_type, current_status)


def transition(
    actor,
    entity_type,
    entity_id: int,
    target_status: str,
    payload: dict | None = None,
    *,
    store=None,
    sink=None,
    now: datetime | None = None,
) -> WorkflowResult:
    """
    Move an entity to target_status on behalf of actor.

    Args:
        actor: Actor (user_id, account_id, role)
        entity_type: "job" | "visit" | "estimate" | "invoice" (or EntityType)
        entity_id: ID of the entity within actor's account
        target_status: Desired status
        payload: Optional extras (visit tech_notes, invoice paid_cents)
        store: EntityStore (defaults to SqlEntityStore)
        sink: Automation sink with emit(event_type, payload)
        now: Clock override for timestamp side effects

    Returns:
        WorkflowResult with the updated entity, or the reject reason.
    """
    store = store or default_store()

    def _op():
        try:
            kind = coerce_entity_type(entity_type)
        except ValueError as exc:
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, str(exc))
        if payload is not None and not isinstance(payload, dict):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "payload must be an object")

        entity = store.load_scoped(kind, entity_id, actor.account_id)
        if entity is None:
            raise WorkflowRejection(RejectReason.NOT_FOUND, f"{kind.value} {entity_id} not found")

        events = apply_transition(actor, kind, entity, target_status, payload or {}, store=store, now=now)
        store.commit()
        return entity, events, False

    return run_operation(
        actor,
        _op,
        store=store,
        sink=sink,
        resource=f"{getattr(entity_type, 'value', entity_type)}:{entity_id}",
        action=f"transition:{target_status}",
    )


def apply_transition(
    actor,
    entity_type: EntityType,
    entity,
    target_status: str,
    payload: dict,
    *,
    store,
    now: datetime | None = None,
    guard: dict | None = None,
) -> list[TriggeredEvent]:
    """
    Authorize and write one transition inside the caller's transaction.

    Does not commit. Raises WorkflowRejection on any rejection. Returns the
    automation events to emit once the caller has committed. guard adds
    extra column conditions to the status-guarded write.
    """
    decision = authorize(actor, entity_type, entity, target_status)
    if not decision.allowed:
        raise WorkflowRejection(decision.reason, decision.message)

    now = now or utcnow()
    observed_status = entity.status
    patch = build_side_effects(entity_type, entity, target_status, payload, now)
    old_value = {key: getattr(entity, key) for key in patch}
    patch["status"] = target_status
    old_value["status"] = observed_status

    try:
        store.write_scoped(entity_type, entity.id, actor.account_id, observed_status, patch, guard=guard)
    except StatusConflict as exc:
        raise WorkflowRejection(RejectReason.CONCURRENT_MODIFICATION, str(exc))

    store.record_audit(
        account_id=actor.account_id,
        entity_type=entity_type.value,
        entity_id=entity.id,
        action="update",
        actor_id=actor.user_id,
        old_value=old_value,
        new_value=patch,
    )

    event_type = automation_service.transition_event_type(entity_type.value, target_status)
    if event_type is None:
        return []
    return [
        TriggeredEvent(
            event_type=event_type,
            payload=_event_payload(actor, entity_type, entity, observed_status, target_status),
        )
    ]


# =============================================================================
# Side effects
# =============================================================================

def build_side_effects(entity_type: EntityType, entity, target_status: str, payload: dict, now: datetime) -> dict:
    """Field changes (besides status) that accompany a transition."""
    builder = _SIDE_EFFECTS.get(entity_type)
    return builder(entity, target_status, payload, now) if builder else {}


def _visit_side_effects(visit, target_status: str, payload: dict, now: datetime) -> dict:
    patch: dict[str, Any] = {}
    if target_status == "arrived":
        patch["arrived_at"] = now
    elif target_status == "completed":
        patch["completed_at"] = now

    if "tech_notes" in payload:
        notes = payload["tech_notes"]
        if notes is not None and not isinstance(notes, str):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "tech_notes must be a string")
        patch["tech_notes"] = notes
    return patch


def _estimate_side_effects(estimate, target_status: str, payload: dict, now: datetime) -> dict:
    # approved is status only: conversion to an invoice is a separate call
    if target_status == "sent":
        return {"sent_at": now}
    return {}


def _invoice_side_effects(invoice, target_status: str, payload: dict, now: datetime) -> dict:
    if target_status == "sent":
        patch = {"sent_at": now}
        if invoice.due_date is None:
            patch["due_date"] = now + timedelta(days=current_app.config["INVOICE_PAYMENT_TERMS_DAYS"])
        return patch

    if target_status not in ("paid", "partial"):
        return {}

    paid_cents = payload.get("paid_cents", invoice.paid_cents)
    if isinstance(paid_cents, bool) or not isinstance(paid_cents, int):
        raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "paid_cents must be an integer")
    if paid_cents < 0:
        raise WorkflowRejection(RejectReason.INVALID_PAYMENT, "paid_cents cannot be negative")

    total_cents = invoice.total_cents
    if target_status == "paid":
        if paid_cents < total_cents:
            raise WorkflowRejection(
                RejectReason.INCOMPLETE_PAYMENT,
                f"Invoice total is {total_cents} cents but only {paid_cents} paid",
            )
        if paid_cents > total_cents:
            raise WorkflowRejection(
                RejectReason.INVALID_PAYMENT,
                f"paid_cents {paid_cents} exceeds invoice total {total_cents}",
            )
        return {"paid_cents": paid_cents, "paid_at": now}

    if paid_cents == 0:
        raise WorkflowRejection(RejectReason.INCOMPLETE_PAYMENT, "A partial invoice needs a payment")
    if paid_cents >= total_cents:
        raise WorkflowRejection(
            RejectReason.INVALID_PAYMENT,
            "paid_cents covers the full total; transition to paid instead",
        )
    return {"paid_cents": paid_cents}


_SIDE_EFFECTS: dict[EntityType, Callable[..., dict]] = {
    EntityType.VISIT: _visit_side_effects,
    EntityType.ESTIMATE: _estimate_side_effects,
    EntityType.INVOICE: _invoice_side_effects,
    # Job -> invoiced is a plain status change; invoice existence is not checked
}


def _event_payload(actor, entity_type: EntityType, entity, from_status: str, to_status: str) -> dict:
    payload = {
        "account_id": actor.account_id,
        "entity_type": entity_type.value,
        "entity_id": entity.id,
        "from_status": from_status,
        "to_status": to_status,
        "actor_id": actor.user_id,
    }
    if entity_type is EntityType.VISIT:
        payload["job_id"] = entity.job_id
        payload["assigned_user_id"] = entity.assigned_user_id
    elif entity_type is EntityType.ESTIMATE:
        payload["client_id"] = entity.client_id
    elif entity_type is EntityType.INVOICE:
        payload["client_id"] = entity.client_id
        payload["total_cents"] = entity.total_cents
    elif entity_type is EntityType.JOB:
        payload["client_id"] = entity.client_id
    return payload


# =============================================================================
# Operation runner
# =============================================================================

def run_operation(
    actor,
    operation: Callable[[], tuple[Any, list[TriggeredEvent], bool]],
    *,
    store,
    sink=None,
    resource: str | None = None,
    action: str | None = None,
) -> WorkflowResult:
    """
    Run one core operation and turn its outcome into a WorkflowResult.

    operation() does its reads and writes, commits, and returns
    (value, events, created). On WorkflowRejection or a storage error the
    session is rolled back here; events are emitted only after a commit.
    """
    try:
        value, events, created = operation()
    except WorkflowRejection as rejection:
        store.rollback()
        _report_rejection(actor, rejection, resource, action)
        return WorkflowResult.from_rejection(rejection)
    except (SQLAlchemyError, UniqueViolation):
        store.rollback()
        current_app.logger.exception("Storage error during %s on %s", action, resource)
        return WorkflowResult.rejected(RejectReason.STORAGE_ERROR, "Storage error")

    automation_service.emit_events(events, sink)
    return WorkflowResult.success(value, events=events, created=created)


def _report_rejection(actor, rejection: WorkflowRejection, resource: str | None, action: str | None) -> None:
    reason = rejection.reason
    if reason is RejectReason.ILLEGAL_TRANSITION:
        current_app.logger.warning("Illegal transition on %s: %s", resource, rejection)
    elif reason is RejectReason.CONCURRENT_MODIFICATION:
        current_app.logger.info("Concurrent modification on %s: %s", resource, rejection)
    else:
        current_app.logger.debug("Rejected %s on %s: %s", action, resource, reason.value)

    if reason not in SECURITY_REASONS:
        return
    try:
        log_security_event(
            user_id=actor.user_id,
            event_type=reason.value,
            success=False,
            resource=resource,
            action=action,
            reason=str(rejection),
            account_id=actor.account_id,
        )
    except SQLAlchemyError:
        # The denial stands even without its audit row
        db.session.rollback()
        current_app.logger.exception("Could not record security event for %s", resource)
