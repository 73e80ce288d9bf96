# Overview: Service-layer operations for visits; technician assignment and notes.

from __future__ import annotations

from ..permissions import Action, EntityType
from .entity_store import StatusConflict, default_store
from .lifecycle_service import is_terminal
from .permission_service import require_capability
from .results import RejectReason, WorkflowRejection
from .tenant_service import ensure_same_account
from .workflow_service import run_operation


MAX_NOTES_LENGTH = 10000


def _load_visit(actor, visit_id: int, store):
    visit = store.load_scoped(EntityType.VISIT, visit_id, actor.account_id)
    if visit is None:
        raise WorkflowRejection(RejectReason.NOT_FOUND, f"visit {visit_id} not found")
    ensure_same_account(actor, visit)
    return visit


def _write_visit(actor, visit, patch: dict, store) -> None:
    old_value = {key: getattr(visit, key) for key in patch}
    try:
        # Guarded on the observed status
        store.write_scoped(EntityType.VISIT, visit.id, actor.account_id, visit.status, patch)
    except StatusConflict as exc:
        raise WorkflowRejection(RejectReason.CONCURRENT_MODIFICATION, str(exc))
    store.record_audit(
        account_id=actor.account_id,
        entity_type=EntityType.VISIT.value,
        entity_id=visit.id,
        action="update",
        actor_id=actor.user_id,
        old_value=old_value,
        new_value=patch,
    )


def assign_visit(actor, visit_id: int, user_id: int | None, *, store=None):
    """
    Assign (or with user_id=None, unassign) the technician for a visit.

    Completed and cancelled visits keep their assignment (IMMUTABLE_ENTITY).
    The user is not looked up: identity lives outside the core.
    """
    store = store or default_store()

    def _op():
        if user_id is not None and (isinstance(user_id, bool) or not isinstance(user_id, int)):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "user_id must be an integer or null")
        visit = _load_visit(actor, visit_id, store)
        require_capability(actor, Action.ASSIGN, EntityType.VISIT)
        if is_terminal(EntityType.VISIT, visit.status):
            raise WorkflowRejection(
                RejectReason.IMMUTABLE_ENTITY,
                f"Cannot reassign a '{visit.status}' visit",
            )
        _write_visit(actor, visit, {"assigned_user_id": user_id}, store)
        store.commit()
        return visit, [], False

    return run_operation(actor, _op, store=store, resource=f"visit:{visit_id}", action="assign")


def update_visit_notes(actor, visit_id: int, tech_notes: str | None, *, store=None):
    """Replace a visit's technician notes. Techs may only annotate their own visits."""
    store = store or default_store()

    def _op():
        if tech_notes is not None and not isinstance(tech_notes, str):
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "tech_notes must be a string")
        if tech_notes is not None and len(tech_notes) > MAX_NOTES_LENGTH:
            raise WorkflowRejection(RejectReason.VALIDATION_ERROR, "tech_notes is too long")
        visit = _load_visit(actor, visit_id, store)
        require_capability(actor, Action.UPDATE_NOTES, EntityType.VISIT)
        if actor.is_tech and visit.assigned_user_id != actor.user_id:
            raise WorkflowRejection(RejectReason.NOT_ASSIGNED, "Visit is not assigned to you")
        _write_visit(actor, visit, {"tech_notes": tech_notes}, store)
        store.commit()
        return visit, [], False

    return run_operation(actor, _op, store=store, resource=f"visit:{visit_id}", action="update_notes")
