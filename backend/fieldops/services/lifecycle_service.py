# Overview: Status graph registry for jobs, visits, estimates and invoices.

"""
Entity Status Graphs

================================================================================
PURPOSE: The sole gate against illegal business states
================================================================================

Each workflow-governed entity has a fixed directed graph:
node = status value, edge = allowed transition. A status with no outgoing
edges is terminal.

JOB:
    draft -> quoted -> scheduled -> in_progress -> completed -> invoiced
    draft / quoted / scheduled / in_progress -> cancelled

VISIT:
    scheduled -> arrived -> in_progress -> completed
    scheduled / arrived / in_progress -> cancelled

ESTIMATE:
    draft -> sent -> approved | declined | expired
    (no edge back to draft: sent estimates are immutable history)

INVOICE:
    draft -> sent -> partial | paid | void
    partial -> paid | void

RULES (NON-NEGOTIABLE):
1. No self loops; a no-op "transition" is not a transition
2. Terminal states have no outgoing edges
3. Invoice "overdue" is a derived label (past due date), never a target

Lookups are pure table reads. Targets are listed in display order so the
UI can render action buttons consistently.
================================================================================
"""

from __future__ import annotations

from ..permissions import EntityType, coerce_entity_type


JOB_STATUSES = ("draft", "quoted", "scheduled", "in_progress", "completed", "invoiced", "cancelled")
VISIT_STATUSES = ("scheduled", "arrived", "in_progress", "completed", "cancelled")
ESTIMATE_STATUSES = ("draft", "sent", "approved", "declined", "expired")
INVOICE_STATUSES = ("draft", "sent", "partial", "paid", "overdue", "void")


JOB_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("quoted", "cancelled"),
    "quoted": ("scheduled", "cancelled"),
    "scheduled": ("in_progress", "cancelled"),
    "in_progress": ("completed", "cancelled"),
    "completed": ("invoiced",),
    "invoiced": (),
    "cancelled": (),
}

VISIT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "scheduled": ("arrived", "cancelled"),
    "arrived": ("in_progress", "cancelled"),
    "in_progress": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

ESTIMATE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("sent",),
    "sent": ("approved", "declined", "expired"),
    "approved": (),
    "declined": (),
    "expired": (),
}

INVOICE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("sent",),
    "sent": ("partial", "paid", "void"),
    "partial": ("paid", "void"),
    "paid": (),
    "void": (),
    # Derived label only; see is_overdue in payment_service
    "overdue": (),
}


STATUS_GRAPHS: dict[EntityType, dict[str, tuple[str, ...]]] = {
    EntityType.JOB: JOB_TRANSITIONS,
    EntityType.VISIT: VISIT_TRANSITIONS,
    EntityType.ESTIMATE: ESTIMATE_TRANSITIONS,
    EntityType.INVOICE: INVOICE_TRANSITIONS,
}

VALID_STATUSES: dict[EntityType, tuple[str, ...]] = {
    EntityType.JOB: JOB_STATUSES,
    EntityType.VISIT: VISIT_STATUSES,
    EntityType.ESTIMATE: ESTIMATE_STATUSES,
    EntityType.INVOICE: INVOICE_STATUSES,
}


class LifecycleError(ValueError):
    """Raised when a status value is not part of an entity's lifecycle."""
    pass


def validate_status(entity_type, status: str) -> None:
    """
    Validate that a status value belongs to the entity's lifecycle.

    Raises:
        LifecycleError: If status is not one of VALID_STATUSES[entity_type]
    """
    entity_type = coerce_entity_type(entity_type)
    valid = VALID_STATUSES[entity_type]
    if status not in valid:
        raise LifecycleError(
            f"Invalid {entity_type.value} status '{status}'. Must be one of: {', '.join(valid)}"
        )


def allowed_transitions(entity_type, current_status: str) -> tuple[str, ...]:
    """
    Ordered targets reachable from current_status.

    Unknown statuses have no outgoing edges; an empty tuple means terminal.
    """
    graph = STATUS_GRAPHS[coerce_entity_type(entity_type)]
    return graph.get(current_status, ())


def allowed_targets(entity_type, current_status: str) -> frozenset[str]:
    return frozenset(allowed_transitions(entity_type, current_status))


def can_transition(entity_type, from_status: str, to_status: str) -> bool:
    return to_status in allowed_targets(entity_type, from_status)


def is_terminal(entity_type, status: str) -> bool:
    return not allowed_transitions(entity_type, status)
