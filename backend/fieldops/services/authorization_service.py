# Overview: Transition authorizer; combines tenant, role, ownership and graph checks.

from __future__ import annotations

from ..permissions import Action, EntityType, can, coerce_entity_type
from .lifecycle_service import allowed_targets
from .results import Decision, RejectReason


def authorize(actor, entity_type, entity, target_status: str) -> Decision:
    """
    Decide whether actor may move entity to target_status.

    Checks run in a fixed order and the first failure wins:
        1. entity.account_id != actor.account_id  -> CROSS_TENANT
        2. role lacks transition on entity_type   -> FORBIDDEN_ROLE
        3. Visit, tech, not the assigned user      -> NOT_ASSIGNED
        4. target not reachable from entity.status -> ILLEGAL_TRANSITION

    Reads only the entity's account_id, status and (for visits)
    assigned_user_id; no side effects.
    """
    entity_type = coerce_entity_type(entity_type)

    if entity.account_id != actor.account_id:
        return Decision.deny(RejectReason.CROSS_TENANT, "Not found")

    if not can(actor.role, Action.TRANSITION, entity_type):
        return Decision.deny(
            RejectReason.FORBIDDEN_ROLE,
            f"Role '{actor.role.value}' cannot transition {entity_type.value}",
        )

    if entity_type is EntityType.VISIT and actor.is_tech and entity.assigned_user_id != actor.user_id:
        return Decision.deny(RejectReason.NOT_ASSIGNED, "Visit is not assigned to you")

    if target_status not in allowed_targets(entity_type, entity.status):
        return Decision.deny(
            RejectReason.ILLEGAL_TRANSITION,
            f"Cannot transition {entity_type.value} from '{entity.status}' to '{target_status}'",
        )

    return Decision.allow()
