# Overview: Service-layer operations for permission; capability enforcement and security event logging.

"""
Capability Enforcement and Security Event Logging

Denied workflow operations (wrong role, wrong account, unassigned tech)
leave a SecurityEvent row.

DESIGN PRINCIPLES:
- Fail closed: the capability table has no default allow
- Log denials only: grants are not logged
- Tenant context: security events carry the actor's account_id
"""

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from ..permissions import can
from fieldops.time_utils import utcnow
from .results import RejectReason, WorkflowRejection


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    account_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Commits on its own: callers invoke this after rolling back the rejected
    operation, so the denial is recorded even though the change was not.

    event_type examples:
    - CROSS_TENANT
    - FORBIDDEN_ROLE
    - NOT_ASSIGNED
    """
    event = SecurityEvent(
        user_id=user_id,
        account_id=account_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def require_capability(actor, action, entity_type) -> None:
    """
    Require the actor's role to hold a capability.

    Raises:
        WorkflowRejection(FORBIDDEN_ROLE)
    """
    if not can(actor.role, action, entity_type):
        raise WorkflowRejection(
            RejectReason.FORBIDDEN_ROLE,
            f"Role '{actor.role.value}' cannot {getattr(action, 'value', action)} {getattr(entity_type, 'value', entity_type)}",
        )
