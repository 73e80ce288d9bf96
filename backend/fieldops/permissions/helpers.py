# Overview: Capability query primitives used by the engine and by UI rendering.

from .categories import Action, EntityType, Role
from .definitions import ROLE_CAPABILITIES


def coerce_role(value) -> Role:
    """Parse a role value. Unknown roles raise ValueError (no default allow)."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown role '{value}'. Must be one of: {', '.join(r.value for r in Role)}")


def coerce_entity_type(value) -> EntityType:
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(str(value).strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown entity type '{value}'. Must be one of: {', '.join(e.value for e in EntityType)}"
        )


def can(role, action, entity_type) -> bool:
    """Pure lookup of (role, action, entity type) in the capability table."""
    return Action(action) in ROLE_CAPABILITIES[coerce_role(role)][coerce_entity_type(entity_type)]


def can_create(role, entity_type) -> bool:
    return can(role, Action.CREATE, entity_type)


def can_transition(role, entity_type) -> bool:
    return can(role, Action.TRANSITION, entity_type)


def can_assign(role, entity_type) -> bool:
    return can(role, Action.ASSIGN, entity_type)


def can_view_all(role, entity_type) -> bool:
    return can(role, Action.VIEW_ALL, entity_type)


def can_update_notes(role, entity_type) -> bool:
    return can(role, Action.UPDATE_NOTES, entity_type)


def can_delete(role, entity_type) -> bool:
    return can(role, Action.DELETE, entity_type)


def capabilities_for(role) -> dict[str, list[str]]:
    """Serializable capability map for one role, e.g. {"visit": ["transition", ...]}."""
    table = ROLE_CAPABILITIES[coerce_role(role)]
    return {
        entity.value: sorted(action.value for action in table[entity])
        for entity in EntityType
    }
