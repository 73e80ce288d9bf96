# Overview: Role capability package.
# Re-exports the closed enumerations, the capability table and its query helpers.

from .categories import Role, EntityType, Action, FINANCIAL_ENTITY_TYPES
from .definitions import ROLE_CAPABILITIES, ALL_ACTIONS
from .helpers import (
    coerce_role,
    coerce_entity_type,
    can,
    can_create,
    can_transition,
    can_assign,
    can_view_all,
    can_update_notes,
    can_delete,
    capabilities_for,
)

__all__ = [
    "Role",
    "EntityType",
    "Action",
    "FINANCIAL_ENTITY_TYPES",
    "ROLE_CAPABILITIES",
    "ALL_ACTIONS",
    "coerce_role",
    "coerce_entity_type",
    "can",
    "can_create",
    "can_transition",
    "can_assign",
    "can_view_all",
    "can_update_notes",
    "can_delete",
    "capabilities_for",
]
