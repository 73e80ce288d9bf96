# Overview: Closed enumerations for roles, entity types and capability actions.

from enum import Enum


class Role(str, Enum):
    """Account roles. owner > admin > tech."""
    OWNER = "owner"
    ADMIN = "admin"
    TECH = "tech"


class EntityType(str, Enum):
    """Workflow-governed entity types."""
    JOB = "job"
    VISIT = "visit"
    ESTIMATE = "estimate"
    INVOICE = "invoice"


class Action(str, Enum):
    """Capability verbs checked against the role table."""
    CREATE = "create"
    TRANSITION = "transition"
    ASSIGN = "assign"
    VIEW_ALL = "view_all"
    UPDATE_NOTES = "update_notes"
    DELETE = "delete"


# Estimates and invoices are financial records: only owners may delete them
FINANCIAL_ENTITY_TYPES = frozenset({EntityType.ESTIMATE, EntityType.INVOICE})
