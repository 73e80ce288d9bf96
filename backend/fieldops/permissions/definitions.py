# Overview: Role capability table.
# Every (role, entity type) pair is listed explicitly; a missing pair is an
# import-time error, never an implicit allow.

from .categories import Action, EntityType, Role, FINANCIAL_ENTITY_TYPES


ALL_ACTIONS = frozenset(Action)

NO_ACTIONS: frozenset[Action] = frozenset()


# -- OWNER --
# Full control of everything in the account, including deleting financial records.

OWNER_CAPABILITIES = {
    EntityType.JOB: ALL_ACTIONS,
    EntityType.VISIT: ALL_ACTIONS,
    EntityType.ESTIMATE: ALL_ACTIONS,
    EntityType.INVOICE: ALL_ACTIONS,
}


# -- ADMIN --
# Full operational control, but estimates and invoices can never be deleted.

ADMIN_CAPABILITIES = {
    EntityType.JOB: ALL_ACTIONS,
    EntityType.VISIT: ALL_ACTIONS,
    EntityType.ESTIMATE: ALL_ACTIONS - {Action.DELETE},
    EntityType.INVOICE: ALL_ACTIONS - {Action.DELETE},
}


# -- TECH --
# Field technicians work their own visits; everything else is read-only.
# "Own visit" is entity state, so the workflow engine enforces it, not this table.

TECH_CAPABILITIES = {
    EntityType.JOB: NO_ACTIONS,
    EntityType.VISIT: frozenset({Action.TRANSITION, Action.UPDATE_NOTES}),
    EntityType.ESTIMATE: NO_ACTIONS,
    EntityType.INVOICE: NO_ACTIONS,
}


ROLE_CAPABILITIES: dict[Role, dict[EntityType, frozenset[Action]]] = {
    Role.OWNER: OWNER_CAPABILITIES,
    Role.ADMIN: ADMIN_CAPABILITIES,
    Role.TECH: TECH_CAPABILITIES,
}


def _check_table() -> None:
    for role in Role:
        table = ROLE_CAPABILITIES.get(role)
        if table is None:
            raise RuntimeError(f"Capability table missing role {role.value}")
        missing = [entity.value for entity in EntityType if entity not in table]
        if missing:
            raise RuntimeError(f"Capability table for {role.value} missing: {', '.join(missing)}")

    for entity in EntityType:
        if not ADMIN_CAPABILITIES[entity] <= OWNER_CAPABILITIES[entity]:
            raise RuntimeError(f"owner must be a superset of admin for {entity.value}")
    for entity in FINANCIAL_ENTITY_TYPES:
        if Action.DELETE in ADMIN_CAPABILITIES[entity]:
            raise RuntimeError(f"admin may not delete {entity.value}")


_check_table()
