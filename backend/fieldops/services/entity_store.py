# Overview: Persistence contract for the workflow core and its SQLAlchemy implementation.

"""
Entity Store

The engine never touches the ORM directly. It talks to an EntityStore:

    load_scoped(entity_type, entity_id, account_id)   -> entity | None
    write_scoped(entity_type, entity_id, account_id,
                 expected_status, patch)              -> None  (StatusConflict)
    insert_scoped(entity_type, record)                -> record (UniqueViolation)

plus the transaction boundary (commit / rollback) and the few lookups the
conversion pipeline needs.

CONCURRENCY: write_scoped is an optimistic conditional UPDATE
    UPDATE ... SET ... WHERE id = :id AND account_id = :account AND status = :expected
Zero affected rows means someone else moved the entity first (or it is not
in this account); either way the caller must not assume its read is current.
"""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Estimate, Invoice, Job, Visit
from ..permissions import EntityType, coerce_entity_type
from . import audit_service, document_service
from .tenant_service import scoped_query


MODELS_BY_ENTITY = {
    EntityType.JOB: Job,
    EntityType.VISIT: Visit,
    EntityType.ESTIMATE: Estimate,
    EntityType.INVOICE: Invoice,
}


class StatusConflict(Exception):
    """Conditional write matched no row: the observed status is stale."""
    pass


class UniqueViolation(Exception):
    """Insert collided with a uniqueness constraint."""
    pass


class EntityStore(Protocol):
    def load_scoped(self, entity_type, entity_id: int, account_id: int) -> Any: ...

    def write_scoped(
        self, entity_type, entity_id: int, account_id: int, expected_status: str, patch: dict, guard: dict | None = None
    ) -> None: ...

    def insert_scoped(self, entity_type, record: Any) -> Any: ...

    def find_invoice_for_estimate(self, estimate_id: int, account_id: int) -> Any: ...

    def next_invoice_number(self, account_id: int) -> str: ...

    def record_audit(self, **entry: Any) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqlEntityStore:
    """EntityStore over the Flask-SQLAlchemy session."""

    def load_scoped(self, entity_type, entity_id: int, account_id: int):
        model = MODELS_BY_ENTITY[coerce_entity_type(entity_type)]
        return scoped_query(model, account_id).filter(model.id == entity_id).first()

    def write_scoped(
        self, entity_type, entity_id: int, account_id: int, expected_status: str, patch: dict, guard: dict | None = None
    ) -> None:
        """guard adds column == value conditions beyond the status (e.g. paid_cents)."""
        model = MODELS_BY_ENTITY[coerce_entity_type(entity_type)]
        conditions = [
            model.id == entity_id,
            model.account_id == account_id,
            model.status == expected_status,
        ]
        for column, value in (guard or {}).items():
            conditions.append(getattr(model, column) == value)
        stmt = (
            update(model)
            .where(*conditions)
            .values(**patch)
            .execution_options(synchronize_session="evaluate")
        )
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            raise StatusConflict(
                f"{coerce_entity_type(entity_type).value} {entity_id} is no longer '{expected_status}'"
            )

    def insert_scoped(self, entity_type, record):
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # The whole unit of work is unusable after a failed flush
            db.session.rollback()
            raise UniqueViolation(str(exc.orig)) from exc
        return record

    def find_invoice_for_estimate(self, estimate_id: int, account_id: int):
        return scoped_query(Invoice, account_id).filter(Invoice.source_estimate_id == estimate_id).first()

    def next_invoice_number(self, account_id: int) -> str:
        return document_service.next_invoice_number(account_id)

    def record_audit(self, **entry) -> None:
        audit_service.append_audit(**entry)

    def commit(self) -> None:
        db.session.commit()

    def rollback(self) -> None:
        db.session.rollback()


def default_store() -> SqlEntityStore:
    return SqlEntityStore()
