# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    account_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for an account/type.

    The increment is a single UPDATE on the (account_id, document_type) row,
    so two writers serialize on that row. The allocation belongs to the
    caller's transaction: if the caller rolls back, the number is reused.

    A first-use race on the sequence row surfaces as IntegrityError at
    flush; callers treat that like any other write conflict.
    """
    if not account_id:
        raise DocumentSequenceError("account_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.account_id == account_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(account_id=account_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(account_id=account_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_invoice_number(account_id: int) -> str:
    """e.g. INV-0001, INV-0002, ... per account."""
    return next_document_number(account_id=account_id, document_type="INVOICE", prefix="INV")
