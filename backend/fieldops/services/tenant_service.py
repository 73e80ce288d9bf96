"""
Multi-Tenant Service: Account Validation and Scoping Helpers

WHY: Centralize tenant validation for reuse across services. Every call is
scoped to the actor's account, and cross-account access must be denied.

SECURITY INVARIANTS:
1. Every core call carries an explicit Actor with an account_id
2. Entity loads filter by account_id (a foreign row reads as "not found")
3. A loaded entity is re-checked against the actor's account before use
4. Cross-tenant denials are logged as security events by the caller

USAGE:
    from fieldops.services.tenant_service import scoped_query, ensure_same_account

    visit = scoped_query(Visit, actor.account_id).filter_by(id=visit_id).first()
    ensure_same_account(actor, visit)
"""

from ..extensions import db
from ..models import Account
from .results import RejectReason, WorkflowRejection


class TenantAccessError(Exception):
    """Raised when an account is missing or inactive."""
    pass


def scoped_query(model, account_id: int):
    """
    Create a base query scoped to one account.

    Args:
        model: SQLAlchemy model class (must have account_id column)
        account_id: Account ID of the acting user

    Usage:
        invoices = scoped_query(Invoice, actor.account_id).filter_by(status="sent").all()
    """
    if account_id is None:
        raise TenantAccessError("Tenant context not established")
    return db.session.query(model).filter(model.account_id == account_id)


def ensure_same_account(actor, entity) -> None:
    """
    Verify a loaded entity belongs to the actor's account.

    Loads are already scoped, so this only fires when a store hands back a
    foreign row. It is still checked on every path.

    Raises:
        WorkflowRejection(CROSS_TENANT)
    """
    if entity.account_id != actor.account_id:
        raise WorkflowRejection(
            RejectReason.CROSS_TENANT,
            # Don't reveal that the entity exists in another account
            "Not found",
        )


def validate_account_active(account_id: int) -> Account:
    """
    Validate that an account exists and is active.

    Raises:
        TenantAccessError if the account doesn't exist or is inactive
    """
    account = db.session.get(Account, account_id)

    if not account:
        raise TenantAccessError("Account not found")

    if not account.is_active:
        raise TenantAccessError("Account is not active")

    return account
