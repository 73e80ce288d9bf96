from .tenancy import Account
from .jobs import Job, Visit
from .estimates import Estimate, EstimateLineItem
from .invoices import Invoice, InvoiceLineItem, Payment, DocumentSequence
from .audit import AuditLog, SecurityEvent, AutomationEvent

__all__ = [
    'Account',
    'Job', 'Visit',
    'Estimate', 'EstimateLineItem',
    'Invoice', 'InvoiceLineItem', 'Payment', 'DocumentSequence',
    'AuditLog', 'SecurityEvent', 'AutomationEvent',
]
