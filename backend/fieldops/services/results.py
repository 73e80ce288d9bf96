# Overview: Typed outcomes shared by every workflow operation.

"""
Reject reasons and result values for the workflow core.

Business rejections never escape the public service functions as exceptions.
Internally a WorkflowRejection is raised at the point of failure and the
operation runner converts it into a WorkflowResult after rolling back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RejectReason(str, Enum):
    CROSS_TENANT = "CROSS_TENANT"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN_ROLE = "FORBIDDEN_ROLE"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    INCOMPLETE_PAYMENT = "INCOMPLETE_PAYMENT"
    INVALID_PAYMENT = "INVALID_PAYMENT"
    ESTIMATE_NOT_APPROVED = "ESTIMATE_NOT_APPROVED"
    IMMUTABLE_ENTITY = "IMMUTABLE_ENTITY"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    STORAGE_ERROR = "STORAGE_ERROR"


# Denials worth a security event: someone reached for something they may not touch
SECURITY_REASONS = frozenset({
    RejectReason.CROSS_TENANT,
    RejectReason.FORBIDDEN_ROLE,
    RejectReason.NOT_ASSIGNED,
})


class WorkflowRejection(Exception):
    """Raised inside an operation to abort it with a reject reason."""

    def __init__(self, reason: RejectReason | str, message: str | None = None, details: dict | None = None):
        self.reason = RejectReason(reason)
        self.details = details or {}
        super().__init__(message or self.reason.value)


@dataclass(frozen=True)
class Decision:
    """Outcome of the transition authorizer."""
    allowed: bool
    reason: RejectReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: RejectReason, message: str | None = None) -> "Decision":
        return cls(allowed=False, reason=reason, message=message)


@dataclass(frozen=True)
class TriggeredEvent:
    """Automation event produced by a committed operation."""
    event_type: str
    payload: dict[str, Any]


@dataclass
class WorkflowResult:
    """
    Result of a workflow operation.

    ok results carry the updated entity in `value`; rejected results carry a
    reason and leave `value` as None.
    """
    value: Any = None
    reason: RejectReason | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    events: list[TriggeredEvent] = field(default_factory=list)
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, value: Any, *, events: list[TriggeredEvent] | None = None, created: bool = False) -> "WorkflowResult":
        return cls(value=value, events=list(events or []), created=created)

    @classmethod
    def rejected(cls, reason: RejectReason, message: str | None = None, details: dict | None = None) -> "WorkflowResult":
        return cls(reason=RejectReason(reason), message=message or RejectReason(reason).value, details=details or {})

    @classmethod
    def from_rejection(cls, rejection: WorkflowRejection) -> "WorkflowResult":
        return cls.rejected(rejection.reason, str(rejection), rejection.details)
