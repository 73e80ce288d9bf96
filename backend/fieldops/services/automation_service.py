# Overview: Service-layer operations for automations; event sink, outbox and scheduled scans.

"""
Automation Events

The workflow core does not deliver notifications. It announces that an
automation was triggered and leaves delivery to whoever subscribes.

Two halves:
1. The sink: `emit(event_type, payload)` records an AutomationEvent outbox row
   and fans the event out to in-process subscribers. Emission happens after
   the business transaction commits and is best effort: a failing sink is
   logged and never changes the result of the operation that triggered it.
2. The scans: periodic passes (CLI / scheduler) that find visits starting
   soon and invoices past due, emitting each event at most once per subject
   via the outbox dedupe_key.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import AutomationEvent, Invoice, Visit
from fieldops.time_utils import utcnow, to_utc_z
from .tenant_service import scoped_query


VISIT_COMPLETED = "visit_completed"
ESTIMATE_SENT = "estimate_sent"
ESTIMATE_APPROVED = "estimate_approved"
INVOICE_SENT = "invoice_sent"
INVOICE_PAID = "invoice_paid"
JOB_COMPLETED = "job_completed"
INVOICE_CREATED_FROM_ESTIMATE = "invoice_created_from_estimate"
VISIT_REMINDER_DUE = "visit_reminder_due"
INVOICE_FOLLOWUP_DUE = "invoice_followup_due"

# (entity type, target status) -> event fired after the transition commits
TRANSITION_EVENTS = {
    ("visit", "completed"): VISIT_COMPLETED,
    ("estimate", "sent"): ESTIMATE_SENT,
    ("estimate", "approved"): ESTIMATE_APPROVED,
    ("invoice", "sent"): INVOICE_SENT,
    ("invoice", "paid"): INVOICE_PAID,
    ("job", "completed"): JOB_COMPLETED,
}


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._subscribers.clear()

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in list(self._subscribers.get(event_name, [])):
            handler(event)


event_bus = InProcessEventBus()


def record_event(
    *,
    account_id: int,
    event_type: str,
    payload: dict[str, Any],
    entity_type: str | None = None,
    entity_id: int | None = None,
    dedupe_key: str | None = None,
) -> AutomationEvent | None:
    """
    Write an outbox row and commit.

    Returns None when dedupe_key was already used for this account and event
    type (the event has been emitted before).
    """
    if dedupe_key is not None:
        exists = (
            db.session.query(AutomationEvent.id)
            .filter_by(account_id=account_id, event_type=event_type, dedupe_key=dedupe_key)
            .first()
        )
        if exists:
            return None

    event = AutomationEvent(
        account_id=account_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        dedupe_key=dedupe_key,
        payload=payload,
    )
    db.session.add(event)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with another scan for the same dedupe_key
        db.session.rollback()
        return None
    return event


class OutboxSink:
    """Default sink: outbox row first, then in-process subscribers."""

    def __init__(self, bus: InProcessEventBus | None = None):
        self.bus = bus or event_bus

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        record_event(
            account_id=payload["account_id"],
            event_type=event_type,
            payload=payload,
            entity_type=payload.get("entity_type"),
            entity_id=payload.get("entity_id"),
        )
        self.bus.publish(event_type, payload)


def default_sink() -> OutboxSink:
    return OutboxSink()


def emit_events(events, sink=None) -> int:
    """
    Deliver committed-operation events to the sink.

    Best effort: a sink failure is logged and swallowed. Returns how many
    events were delivered.
    """
    sink = sink or default_sink()
    delivered = 0
    for event in events:
        try:
            sink.emit(event.event_type, event.payload)
            delivered += 1
        except Exception:
            db.session.rollback()
            current_app.logger.error(
                "Automation sink failed for %s (%s)",
                event.event_type,
                event.payload.get("entity_id"),
                exc_info=True,
            )
    return delivered


def transition_event_type(entity_type: str, target_status: str) -> str | None:
    return TRANSITION_EVENTS.get((entity_type, target_status))


# =============================================================================
# Scans
# =============================================================================

@dataclass
class ScanResult:
    account_id: int
    event_type: str
    emitted: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "event_type": self.event_type,
            "emitted": self.emitted,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def run_visit_reminders(
    account_id: int,
    hours_before: int | None = None,
    now: datetime | None = None,
    bus: InProcessEventBus | None = None,
) -> ScanResult:
    """
    Emit visit_reminder_due for scheduled visits starting within the window.

    Window is (now, now + hours_before]. Each visit is reminded at most once.
    """
    if hours_before is None:
        hours_before = current_app.config["VISIT_REMINDER_HOURS_BEFORE"]
    if hours_before <= 0:
        raise ValueError("hours_before must be positive")
    now = now or utcnow()
    bus = bus or event_bus
    window_end = now + timedelta(hours=hours_before)

    visits = (
        scoped_query(Visit, account_id)
        .filter(
            Visit.status == "scheduled",
            Visit.scheduled_start > now,
            Visit.scheduled_start <= window_end,
        )
        .order_by(Visit.scheduled_start.asc(), Visit.id.asc())
        .all()
    )

    result = ScanResult(account_id=account_id, event_type=VISIT_REMINDER_DUE)
    for visit in visits:
        payload = {
            "account_id": account_id,
            "entity_type": "visit",
            "entity_id": visit.id,
            "job_id": visit.job_id,
            "assigned_user_id": visit.assigned_user_id,
            "scheduled_start": to_utc_z(visit.scheduled_start),
        }
        try:
            recorded = record_event(
                account_id=account_id,
                event_type=VISIT_REMINDER_DUE,
                payload=payload,
                entity_type="visit",
                entity_id=visit.id,
                dedupe_key=f"visit:{visit.id}",
            )
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Visit reminder failed for visit %s", visit.id)
            result.errors += 1
            continue

        if recorded is None:
            result.skipped += 1
            continue
        result.emitted += 1
        bus.publish(VISIT_REMINDER_DUE, payload)

    current_app.logger.info(
        "Visit reminders for account %s: %s emitted, %s skipped, %s errors",
        account_id, result.emitted, result.skipped, result.errors,
    )
    return result


def crossed_followup_steps(due_date: datetime, cadence: list[int], now: datetime) -> list[int]:
    """
    Cadence steps (days past due) reached by now, in ascending order.

    >>> crossed_followup_steps(datetime(2024, 1, 1), [7, 14, 30], datetime(2024, 1, 20))
    [7, 14]
    """
    days_late = (now - due_date).days
    return [step for step in sorted(set(cadence)) if days_late >= step]


def run_invoice_followups(
    account_id: int,
    days_overdue: list[int] | None = None,
    now: datetime | None = None,
    bus: InProcessEventBus | None = None,
) -> ScanResult:
    """
    Emit invoice_followup_due for sent/partial invoices past their due date.

    Every cadence step reached is emitted once per (invoice, step). A scan
    that first runs 20 days late sends both the 7-day and the 14-day
    follow-up; later scans only add steps crossed since.
    """
    cadence = list(days_overdue) if days_overdue is not None else list(current_app.config["INVOICE_FOLLOWUP_DAYS"])
    if not cadence or any(step <= 0 for step in cadence):
        raise ValueError("days_overdue must be a non-empty list of positive day counts")
    now = now or utcnow()
    bus = bus or event_bus

    invoices = (
        scoped_query(Invoice, account_id)
        .filter(
            Invoice.status.in_(("sent", "partial")),
            Invoice.due_date.isnot(None),
            Invoice.due_date < now,
        )
        .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        .all()
    )

    result = ScanResult(account_id=account_id, event_type=INVOICE_FOLLOWUP_DUE)
    for invoice in invoices:
        steps = crossed_followup_steps(invoice.due_date, cadence, now)
        if not steps:
            result.skipped += 1
            continue

        for step in steps:
            payload = {
                "account_id": account_id,
                "entity_type": "invoice",
                "entity_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "days_overdue": step,
                "amount_due_cents": invoice.amount_due_cents,
                "due_date": to_utc_z(invoice.due_date),
            }
            try:
                recorded = record_event(
                    account_id=account_id,
                    event_type=INVOICE_FOLLOWUP_DUE,
                    payload=payload,
                    entity_type="invoice",
                    entity_id=invoice.id,
                    dedupe_key=f"invoice:{invoice.id}:day:{step}",
                )
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception(
                    "Invoice follow-up failed for invoice %s at day %s", invoice.id, step
                )
                result.errors += 1
                continue

            if recorded is None:
                result.skipped += 1
                continue
            result.emitted += 1
            bus.publish(INVOICE_FOLLOWUP_DUE, payload)

    current_app.logger.info(
        "Invoice follow-ups for account %s: %s emitted, %s skipped, %s errors",
        account_id, result.emitted, result.skipped, result.errors,
    )
    return result
