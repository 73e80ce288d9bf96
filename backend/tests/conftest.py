"""
Pytest fixtures for FieldOps backend tests.

Provides test database setup, two tenant accounts, actors for every role,
entity factories and a recording automation sink.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from fieldops import create_app
from fieldops.config import TestConfig
from fieldops.extensions import db
from fieldops.models import Account, Job, Visit, Estimate, EstimateLineItem, Invoice, InvoiceLineItem
from fieldops.services.automation_service import event_bus
from fieldops.services.context import Actor


# Fixed clock for timestamp assertions
NOW = datetime(2024, 6, 3, 9, 0, 0)


class RecordingSink:
    """Automation sink that keeps emitted events in memory."""

    def __init__(self):
        self.events = []

    def emit(self, event_type, payload):
        self.events.append((event_type, payload))

    @property
    def event_types(self):
        return [event_type for event_type, _ in self.events]


class FailingSink:
    def emit(self, event_type, payload):
        raise RuntimeError("notification backend down")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        event_bus.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        event_bus.clear()


@pytest.fixture(scope='function')
def sink():
    return RecordingSink()


@pytest.fixture(scope='function')
def account_a(db_session):
    """Create Account A (first tenant)."""
    account = Account(name="Account A - Acme Plumbing", is_active=True)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def account_b(db_session):
    """Create Account B (second tenant)."""
    account = Account(name="Account B - Beta Electric", is_active=True)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def owner_a(account_a):
    return Actor(user_id=1, account_id=account_a.id, role="owner")


@pytest.fixture
def admin_a(account_a):
    return Actor(user_id=2, account_id=account_a.id, role="admin")


@pytest.fixture
def tech_a(account_a):
    """Technician in Account A (user 3)."""
    return Actor(user_id=3, account_id=account_a.id, role="tech")


@pytest.fixture
def other_tech_a(account_a):
    """A second technician in Account A (user 4)."""
    return Actor(user_id=4, account_id=account_a.id, role="tech")


@pytest.fixture
def admin_b(account_b):
    return Actor(user_id=20, account_id=account_b.id, role="admin")


# =============================================================================
# Entity factories
# =============================================================================

@pytest.fixture
def make_job(db_session):
    def _make(account, status="draft", **kwargs):
        job = Job(account_id=account.id, title=kwargs.pop("title", "Replace water heater"), status=status, **kwargs)
        db_session.add(job)
        db_session.commit()
        return job
    return _make


@pytest.fixture
def make_visit(db_session):
    def _make(account, status="scheduled", assigned_user_id=None, start=None, **kwargs):
        start = start or NOW + timedelta(days=1)
        visit = Visit(
            account_id=account.id,
            status=status,
            assigned_user_id=assigned_user_id,
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=2),
            **kwargs,
        )
        db_session.add(visit)
        db_session.commit()
        return visit
    return _make


@pytest.fixture
def make_estimate(db_session):
    """
    Estimate with optional lines given as (description, quantity, unit_price_cents).

    Totals are computed from the lines so the row satisfies total = subtotal + tax.
    """
    def _make(account, status="draft", lines=(), tax_cents=0, client_id=100, **kwargs):
        estimate = Estimate(account_id=account.id, client_id=client_id, status=status, **kwargs)
        subtotal = 0
        for index, (description, quantity, price) in enumerate(lines):
            qty = Decimal(str(quantity))
            total = int((qty * price).quantize(Decimal("1")))
            subtotal += total
            estimate.line_items.append(
                EstimateLineItem(
                    description=description,
                    quantity=qty,
                    unit_price_cents=price,
                    total_cents=total,
                    sort_order=index,
                )
            )
        estimate.subtotal_cents = subtotal
        estimate.tax_cents = tax_cents
        estimate.total_cents = subtotal + tax_cents
        db_session.add(estimate)
        db_session.commit()
        return estimate
    return _make


@pytest.fixture
def make_invoice(db_session):
    counter = {"n": 0}

    def _make(account, status="sent", total_cents=60000, paid_cents=0, **kwargs):
        counter["n"] += 1
        invoice = Invoice(
            account_id=account.id,
            client_id=kwargs.pop("client_id", 100),
            invoice_number=kwargs.pop("invoice_number", f"TEST-{counter['n']:04d}"),
            status=status,
            subtotal_cents=total_cents,
            tax_cents=0,
            total_cents=total_cents,
            paid_cents=paid_cents,
            **kwargs,
        )
        invoice.line_items.append(
            InvoiceLineItem(
                description="Service call",
                quantity=Decimal("1"),
                unit_price_cents=total_cents,
                total_cents=total_cents,
            )
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _make
