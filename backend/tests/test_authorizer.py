# Overview: Pytest coverage for the transition authorizer.

"""
Transition Authorizer Tests

authorize() is checked against plain objects: it must read nothing but
account_id, status and assigned_user_id, and apply its checks in order
(tenant, role, assignment, graph).
"""

from types import SimpleNamespace

import pytest

from fieldops.services.authorization_service import authorize
from fieldops.services.context import Actor
from fieldops.services.results import RejectReason


def visit(account_id=1, status="scheduled", assigned_user_id=None):
    return SimpleNamespace(account_id=account_id, status=status, assigned_user_id=assigned_user_id)


def record(account_id=1, status="draft"):
    return SimpleNamespace(account_id=account_id, status=status)


OWNER = Actor(user_id=1, account_id=1, role="owner")
ADMIN = Actor(user_id=2, account_id=1, role="admin")
TECH = Actor(user_id=3, account_id=1, role="tech")


class TestCheckOrder:
    def test_tenant_checked_before_role(self):
        """A foreign tech on a foreign job is CROSS_TENANT, not FORBIDDEN_ROLE."""
        decision = authorize(TECH, "job", record(account_id=2), "quoted")
        assert decision.reason is RejectReason.CROSS_TENANT

    def test_role_checked_before_assignment(self):
        decision = authorize(TECH, "invoice", record(status="sent"), "paid")
        assert decision.reason is RejectReason.FORBIDDEN_ROLE

    def test_assignment_checked_before_graph(self):
        """Unassigned tech asking for an illegal target still gets NOT_ASSIGNED."""
        decision = authorize(TECH, "visit", visit(assigned_user_id=99), "completed")
        assert decision.reason is RejectReason.NOT_ASSIGNED

    def test_graph_checked_last(self):
        decision = authorize(TECH, "visit", visit(assigned_user_id=3), "completed")
        assert decision.reason is RejectReason.ILLEGAL_TRANSITION


class TestDecisions:
    def test_assigned_tech_may_arrive(self):
        decision = authorize(TECH, "visit", visit(assigned_user_id=3), "arrived")
        assert decision.allowed
        assert decision.reason is None

    def test_tech_on_unassigned_visit(self):
        decision = authorize(TECH, "visit", visit(assigned_user_id=None), "arrived")
        assert decision.reason is RejectReason.NOT_ASSIGNED

    def test_admin_needs_no_assignment(self):
        assert authorize(ADMIN, "visit", visit(assigned_user_id=None), "arrived").allowed

    @pytest.mark.parametrize("entity_type, status, target", [
        ("job", "draft", "quoted"),
        ("estimate", "draft", "sent"),
        ("invoice", "draft", "sent"),
    ])
    def test_owner_allowed_on_legal_edges(self, entity_type, status, target):
        assert authorize(OWNER, entity_type, record(status=status), target).allowed

    def test_self_loop_is_illegal(self):
        decision = authorize(OWNER, "job", record(status="draft"), "draft")
        assert decision.reason is RejectReason.ILLEGAL_TRANSITION

    def test_overdue_target_is_illegal(self):
        decision = authorize(OWNER, "invoice", record(status="sent"), "overdue")
        assert decision.reason is RejectReason.ILLEGAL_TRANSITION
