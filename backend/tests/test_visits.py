# Overview: Pytest coverage for visit assignment and technician notes.

from fieldops.models import AuditLog, SecurityEvent, Visit
from fieldops.services.results import RejectReason
from fieldops.services.visit_service import assign_visit, update_visit_notes
from fieldops.services.workflow_service import transition


class TestAssignVisit:
    def test_admin_assigns_tech(self, db_session, account_a, admin_a, tech_a, make_visit):
        visit = make_visit(account_a)

        result = assign_visit(admin_a, visit.id, tech_a.user_id)

        assert result.ok
        assert db_session.get(Visit, visit.id).assigned_user_id == tech_a.user_id
        row = db_session.query(AuditLog).filter_by(entity_type="visit", entity_id=visit.id).one()
        assert row.old_value == {"assigned_user_id": None}
        assert row.new_value == {"assigned_user_id": tech_a.user_id}

    def test_assignment_enables_tech_transition(self, db_session, account_a, admin_a, tech_a, make_visit):
        visit = make_visit(account_a)
        assert transition(tech_a, "visit", visit.id, "arrived").reason is RejectReason.NOT_ASSIGNED

        assign_visit(admin_a, visit.id, tech_a.user_id)

        assert transition(tech_a, "visit", visit.id, "arrived").ok

    def test_unassign(self, db_session, account_a, owner_a, make_visit):
        visit = make_visit(account_a, assigned_user_id=3)
        assert assign_visit(owner_a, visit.id, None).ok
        assert db_session.get(Visit, visit.id).assigned_user_id is None

    def test_tech_cannot_assign(self, db_session, account_a, tech_a, make_visit):
        visit = make_visit(account_a)

        result = assign_visit(tech_a, visit.id, tech_a.user_id)

        assert result.reason is RejectReason.FORBIDDEN_ROLE
        assert db_session.get(Visit, visit.id).assigned_user_id is None

    def test_terminal_visit_keeps_assignment(self, db_session, account_a, admin_a, make_visit):
        visit = make_visit(account_a, status="completed", assigned_user_id=3)
        assert assign_visit(admin_a, visit.id, 4).reason is RejectReason.IMMUTABLE_ENTITY

    def test_bad_user_id(self, db_session, account_a, admin_a, make_visit):
        visit = make_visit(account_a)
        assert assign_visit(admin_a, visit.id, "three").reason is RejectReason.VALIDATION_ERROR


class TestVisitNotes:
    def test_assigned_tech_updates_notes(self, db_session, account_a, tech_a, make_visit):
        visit = make_visit(account_a, status="arrived", assigned_user_id=tech_a.user_id)

        result = update_visit_notes(tech_a, visit.id, "Gas line capped, needs follow-up")

        assert result.ok
        refreshed = db_session.get(Visit, visit.id)
        assert refreshed.tech_notes == "Gas line capped, needs follow-up"
        assert refreshed.status == "arrived"

    def test_other_tech_not_assigned(self, db_session, account_a, tech_a, other_tech_a, make_visit):
        visit = make_visit(account_a, assigned_user_id=tech_a.user_id)

        result = update_visit_notes(other_tech_a, visit.id, "not mine")

        assert result.reason is RejectReason.NOT_ASSIGNED
        assert db_session.get(Visit, visit.id).tech_notes is None
        assert db_session.query(SecurityEvent).filter_by(event_type="NOT_ASSIGNED").count() == 1

    def test_admin_updates_any_visit(self, db_session, account_a, admin_a, make_visit):
        visit = make_visit(account_a)
        assert update_visit_notes(admin_a, visit.id, "Customer asked for morning slot").ok

    def test_other_account(self, db_session, account_a, account_b, admin_b, make_visit):
        visit = make_visit(account_a)
        assert update_visit_notes(admin_b, visit.id, "x").reason is RejectReason.NOT_FOUND

    def test_notes_must_be_text(self, db_session, account_a, admin_a, make_visit):
        visit = make_visit(account_a)
        assert update_visit_notes(admin_a, visit.id, ["x"]).reason is RejectReason.VALIDATION_ERROR
