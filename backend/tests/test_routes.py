# Overview: Pytest coverage for the workflow HTTP blueprint.

"""
Workflow Route Tests

Exercise the blueprint through the Flask test client: actor headers,
reject reason -> status code mapping, and response shapes.
"""

import pytest

from fieldops.models import Estimate, Invoice, Visit


def headers(actor):
    return {
        "X-Actor-User-Id": str(actor.user_id),
        "X-Actor-Account-Id": str(actor.account_id),
        "X-Actor-Role": actor.role.value,
    }


class TestActorHeaders:
    def test_missing_headers(self, client, db_session):
        response = client.get("/api/workflow/capabilities")
        assert response.status_code == 401

    def test_unknown_role(self, client, db_session):
        response = client.get(
            "/api/workflow/capabilities",
            headers={"X-Actor-User-Id": "1", "X-Actor-Account-Id": "1", "X-Actor-Role": "superuser"},
        )
        assert response.status_code == 401

    def test_non_numeric_ids(self, client, db_session):
        response = client.get(
            "/api/workflow/capabilities",
            headers={"X-Actor-User-Id": "abc", "X-Actor-Account-Id": "1", "X-Actor-Role": "owner"},
        )
        assert response.status_code == 401


class TestTransitionRoute:
    def test_success(self, client, db_session, account_a, tech_a, make_visit):
        visit = make_visit(account_a, assigned_user_id=tech_a.user_id)

        response = client.post(
            f"/api/visits/{visit.id}/transition",
            json={"status": "arrived", "tech_notes": "On site"},
            headers=headers(tech_a),
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["entity"]["status"] == "arrived"
        assert body["entity"]["tech_notes"] == "On site"
        assert body["entity"]["arrived_at"].endswith("Z")

    def test_not_assigned_is_403(self, client, db_session, account_a, tech_a, other_tech_a, make_visit):
        visit = make_visit(account_a, assigned_user_id=tech_a.user_id)

        response = client.post(
            f"/api/visits/{visit.id}/transition", json={"status": "arrived"}, headers=headers(other_tech_a)
        )

        assert response.status_code == 403
        assert response.get_json()["reason"] == "NOT_ASSIGNED"

    def test_illegal_is_409(self, client, db_session, account_a, owner_a, make_job):
        job = make_job(account_a, status="cancelled")

        response = client.post(f"/api/jobs/{job.id}/transition", json={"status": "draft"}, headers=headers(owner_a))

        assert response.status_code == 409
        assert response.get_json()["reason"] == "ILLEGAL_TRANSITION"
        assert "retry" not in response.get_json()

    def test_incomplete_payment_is_422(self, client, db_session, account_a, admin_a, make_invoice):
        invoice = make_invoice(account_a, total_cents=60000)

        response = client.post(
            f"/api/invoices/{invoice.id}/transition",
            json={"status": "paid", "paid_cents": 30000},
            headers=headers(admin_a),
        )

        assert response.status_code == 422
        assert response.get_json()["reason"] == "INCOMPLETE_PAYMENT"

    def test_foreign_entity_is_404(self, client, db_session, account_a, account_b, admin_b, make_job):
        job = make_job(account_a)

        response = client.post(f"/api/jobs/{job.id}/transition", json={"status": "quoted"}, headers=headers(admin_b))

        assert response.status_code == 404

    def test_unknown_entity_segment(self, client, db_session, owner_a):
        response = client.post("/api/customers/1/transition", json={"status": "x"}, headers=headers(owner_a))
        assert response.status_code == 404

    def test_missing_status(self, client, db_session, account_a, owner_a, make_job):
        job = make_job(account_a)
        response = client.post(f"/api/jobs/{job.id}/transition", json={}, headers=headers(owner_a))
        assert response.status_code == 400
        assert response.get_json()["reason"] == "VALIDATION_ERROR"


class TestConvertRoute:
    def test_created_then_existing(self, client, db_session, account_a, admin_a, make_estimate):
        estimate = make_estimate(account_a, status="approved", lines=[("Labor", 2, 9000)])

        first = client.post(f"/api/estimates/{estimate.id}/convert", headers=headers(admin_a))
        second = client.post(f"/api/estimates/{estimate.id}/convert", headers=headers(admin_a))

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.get_json()["invoice"]["id"] == second.get_json()["invoice"]["id"]
        assert first.get_json()["invoice"]["total_cents"] == 18000
        assert len(first.get_json()["invoice"]["line_items"]) == 1

    def test_not_approved_is_422(self, client, db_session, account_a, admin_a, make_estimate):
        estimate = make_estimate(account_a, status="draft")
        response = client.post(f"/api/estimates/{estimate.id}/convert", headers=headers(admin_a))
        assert response.status_code == 422
        assert response.get_json()["reason"] == "ESTIMATE_NOT_APPROVED"

    def test_tech_is_403(self, client, db_session, account_a, tech_a, make_estimate):
        estimate = make_estimate(account_a, status="approved")
        response = client.post(f"/api/estimates/{estimate.id}/convert", headers=headers(tech_a))
        assert response.status_code == 403


class TestLineItemsRoute:
    def test_replace_with_tax(self, client, db_session, account_a, admin_a, make_estimate):
        estimate = make_estimate(account_a)

        response = client.put(
            f"/api/estimates/{estimate.id}/line-items",
            json={
                "items": [{"description": "Labor", "quantity": "2.5", "unit_price_cents": 9000}],
                "tax_cents": 1500,
            },
            headers=headers(admin_a),
        )

        assert response.status_code == 200
        body = response.get_json()["estimate"]
        assert (body["subtotal_cents"], body["tax_cents"], body["total_cents"]) == (22500, 1500, 24000)
        assert body["line_items"][0]["quantity"] == "2.50"

    def test_sent_estimate_is_422(self, client, db_session, account_a, admin_a, make_estimate):
        estimate = make_estimate(account_a, status="sent")
        response = client.put(
            f"/api/estimates/{estimate.id}/line-items", json={"items": []}, headers=headers(admin_a)
        )
        assert response.status_code == 422
        assert response.get_json()["reason"] == "IMMUTABLE_ENTITY"

    def test_invalid_item_is_400(self, client, db_session, account_a, admin_a, make_estimate):
        estimate = make_estimate(account_a)
        response = client.put(
            f"/api/estimates/{estimate.id}/line-items",
            json={"items": [{"description": "Labor", "quantity": 0, "unit_price_cents": 100}]},
            headers=headers(admin_a),
        )
        assert response.status_code == 400

    def test_invalid_tax_leaves_lines_untouched(self, client, db_session, account_a, admin_a, make_estimate):
        """A bad tax value rejects the whole replacement, lines included."""
        estimate = make_estimate(account_a, lines=[("Labor", 1, 5000)])

        response = client.put(
            f"/api/estimates/{estimate.id}/line-items",
            json={
                "items": [{"description": "Parts", "quantity": 3, "unit_price_cents": 1000}],
                "tax_cents": -5,
            },
            headers=headers(admin_a),
        )

        assert response.status_code == 400
        assert response.get_json()["reason"] == "VALIDATION_ERROR"
        stored = db_session.get(Estimate, estimate.id)
        assert (stored.subtotal_cents, stored.tax_cents, stored.total_cents) == (5000, 0, 5000)
        assert [line.description for line in stored.line_items] == ["Labor"]


class TestPaymentRoute:
    def test_record_payment(self, client, db_session, account_a, admin_a, make_invoice):
        invoice = make_invoice(account_a, total_cents=60000)

        response = client.post(
            f"/api/invoices/{invoice.id}/payments",
            json={"amount_cents": 20000, "method": "card", "received_at": "2024-06-01T12:00:00Z"},
            headers=headers(admin_a),
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["payment"]["amount_cents"] == 20000
        assert body["payment"]["received_at"] == "2024-06-01T12:00:00Z"
        assert body["invoice"]["status"] == "partial"
        assert body["invoice"]["amount_due_cents"] == 40000

    def test_overpayment_is_422(self, client, db_session, account_a, admin_a, make_invoice):
        invoice = make_invoice(account_a, total_cents=100)
        response = client.post(
            f"/api/invoices/{invoice.id}/payments",
            json={"amount_cents": 101, "method": "cash"},
            headers=headers(admin_a),
        )
        assert response.status_code == 422
        assert db_session.get(Invoice, invoice.id).paid_cents == 0

    def test_bad_received_at(self, client, db_session, account_a, admin_a, make_invoice):
        invoice = make_invoice(account_a)
        response = client.post(
            f"/api/invoices/{invoice.id}/payments",
            json={"amount_cents": 1, "method": "cash", "received_at": "yesterday"},
            headers=headers(admin_a),
        )
        assert response.status_code == 400


class TestVisitRoutes:
    def test_assign_then_notes(self, client, db_session, account_a, admin_a, tech_a, make_visit):
        visit = make_visit(account_a)

        assigned = client.post(f"/api/visits/{visit.id}/assign", json={"user_id": tech_a.user_id}, headers=headers(admin_a))
        notes = client.patch(f"/api/visits/{visit.id}/notes", json={"tech_notes": "Bring ladder"}, headers=headers(tech_a))

        assert assigned.status_code == 200
        assert notes.status_code == 200
        assert db_session.get(Visit, visit.id).tech_notes == "Bring ladder"

    def test_tech_cannot_assign(self, client, db_session, account_a, tech_a, make_visit):
        visit = make_visit(account_a)
        response = client.post(f"/api/visits/{visit.id}/assign", json={"user_id": 3}, headers=headers(tech_a))
        assert response.status_code == 403

    def test_notes_required(self, client, db_session, account_a, admin_a, make_visit):
        visit = make_visit(account_a)
        response = client.patch(f"/api/visits/{visit.id}/notes", json={}, headers=headers(admin_a))
        assert response.status_code == 400


class TestIntrospectionRoutes:
    def test_allowed_transitions(self, client, db_session, owner_a):
        response = client.get("/api/workflow/invoice/transitions?from=sent", headers=headers(owner_a))
        assert response.status_code == 200
        assert response.get_json()["targets"] == ["partial", "paid", "void"]

    def test_terminal_has_no_targets(self, client, db_session, owner_a):
        response = client.get("/api/workflow/job/transitions?from=invoiced", headers=headers(owner_a))
        assert response.get_json()["targets"] == []

    def test_unknown_entity(self, client, db_session, owner_a):
        response = client.get("/api/workflow/customer/transitions?from=x", headers=headers(owner_a))
        assert response.status_code == 404

    def test_from_required(self, client, db_session, owner_a):
        response = client.get("/api/workflow/job/transitions", headers=headers(owner_a))
        assert response.status_code == 400

    def test_unknown_from_status_is_400(self, client, db_session, owner_a):
        response = client.get("/api/workflow/invoice/transitions?from=refunded", headers=headers(owner_a))
        assert response.status_code == 400
        assert "refunded" in response.get_json()["error"]

    @pytest.mark.parametrize("role", ["owner", "admin", "tech"])
    def test_capabilities(self, client, db_session, role):
        response = client.get(
            "/api/workflow/capabilities",
            headers={"X-Actor-User-Id": "1", "X-Actor-Account-Id": "1", "X-Actor-Role": role},
        )
        body = response.get_json()
        assert response.status_code == 200
        assert body["role"] == role
        assert set(body["capabilities"]) == {"job", "visit", "estimate", "invoice"}
