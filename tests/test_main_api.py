"""Tests for the Flask API."""

import pytest

import main
from concierge_engine import ConciergeEngine
from concierge_engine.store import InMemoryStore

HEADERS = {"X-Company-Id": "company1"}


@pytest.fixture
def client(monkeypatch):
    store = InMemoryStore({
        "services": [
            {"id": "villa-1", "companyId": "company1", "category": "villa", "name": "Villa Azul", "flatDaily": 200},
            {"id": "chef-1", "companyId": "company1", "category": "chef", "name": "Chef", "hourlyRate": 50},
        ],
        "clients": [{"id": "client-1", "companyId": "company1"}],
        "collaborators": [
            {"id": "col-1", "companyId": "company1", "name": "Marta", "commissionRate": 0.1},
            {"id": "col-2", "companyId": "company2", "name": "Other", "commissionRate": 0.1},
        ],
    })
    monkeypatch.setattr(main, "engine", ConciergeEngine(store=store))
    return main.app.test_client()


@pytest.fixture
def offer(client):
    response = client.post("/offers", headers=HEADERS, json={
        "clientId": "client-1",
        "services": [
            {"serviceId": "villa-1", "quantity": 3, "discountType": "percentage", "discountValue": 10},
            {"serviceId": "chef-1", "quantity": 4},
        ],
    })
    assert response.status_code == 201
    return response.get_json()


class TestInfoRoutes:
    """Test health and API info."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_api_info(self, client):
        body = client.get("/api").get_json()
        assert body["status"] == "ok"
        assert "convert" in body["endpoints"]

    def test_unknown_route_is_404(self, client):
        assert client.get("/nope").status_code == 404


class TestPricingRoutes:
    """Test the stateless pricing endpoints."""

    def test_price(self, client):
        response = client.post("/price", json={"service": {"id": "s", "category": "villa", "flatDaily": 450}})
        assert response.status_code == 200
        assert response.get_json()["unit_price"]["value"] == 450.0

    def test_quote_validation_error(self, client):
        response = client.post("/quote", json={"services": "villa"})
        assert response.status_code == 400
        assert response.get_json()["status"] == "validation_failed"

    def test_non_object_body(self, client):
        assert client.post("/quote", json=[1, 2]).status_code == 400


class TestOfferRoutes:
    """Test store-backed offer and booking endpoints."""

    def test_create_offer(self, offer):
        assert offer["calculations"]["total"]["value"] == 740.0
        assert offer["offer_summary"]["company_id"] == "company1"

    def test_scope_required(self, client):
        response = client.post("/offers", json={"clientId": "client-1", "services": [{"serviceId": "villa-1"}]})
        assert response.status_code == 400
        assert response.get_json()["status"] == "missing_scope"

    def test_scope_from_query_param(self, client):
        response = client.get("/collaborators?company=company1")
        assert response.status_code == 200
        assert [c["id"] for c in response.get_json()["collaborators"]] == ["col-1"]

    def test_convert_then_conflict(self, client, offer):
        url = f"/offers/{offer['offer_summary']['offer_id']}/convert"

        first = client.post(url, headers=HEADERS, json={"collaboratorId": "col-1"})
        assert first.status_code == 201
        assert first.get_json()["total_amount"] == 740.0

        second = client.post(url, headers=HEADERS, json={})
        assert second.status_code == 409
        assert second.get_json()["status"] == "conflict"

    def test_convert_other_company_is_404(self, client, offer):
        url = f"/offers/{offer['offer_summary']['offer_id']}/convert"
        response = client.post(url, headers={"X-Company-Id": "company2"}, json={})
        assert response.status_code == 404

    def test_booking_payment(self, client, offer):
        url = f"/offers/{offer['offer_summary']['offer_id']}/convert"
        booking = client.post(url, headers=HEADERS, json={}).get_json()

        response = client.post(f"/bookings/{booking['booking_id']}/payments", headers=HEADERS, json={
            "serviceId": booking["services"][1]["id"], "amount": 200,
        })
        assert response.status_code == 200
        assert response.get_json()["payment_status"] == "partially_paid"

    def test_finance_sync(self, client, offer):
        client.post(f"/offers/{offer['offer_summary']['offer_id']}/convert", headers=HEADERS, json={})
        body = client.post("/finance/sync", headers=HEADERS).get_json()
        assert body["sync"]["created"] == 2


class TestCollaboratorRoutes:
    """Test collaborator payouts and stats."""

    def test_record_payment(self, client):
        response = client.post("/collaborators/col-1/payments", headers=HEADERS, json={
            "amount": 50, "status": "scheduled", "date": "2025-09-01",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["scheduled_total"] == 50.0
        assert body["paid_total"] == 0.0

    def test_invalid_amount(self, client):
        response = client.post("/collaborators/col-1/payments", headers=HEADERS, json={"amount": -1, "status": "paid"})
        assert response.status_code == 400

    def test_other_company_collaborator_is_404(self, client):
        response = client.post("/collaborators/col-2/payments", headers=HEADERS, json={"amount": 10, "status": "paid"})
        assert response.status_code == 404

    def test_missing_collaborator_is_404(self, client):
        response = client.post("/collaborators/col-404/payments", headers=HEADERS, json={"amount": 10, "status": "paid"})
        assert response.status_code == 404
