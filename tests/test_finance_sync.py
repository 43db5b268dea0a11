"""
Unit Tests for Finance Sync

Tests verify one finance record per booked service, resync behaviour and
provider-cost settlement.
"""

from decimal import Decimal

import pytest

from concierge_engine.errors import DocumentNotFound, InvalidAmount
from concierge_engine.finance import FinanceSync
from concierge_engine.store import BOOKINGS, FINANCE_RECORDS, InMemoryStore
from concierge_engine.tenancy import TenantScope


@pytest.fixture
def store():
    return InMemoryStore({
        "clients": [{"id": "client-1", "companyId": "company1", "name": "Ana"}],
        BOOKINGS: [
            {
                "id": "bk-1",
                "companyId": "company1",
                "clientId": "client-1",
                "checkIn": "2025-07-01",
                "checkOut": "2025-07-04",
                "services": [
                    {"id": "li-villa", "category": "villa", "name": "Villa Azul", "originalPrice": 200, "quantity": 3,
                     "discountType": "percentage", "discountValue": 10},
                    {"id": "li-boat", "category": "boat", "name": "Yacht", "originalPrice": 900, "quantity": 1,
                     "providerCost": 600},
                ],
            },
            {
                "id": "bk-2",
                "companyId": "company1",
                "clientId": "client-gone",
                "checkIn": "2025-08-01",
                "services": [{"id": "li-x", "category": "car", "originalPrice": 100, "quantity": 1}],
            },
        ],
        FINANCE_RECORDS: [
            {"id": "fr-payout", "companyId": "company1", "serviceKey": "collaborator_payout",
             "clientAmount": 0, "providerCost": 50, "status": "settled", "date": "2025-07-02"},
        ],
    })


@pytest.fixture
def scope():
    return TenantScope("company1")


@pytest.fixture
def finance(store):
    return FinanceSync(store)


def service_records(store):
    return {r["serviceKey"]: r for r in store.all(FINANCE_RECORDS) if r["serviceKey"] != "collaborator_payout"}


class TestSyncBookings:
    """Test finance record creation and refresh."""

    def test_creates_one_record_per_service(self, finance, store, scope):
        counts = finance.sync_bookings(scope)

        assert counts == {"created": 2, "updated": 0, "skipped": 1}
        records = service_records(store)
        assert records["li-villa"]["clientAmount"] == 540.0
        assert records["li-villa"]["status"] == "pending"
        assert records["li-boat"]["providerCost"] == 600.0
        assert records["li-boat"]["status"] == "settled"
        assert records["li-villa"]["bookingId"] == "bk-1"
        assert records["li-villa"]["date"] == "2025-07-01"

    def test_resync_is_a_no_op(self, finance, scope):
        finance.sync_bookings(scope)
        assert finance.sync_bookings(scope) == {"created": 0, "updated": 0, "skipped": 1}

    def test_client_amount_follows_booking(self, finance, store, scope):
        """A changed line total updates clientAmount; the entered provider cost survives."""
        finance.sync_bookings(scope)
        villa_record = service_records(store)["li-villa"]
        finance.settle(scope, villa_record["id"], 350)

        booking = store.get(BOOKINGS, "bk-1")
        booking["services"][0]["discountValue"] = 20
        store.update(BOOKINGS, "bk-1", {"services": booking["services"]})

        counts = finance.sync_bookings(scope)
        assert counts["updated"] == 1
        refreshed = service_records(store)["li-villa"]
        assert refreshed["clientAmount"] == 480.0
        assert refreshed["providerCost"] == 350.0
        assert refreshed["status"] == "settled"

    def test_other_company_untouched(self, finance, store):
        assert finance.sync_bookings(TenantScope("company2")) == {"created": 0, "updated": 0, "skipped": 0}
        assert len(store.all(FINANCE_RECORDS)) == 1


class TestSettleAndSummary:
    """Test settlement and the profit summary."""

    def test_settle_requires_positive_cost(self, finance, store, scope):
        finance.sync_bookings(scope)
        record_id = service_records(store)["li-villa"]["id"]
        with pytest.raises(InvalidAmount):
            finance.settle(scope, record_id, 0)

    def test_settle_missing_record(self, finance, scope):
        with pytest.raises(DocumentNotFound):
            finance.settle(scope, "fr-404", 10)

    def test_summary(self, finance, scope):
        """Income 540 + 900; costs 600 + the 50 payout."""
        finance.sync_bookings(scope)
        summary = finance.summary(scope)

        assert summary["income"] == Decimal("1440.00")
        assert summary["provider_costs"] == Decimal("650.00")
        assert summary["profit"] == Decimal("790.00")
        assert summary["pending"] == 1
