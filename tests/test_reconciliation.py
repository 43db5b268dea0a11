"""
Unit Tests for Reconciliation Guard

Tests verify orphan detection, directory normalization and that every job
is idempotent.
"""

import pytest

from concierge_engine.errors import MissingScope
from concierge_engine.reconciliation import ReconciliationGuard, default_permissions, score_record
from concierge_engine.store import (
    AUTHORIZED_USERS,
    BOOKINGS,
    COLLABORATORS,
    FINANCE_RECORDS,
    OFFERS,
    InMemoryStore,
)
from concierge_engine.tenancy import TenantScope


@pytest.fixture
def scope():
    return TenantScope("company1")


class TestPurgeOrphanedPayouts:
    """Test removal of payouts whose booking is gone."""

    @pytest.fixture
    def store(self):
        return InMemoryStore({
            BOOKINGS: [{"id": "bk-live", "companyId": "company1"}],
            FINANCE_RECORDS: [
                {"id": "fr-linked", "companyId": "company1", "serviceKey": "collaborator_payout",
                 "collaboratorId": "col-1", "bookingId": "bk-live", "providerCost": 100, "date": "2025-07-01"},
                {"id": "fr-orphan", "companyId": "company1", "serviceKey": "collaborator_payout",
                 "collaboratorId": "col-1", "bookingId": "bk-deleted", "providerCost": 40, "date": "2025-07-02"},
                {"id": "fr-legacy", "companyId": "company1", "serviceKey": "collaborator_payout",
                 "collaboratorId": "col-2", "providerCost": 30, "date": "2025-06-01"},
                {"id": "fr-service", "companyId": "company1", "serviceKey": "li-villa", "bookingId": "bk-gone",
                 "clientAmount": 540, "date": "2025-07-01"},
                {"id": "fr-other", "companyId": "company2", "serviceKey": "collaborator_payout",
                 "collaboratorId": "col-9", "providerCost": 10, "date": "2025-07-01"},
            ],
            COLLABORATORS: [
                {"id": "col-1", "companyId": "company1", "paidTotal": 140, "scheduledTotal": 0, "payments": [
                    {"amount": 100, "status": "paid", "date": "2025-07-01", "bookingId": "bk-live"},
                    {"amount": 40, "status": "paid", "date": "2025-07-02", "bookingId": "bk-deleted"},
                ]},
                {"id": "col-2", "companyId": "company1", "paidTotal": 30, "scheduledTotal": 0, "payments": [
                    {"amount": 30, "status": "paid", "date": "2025-06-01"},
                ]},
                {"id": "col-9", "companyId": "company2", "paidTotal": 10, "payments": [
                    {"amount": 10, "status": "paid", "date": "2025-07-01"},
                ]},
            ],
        })

    @pytest.fixture
    def guard(self, store):
        return ReconciliationGuard(store)

    def test_orphans_deleted_and_totals_recomputed(self, guard, store, scope):
        report = guard.purge_orphaned_payouts(scope)

        remaining = {r["id"] for r in store.all(FINANCE_RECORDS)}
        assert remaining == {"fr-linked", "fr-service", "fr-other"}
        assert report.deletions == 2
        assert report.upserts == 2

        col_1 = store.get(COLLABORATORS, "col-1")
        assert len(col_1["payments"]) == 1
        assert col_1["paidTotal"] == 100.0

        col_2 = store.get(COLLABORATORS, "col-2")
        assert col_2["payments"] == []
        assert col_2["paidTotal"] == 0.0

    def test_other_company_untouched(self, guard, store, scope):
        guard.purge_orphaned_payouts(scope)
        assert store.get(COLLABORATORS, "col-9")["paidTotal"] == 10

    def test_idempotent(self, guard, store, scope):
        """A second run finds nothing to do."""
        guard.purge_orphaned_payouts(scope)
        before = store.snapshot()

        report = guard.purge_orphaned_payouts(scope)
        assert report.deletions == 0
        assert report.upserts == 0
        assert store.snapshot() == before

    def test_dry_run_writes_nothing(self, guard, store, scope):
        before = store.snapshot()
        report = guard.purge_orphaned_payouts(scope, dry_run=True)

        assert report.deletions == 2
        assert report.dry_run is True
        assert store.snapshot() == before

    def test_actions_logged_per_record(self, guard, scope):
        report = guard.purge_orphaned_payouts(scope)
        assert any("fr-orphan" in a and "bk-deleted" in a for a in report.actions)
        assert any("fr-legacy" in a and "no booking link" in a for a in report.actions)

    def test_requires_scope(self, guard):
        with pytest.raises(MissingScope):
            guard.purge_orphaned_payouts(None)

    def test_reset_collaborators(self, guard, store, scope):
        report = guard.reset_collaborator_payments(scope)

        assert report.upserts == 2
        assert store.get(COLLABORATORS, "col-1")["payments"] == []
        assert store.get(COLLABORATORS, "col-1")["paidTotal"] == 0
        assert {r["id"] for r in store.all(FINANCE_RECORDS)} == {"fr-service", "fr-other"}
        assert guard.reset_collaborator_payments(scope).summary()["upserts"] == 0

    def test_rerun_after_interrupted_collaborator_update(self, store, scope):
        """A run that fails while resetting a collaborator is finished by the next run."""

        class FlakyStore(InMemoryStore):
            failures = 1

            def update(self, collection, doc_id, changes):
                if collection == COLLABORATORS and self.failures:
                    self.failures -= 1
                    raise TimeoutError("write timed out")
                return super().update(collection, doc_id, changes)

        flaky = FlakyStore(store.snapshot())
        guard = ReconciliationGuard(flaky)

        with pytest.raises(TimeoutError):
            guard.purge_orphaned_payouts(scope)

        report = guard.purge_orphaned_payouts(scope)
        assert report.deletions == 2
        assert {r["id"] for r in flaky.all(FINANCE_RECORDS)} == {"fr-linked", "fr-service", "fr-other"}
        col_2 = flaky.get(COLLABORATORS, "col-2")
        assert col_2["payments"] == []
        assert col_2["paidTotal"] == 0.0
        assert flaky.get(COLLABORATORS, "col-1")["paidTotal"] == 100.0

    def test_collaborator_repaired_when_mirror_already_gone(self, guard, store, scope):
        """Payments for a deleted booking are dropped even without a payout mirror."""
        store.delete(FINANCE_RECORDS, "fr-orphan")

        report = guard.purge_orphaned_payouts(scope)

        col_1 = store.get(COLLABORATORS, "col-1")
        assert [p["bookingId"] for p in col_1["payments"]] == ["bk-live"]
        assert col_1["paidTotal"] == 100.0
        assert report.deletions == 1

    def test_purge_orphaned_finance(self, guard, store, scope):
        """Service records of deleted bookings go; payouts and other companies stay."""
        report = guard.purge_orphaned_finance(scope)

        assert report.deletions == 1
        assert any("fr-service" in a and "bk-gone" in a for a in report.actions)
        remaining = {r["id"] for r in store.all(FINANCE_RECORDS)}
        assert remaining == {"fr-linked", "fr-orphan", "fr-legacy", "fr-other"}
        assert guard.purge_orphaned_finance(scope).deletions == 0

    def test_purge_orphaned_finance_dry_run(self, guard, store, scope):
        before = store.snapshot()
        assert guard.purge_orphaned_finance(scope, dry_run=True).deletions == 1
        assert store.snapshot() == before


class TestOfferRepairs:
    """Test offer-level reconciliation jobs."""

    @pytest.fixture
    def store(self):
        return InMemoryStore({
            "clients": [{"id": "client-1", "companyId": "company1"}],
            OFFERS: [
                {"id": "of-half", "companyId": "company1", "clientId": "client-1", "status": "draft"},
                {"id": "of-orphan", "companyId": "company1", "clientId": "client-gone", "status": "draft"},
                {"id": "of-ok", "companyId": "company1", "clientId": "client-1", "status": "draft"},
            ],
            BOOKINGS: [
                {"id": "bk-of-half", "companyId": "company1", "offerId": "of-half"},
                {"id": "bk-lost", "companyId": "company1", "offerId": "of-missing"},
            ],
        })

    @pytest.fixture
    def guard(self, store):
        return ReconciliationGuard(store)

    def test_repair_partial_conversion(self, guard, store, scope):
        """An offer with a booking but no booked flag is marked booked."""
        report = guard.repair_partial_conversions(scope)

        assert store.get(OFFERS, "of-half")["status"] == "booked"
        assert store.get(OFFERS, "of-ok")["status"] == "draft"
        assert report.upserts == 1
        assert report.unresolved == 1
        assert guard.repair_partial_conversions(scope).upserts == 0

    def test_purge_orphaned_offers(self, guard, store, scope):
        report = guard.purge_orphaned_offers(scope)

        assert store.get(OFFERS, "of-orphan") is None
        assert store.get(OFFERS, "of-ok") is not None
        assert report.deletions == 1
        assert guard.purge_orphaned_offers(scope).deletions == 0

    def test_list_finance_data(self, guard):
        report = guard.list_finance_data()
        assert report.actions == ["company1: 0 finance, 3 offers, 2 bookings, 0 collaborators"]
        assert report.upserts == report.deletions == 0


class TestNormalizeDirectory:
    """Test merging of duplicate directory entries."""

    COMPANIES = [
        {"id": "company1", "name": "Lux Concierge", "contactEmail": "owner@lux.com"},
        {"id": "company2", "name": "VIP Services"},
    ]
    ALLOWED = frozenset({"company1", "company2"})

    @pytest.fixture
    def records(self):
        return [
            {"id": "abc123", "email": "Ana@Lux.com ", "companyId": "Lux Concierge", "role": "admin"},
            {"id": "ana@lux.com", "email": "ana@lux.com", "companyName": "lux"},
            {"id": "owner@lux.com", "email": "owner@lux.com", "role": "owner"},
            {"id": "vip-1", "email": "carla@vip.com", "companyName": "vip", "role": "agent"},
            {"id": "lost-1", "email": "bob@nowhere.com", "companyId": "zzz", "role": "staff"},
            {"id": "noemail", "email": "", "role": "staff"},
        ]

    @pytest.fixture
    def store(self, records):
        return InMemoryStore({AUTHORIZED_USERS: records})

    @pytest.fixture
    def guard(self, store):
        return ReconciliationGuard(store)

    def run(self, guard, store, **kwargs):
        return guard.normalize_directory_entries(store.all(AUTHORIZED_USERS), self.COMPANIES, self.ALLOWED, **kwargs)

    def test_dry_run_reports_without_writing(self, guard, store):
        """Without apply, a full report and zero writes."""
        before = store.snapshot()
        report = self.run(guard, store)

        assert report.dry_run is True
        assert report.upserts == 3
        assert report.deletions == 2
        assert report.unresolved == 1
        assert store.snapshot() == before

    def test_apply_requires_scope(self, guard, store):
        with pytest.raises(MissingScope):
            self.run(guard, store, apply=True)

    def test_apply_merges_into_canonical_record(self, guard, store, scope):
        report = self.run(guard, store, scope=scope, apply=True)

        canonical = store.get(AUTHORIZED_USERS, "ana@lux.com")
        assert canonical["companyId"] == "company1"
        assert canonical["companyName"] == "Lux Concierge"
        assert canonical["role"] == "admin"
        assert canonical["permissions"]["finance"] is True
        assert store.get(AUTHORIZED_USERS, "abc123") is None
        assert report.deletions == 1

    def test_contact_email_resolves_company(self, guard, store, scope):
        self.run(guard, store, scope=scope, apply=True)
        assert store.get(AUTHORIZED_USERS, "owner@lux.com")["companyId"] == "company1"

    def test_other_company_skipped_when_scoped(self, guard, store, scope):
        """The vip entry resolves to company2 and is left alone under company1."""
        self.run(guard, store, scope=scope, apply=True)

        assert store.get(AUTHORIZED_USERS, "vip-1") is not None
        assert store.get(AUTHORIZED_USERS, "carla@vip.com") is None

    def test_synonym_resolution(self, guard, store):
        self.run(guard, store, scope=TenantScope("company2"), apply=True)
        assert store.get(AUTHORIZED_USERS, "carla@vip.com")["companyId"] == "company2"

    def test_unresolved_left_in_place(self, guard, store, scope):
        report = self.run(guard, store, scope=scope, apply=True)

        assert store.get(AUTHORIZED_USERS, "lost-1") is not None
        assert any("bob@nowhere.com" in a for a in report.actions)

    def test_idempotent(self, guard, store, scope):
        """Re-running after apply changes nothing."""
        self.run(guard, store, scope=scope, apply=True)
        before = store.snapshot()

        report = self.run(guard, store, scope=scope, apply=True)
        assert report.upserts == 0
        assert report.deletions == 0
        assert store.snapshot() == before


class TestScoring:
    """Test duplicate ranking helpers."""

    def test_valid_company_dominates(self):
        assert score_record({"_companyValid": True}) > score_record(
            {"permissions": {}, "companyName": "x", "role": "admin", "companyId": "x"}
        )

    def test_admin_roles_get_finance(self):
        assert default_permissions("Manager")["finance"] is True
        assert default_permissions("agent")["finance"] is False
