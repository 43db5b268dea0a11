"""
Unit Tests for the Ledger Store, Catalog, Directory and TenantScope
"""

import json

import pytest

from concierge_engine.errors import DocumentExists, DocumentNotFound, MissingScope
from concierge_engine.store import COLLABORATORS, SERVICES, Catalog, Directory, InMemoryStore, JsonFileStore, open_store
from concierge_engine.tenancy import TenantScope


class TestInMemoryStore:
    """Test single-document operations."""

    @pytest.fixture
    def store(self):
        return InMemoryStore({"offers": {"of-1": {"companyId": "company1", "status": "draft"}}})

    def test_create_rejects_existing_id(self, store):
        with pytest.raises(DocumentExists):
            store.create("offers", "of-1", {"status": "draft"})

    def test_update_missing_document(self, store):
        with pytest.raises(DocumentNotFound):
            store.update("offers", "of-404", {"status": "booked"})

    def test_not_found_is_lookup_error(self, store):
        with pytest.raises(LookupError):
            store.update("offers", "of-404", {})

    def test_partial_update(self, store):
        updated = store.update("offers", "of-1", {"status": "booked"})
        assert updated == {"id": "of-1", "companyId": "company1", "status": "booked"}

    def test_returned_documents_are_copies(self, store):
        """Mutating a returned document never changes stored state."""
        doc = store.get("offers", "of-1")
        doc["status"] = "tampered"
        assert store.get("offers", "of-1")["status"] == "draft"

    def test_query_equality_filters(self, store):
        store.create("offers", "of-2", {"companyId": "company2", "status": "draft"})
        assert [d["id"] for d in store.query("offers", companyId="company2")] == ["of-2"]
        assert len(store.query("offers", status="draft")) == 2
        assert store.query("bookings") == []

    def test_set_with_merge(self, store):
        store.set("offers", "of-1", {"notes": "hi"}, merge=True)
        assert store.get("offers", "of-1")["status"] == "draft"
        store.set("offers", "of-1", {"notes": "replaced"})
        assert "status" not in store.get("offers", "of-1")

    def test_delete(self, store):
        assert store.delete("offers", "of-1") is True
        assert store.delete("offers", "of-1") is False


class TestJsonFileStore:
    """Test the JSON snapshot backend."""

    def test_writes_survive_reopen(self, tmp_path):
        path = tmp_path / "ledger.json"
        store = open_store(str(path))
        store.create("bookings", "bk-1", {"companyId": "company1", "totalAmount": 740.0})

        assert json.loads(path.read_text())["bookings"]["bk-1"]["totalAmount"] == 740.0
        assert JsonFileStore(path).get("bookings", "bk-1")["companyId"] == "company1"

    def test_no_path_is_in_memory(self):
        assert type(open_store(None)) is InMemoryStore


class TestCatalogAndDirectory:
    """Test read-only views."""

    @pytest.fixture
    def store(self):
        return InMemoryStore({
            SERVICES: [
                {"id": "v-1", "companyId": "company1", "category": "villas", "flatDaily": 300},
                {"id": "v-2", "companyId": "company2", "category": "villa", "flatDaily": 100},
                {"id": "b-1", "companyId": "company1", "category": "boat", "price": 900},
            ],
            COLLABORATORS: [{"id": "col-1", "companyId": "company1", "commissionRate": 0.1}],
            "clients": [{"id": "client-1", "companyId": "company1"}],
        })

    def test_services_by_category(self, store):
        services = Catalog(store).get_services_by_category("company1", "villa")
        assert [s.id for s in services] == ["v-1"]

    def test_get_service(self, store):
        assert Catalog(store).get_service("b-1").category == "boat"
        assert Catalog(store).get_service("nope") is None

    def test_directory(self, store):
        directory = Directory(store)
        assert [c.id for c in directory.get_collaborators("company1")] == ["col-1"]
        assert directory.get_client("client-1")["companyId"] == "company1"
        assert directory.get_collaborator("col-404") is None


class TestTenantScope:
    """Test scope construction and ownership checks."""

    def test_scope_required(self):
        with pytest.raises(MissingScope):
            TenantScope.require(None)
        with pytest.raises(MissingScope):
            TenantScope.require("  ")

    def test_owns_dict_and_object(self):
        scope = TenantScope.require(" company1 ")
        assert scope.owns({"id": "x", "companyId": "company1"})
        assert not scope.owns({"id": "x", "companyId": "company2"})

    def test_cross_tenant_is_logged(self, caplog):
        TenantScope("company1").owns({"id": "of-9", "companyId": "company2"}, "offer")
        assert "Skipping offer of-9" in caplog.text
