"""
Ledger Store, Catalog and Directory

The engine only needs create/read/update/delete by key plus equality-filter
queries. Each single-document operation is atomic; nothing spans documents.
"""

import copy
import json
import logging
import threading
from pathlib import Path

from .errors import DocumentExists, DocumentNotFound
from .models import CatalogService, Collaborator, normalize_category

logger = logging.getLogger(__name__)

OFFERS = "offers"
BOOKINGS = "bookings"
COLLABORATORS = "collaborators"
FINANCE_RECORDS = "financeRecords"
CLIENTS = "clients"
SERVICES = "services"
AUTHORIZED_USERS = "authorized_users"
COMPANIES = "companies"


class LedgerStore:
    """Interface every storage backend implements."""

    def get(self, collection: str, doc_id: str) -> dict | None:
        raise NotImplementedError

    def create(self, collection: str, doc_id: str, data: dict) -> dict:
        """Insert a document; raises DocumentExists if the id is taken."""
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> dict:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, changes: dict) -> dict:
        """Partial update; raises DocumentNotFound if the document is missing."""
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def query(self, collection: str, **filters) -> list[dict]:
        raise NotImplementedError

    def all(self, collection: str) -> list[dict]:
        return self.query(collection)


class InMemoryStore(LedgerStore):
    """
    Dict-backed store. Documents are deep-copied on the way in and out so
    callers can never mutate stored state by accident.
    """

    def __init__(self, data: dict | None = None):
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, dict]] = {}
        for collection, docs in (data or {}).items():
            if isinstance(docs, list):
                docs = {str(d["id"]): d for d in docs}
            self._collections[collection] = {
                doc_id: {**copy.deepcopy(doc), "id": doc_id} for doc_id, doc in docs.items()
            }

    def _docs(self, collection: str) -> dict[str, dict]:
        return self._collections.setdefault(collection, {})

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def create(self, collection, doc_id, data):
        with self._lock:
            docs = self._docs(collection)
            if doc_id in docs:
                raise DocumentExists(collection, doc_id)
            docs[doc_id] = {**copy.deepcopy(data), "id": doc_id}
            self._persist()
            return copy.deepcopy(docs[doc_id])

    def set(self, collection, doc_id, data, merge=False):
        with self._lock:
            docs = self._docs(collection)
            base = docs.get(doc_id, {}) if merge else {}
            docs[doc_id] = {**base, **copy.deepcopy(data), "id": doc_id}
            self._persist()
            return copy.deepcopy(docs[doc_id])

    def update(self, collection, doc_id, changes):
        with self._lock:
            docs = self._docs(collection)
            if doc_id not in docs:
                raise DocumentNotFound(collection, doc_id)
            docs[doc_id].update(copy.deepcopy(changes))
            self._persist()
            return copy.deepcopy(docs[doc_id])

    def delete(self, collection, doc_id):
        with self._lock:
            removed = self._docs(collection).pop(doc_id, None) is not None
            if removed:
                self._persist()
            return removed

    def query(self, collection, **filters):
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._docs(collection).values()
                if all(doc.get(k) == v for k, v in filters.items())
            ]

    def snapshot(self) -> dict:
        with self._lock:
            return copy.deepcopy(self._collections)

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""


class JsonFileStore(InMemoryStore):
    """InMemoryStore that rewrites a JSON snapshot after every write."""

    def __init__(self, path):
        self.path = Path(path)
        data = {}
        if self.path.exists():
            data = json.loads(self.path.read_text() or "{}")
        super().__init__(data)
        logger.info(f"Loaded ledger store from {self.path}")

    def _persist(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._collections, indent=2, default=str))
        tmp.replace(self.path)


def open_store(path: str | None) -> LedgerStore:
    """JSON-backed store when a path is configured, in-memory otherwise."""
    if path:
        return JsonFileStore(path)
    return InMemoryStore()


class Catalog:
    """Read-only view of catalog services."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def get_service(self, service_id: str) -> CatalogService | None:
        doc = self.store.get(SERVICES, service_id)
        return CatalogService.from_dict(doc) if doc else None

    def get_services_by_category(self, company_id: str, category: str) -> list[CatalogService]:
        wanted = normalize_category(category)
        return [
            CatalogService.from_dict(doc)
            for doc in self.store.query(SERVICES, companyId=company_id)
            if normalize_category(doc.get("category")) == wanted
        ]


class Directory:
    """Client and collaborator lookups."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def get_collaborators(self, company_id: str) -> list[Collaborator]:
        return [Collaborator.from_dict(d) for d in self.store.query(COLLABORATORS, companyId=company_id)]

    def get_collaborator(self, collaborator_id: str) -> Collaborator | None:
        doc = self.store.get(COLLABORATORS, collaborator_id)
        return Collaborator.from_dict(doc) if doc else None

    def get_client(self, client_id: str) -> dict | None:
        return self.store.get(CLIENTS, client_id)
