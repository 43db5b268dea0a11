"""
Tenant Scope

Every store-touching engine call receives a TenantScope. Ownership checks
live here instead of being repeated next to each query.
"""

import logging
from dataclasses import dataclass

from .errors import MissingScope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantScope:
    """The company an operation is allowed to read and write."""

    company_id: str

    @classmethod
    def require(cls, company_id: str | None) -> "TenantScope":
        """Build a scope, refusing to default to 'all companies'."""
        if company_id is None or not str(company_id).strip():
            raise MissingScope("A company id is required for this operation")
        return cls(company_id=str(company_id).strip())

    def owns(self, record, kind: str = "record") -> bool:
        """
        True when the record belongs to this company.

        Records from another company are not an error: legacy data contains
        cross-referenced documents, so the caller skips them and we log.
        """
        company_id = record.get("companyId") if isinstance(record, dict) else getattr(record, "company_id", None)
        if company_id == self.company_id:
            return True
        record_id = record.get("id") if isinstance(record, dict) else getattr(record, "id", None)
        logger.warning(
            f"Skipping {kind} {record_id}: belongs to company {company_id!r}, scope is {self.company_id!r}"
        )
        return False
