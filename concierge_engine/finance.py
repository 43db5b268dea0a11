"""
Finance Sync

Keeps one finance record per booked service, keyed by (booking, service).
Client amounts follow the booking; provider costs entered in finance are
never overwritten by a resync.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from . import config
from .calculators import DiscountEngine, quantize_money
from .errors import DocumentNotFound
from .models import COLLABORATOR_PAYOUT, FINANCE_PENDING, FINANCE_SETTLED, Booking, FinanceRecord
from .store import BOOKINGS, CLIENTS, FINANCE_RECORDS, LedgerStore
from .tenancy import TenantScope
from .validators import InputValidator

logger = logging.getLogger(__name__)


class FinanceSync:
    """Derives service-level finance records from bookings."""

    def __init__(self, store: LedgerStore, discounts: DiscountEngine | None = None):
        self.store = store
        self.discounts = discounts or DiscountEngine()
        self.validator = InputValidator()

    def sync_bookings(self, scope: TenantScope, today: date | None = None) -> dict:
        """
        Create missing records and refresh changed client amounts.

        Bookings whose client no longer exists are skipped.
        Returns {"created": n, "updated": n, "skipped": n}.
        """
        today = today or date.today()
        existing = {
            (r.get("bookingId"), r.get("serviceKey")): r
            for r in self.store.query(FINANCE_RECORDS, companyId=scope.company_id)
            if r.get("serviceKey") != COLLABORATOR_PAYOUT
        }
        counts = {"created": 0, "updated": 0, "skipped": 0}

        for doc in self.store.query(BOOKINGS, companyId=scope.company_id):
            booking = Booking.from_dict(doc)
            if booking.client_id and self.store.get(CLIENTS, booking.client_id) is None:
                logger.info(f"Skipping booking {booking.id}: client {booking.client_id} no longer exists")
                counts["skipped"] += 1
                continue

            for service in booking.services:
                client_amount = self.discounts.line_total(service)
                current = existing.get((booking.id, service.id))

                if current is None:
                    record = FinanceRecord(
                        id=f"fr-{uuid.uuid4().hex[:12]}",
                        company_id=scope.company_id,
                        booking_id=booking.id,
                        client_id=booking.client_id,
                        service_key=service.id,
                        client_amount=client_amount,
                        provider_cost=service.provider_cost,
                        status=FINANCE_SETTLED if service.provider_cost else FINANCE_PENDING,
                        date=booking.check_in or today,
                        description=f"{service.name.resolve(config.DEFAULT_LANGUAGE) or service.category} - "
                                    f"{booking.check_in} to {booking.check_out}",
                        created_at=datetime.now(timezone.utc),
                    )
                    self.store.create(FINANCE_RECORDS, record.id, record.to_dict())
                    counts["created"] += 1
                elif Decimal(str(current.get("clientAmount") or 0)) != client_amount:
                    self.store.update(FINANCE_RECORDS, current["id"], {"clientAmount": float(client_amount)})
                    counts["updated"] += 1

        logger.info(f"Finance sync for {scope.company_id}: {counts}")
        return counts

    def settle(self, scope: TenantScope, record_id: str, provider_cost) -> FinanceRecord | None:
        """Enter the provider cost of a record and mark it settled."""
        cost = self.validator.validate_amount(provider_cost, "providerCost")
        doc = self.store.get(FINANCE_RECORDS, record_id)
        if doc is None:
            raise DocumentNotFound(FINANCE_RECORDS, record_id)
        if not scope.owns(doc, "finance record"):
            return None
        updated = self.store.update(FINANCE_RECORDS, record_id, {
            "providerCost": float(cost),
            "status": FINANCE_SETTLED,
        })
        return FinanceRecord.from_dict(updated)

    def summary(self, scope: TenantScope) -> dict:
        records = [FinanceRecord.from_dict(d) for d in self.store.query(FINANCE_RECORDS, companyId=scope.company_id)]
        income = sum((r.client_amount for r in records), Decimal("0"))
        costs = sum((r.provider_cost or Decimal("0") for r in records), Decimal("0"))
        return {
            "income": quantize_money(income),
            "provider_costs": quantize_money(costs),
            "profit": quantize_money(income - costs),
            "pending": sum(1 for r in records if r.status == FINANCE_PENDING or r.provider_cost is None),
        }
