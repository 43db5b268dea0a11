"""
Commission Ledger

Per-collaborator payment history, newest first. paidTotal and
scheduledTotal are recomputed from the full, freshly read list on every
write; they are never incremented in place. Concurrent writers race with
last-writer-wins and no locking.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

from .calculators import quantize_money
from .errors import DocumentNotFound
from .models import (
    BOOKING_CONFIRMED,
    COLLABORATOR_PAYOUT,
    FINANCE_PENDING,
    FINANCE_SETTLED,
    PAYMENT_PAID,
    PAYMENT_SCHEDULED,
    Booking,
    Collaborator,
    FinanceRecord,
    PaymentRecord,
)
from .store import BOOKINGS, COLLABORATORS, FINANCE_RECORDS, LedgerStore
from .tenancy import TenantScope
from .validators import InputValidator

logger = logging.getLogger(__name__)


def compute_totals(payments: list[PaymentRecord]) -> tuple[Decimal, Decimal]:
    """(paid_total, scheduled_total) from the whole history."""
    paid = sum((p.amount for p in payments if p.status == PAYMENT_PAID), Decimal("0"))
    scheduled = sum((p.amount for p in payments if p.status == PAYMENT_SCHEDULED), Decimal("0"))
    return quantize_money(paid), quantize_money(scheduled)


class CommissionLedger:
    """Records collaborator payouts and mirrors them into the finance ledger."""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.validator = InputValidator()

    def _to_entry(self, entry) -> PaymentRecord:
        if isinstance(entry, PaymentRecord):
            return replace(entry)
        # Check the raw amount before parsing swallows a non-numeric value
        self.validator.validate_amount(entry.get("amount"))
        return PaymentRecord.from_dict(entry)

    def record_payment(self, scope: TenantScope, collaborator, entry) -> Collaborator | None:
        """
        Prepend a payment, recompute totals, and emit the finance mirror.

        Returns the updated Collaborator, or None when it belongs to another
        company. The object passed in is never mutated.
        """
        entry = self._to_entry(entry)
        if entry.date is None:
            entry.date = date.today()
        entry.created_at = entry.created_at or datetime.now(timezone.utc)
        self.validator.validate_payment(entry)

        collaborator_id = collaborator.id if isinstance(collaborator, Collaborator) else str(collaborator)
        doc = self.store.get(COLLABORATORS, collaborator_id)
        if doc is None:
            raise DocumentNotFound(COLLABORATORS, collaborator_id)
        if not scope.owns(doc, "collaborator"):
            return None

        fresh = Collaborator.from_dict(doc)
        payments = [entry] + fresh.payments
        paid_total, scheduled_total = compute_totals(payments)

        self.store.update(COLLABORATORS, collaborator_id, {
            "payments": [p.to_dict() for p in payments],
            "paidTotal": float(paid_total),
            "scheduledTotal": float(scheduled_total),
        })

        mirror = FinanceRecord(
            id=f"fr-{uuid.uuid4().hex[:12]}",
            company_id=fresh.company_id,
            collaborator_id=collaborator_id,
            booking_id=entry.booking_id,
            service_key=COLLABORATOR_PAYOUT,
            client_amount=Decimal("0"),
            provider_cost=entry.amount,
            status=FINANCE_SETTLED if entry.status == PAYMENT_PAID else FINANCE_PENDING,
            date=entry.date,
            description=f"Collaborator payout - {fresh.name or collaborator_id}",
            created_at=entry.created_at,
        )
        self.store.create(FINANCE_RECORDS, mirror.id, mirror.to_dict())

        logger.info(
            f"Recorded {entry.status} payout of {entry.amount} to collaborator {collaborator_id} "
            f"(paid {paid_total}, scheduled {scheduled_total})"
        )
        return replace(fresh, payments=payments, paid_total=paid_total, scheduled_total=scheduled_total)

    def confirmed_bookings(self, scope: TenantScope, collaborator: Collaborator) -> list[Booking]:
        docs = self.store.query(
            BOOKINGS,
            companyId=scope.company_id,
            collaboratorId=collaborator.id,
            status=BOOKING_CONFIRMED,
        )
        return [Booking.from_dict(d) for d in docs]

    def total_commission(self, scope: TenantScope, collaborator: Collaborator) -> Decimal:
        """Σ booking total × commission rate over confirmed attributed bookings."""
        self.validator.validate_commission_rate(collaborator.commission_rate)
        bookings = self.confirmed_bookings(scope, collaborator)
        return quantize_money(sum(
            (b.total_amount * collaborator.commission_rate for b in bookings), Decimal("0")
        ))

    def outstanding(self, scope: TenantScope, collaborator: Collaborator) -> Decimal:
        """What is still owed: never negative, even after overpayment."""
        paid_total, _ = compute_totals(collaborator.payments)
        return max(self.total_commission(scope, collaborator) - paid_total, Decimal("0"))

    def collaborator_stats(self, scope: TenantScope) -> list[dict]:
        """Booking count, commission and payout totals for every collaborator in scope."""
        stats = []
        for doc in self.store.query(COLLABORATORS, companyId=scope.company_id):
            collaborator = Collaborator.from_dict(doc)
            paid_total, scheduled_total = compute_totals(collaborator.payments)
            total_commission = self.total_commission(scope, collaborator)
            stats.append({
                "id": collaborator.id,
                "name": collaborator.name,
                "commission_rate": collaborator.commission_rate,
                "booking_count": len(self.confirmed_bookings(scope, collaborator)),
                "total_commission": total_commission,
                "paid_total": paid_total,
                "scheduled_total": scheduled_total,
                "outstanding": max(total_commission - paid_total, Decimal("0")),
            })
        return stats
