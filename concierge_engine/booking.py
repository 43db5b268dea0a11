"""
Booking Converter

Turns an accepted offer into a Booking. The booking id is derived from the
offer id, which makes the offer id the idempotency key: a second conversion
either finds the existing booking or collides on create().

Write order without transactions:
1. create the Booking (fails if one already exists)
2. mark the Offer booked
A crash between the two leaves a booking whose offer is still a draft;
is_converted() treats that as converted and
ReconciliationGuard.repair_partial_conversions() finishes the job.
"""

import copy
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from . import config
from .calculators import DiscountEngine, quantize_money
from .errors import AlreadyConverted, DocumentExists, DocumentNotFound, EmptySelection, InvalidAmount
from .models import (
    OFFER_BOOKED,
    PAID,
    PARTIALLY_PAID,
    PAYMENT_PAID,
    UNPAID,
    Booking,
    LineItem,
    Offer,
    PaymentRecord,
)
from .offers import OfferAggregate
from .store import BOOKINGS, OFFERS, LedgerStore
from .tenancy import TenantScope
from .validators import InputValidator

logger = logging.getLogger(__name__)

CONVERSION_METHOD = "offer-conversion"

_ACCOMMODATION_WORDS = ("villa", "room", "apartment")


def booking_id_for(offer_id: str) -> str:
    return f"bk-{offer_id}"


def derive_payment_status(total_amount: Decimal, total_paid: Decimal) -> str:
    """A zero-value booking is never 'paid'."""
    if total_amount > 0 and total_paid >= total_amount:
        return PAID
    if total_paid > 0:
        return PARTIALLY_PAID
    return UNPAID


def find_booking_for_offer(store: LedgerStore, offer: Offer) -> dict | None:
    existing = store.get(BOOKINGS, booking_id_for(offer.id))
    if existing is not None:
        return existing
    matches = store.query(BOOKINGS, companyId=offer.company_id, offerId=offer.id)
    return matches[0] if matches else None


def is_converted(store: LedgerStore, offer: Offer) -> bool:
    """Booked flag or an existing booking: either way the offer is converted."""
    return offer.status == OFFER_BOOKED or find_booking_for_offer(store, offer) is not None


def accommodation_type(services: list[LineItem], language: str = "en") -> str:
    for item in services:
        name = item.name.to_raw()
        plain = name.lower() if isinstance(name, str) else ""
        if item.category == "villa" or any(word in plain for word in _ACCOMMODATION_WORDS):
            return item.name.resolve(language) or "Villa"
    return "Various Services"


class BookingConverter:
    """Converts offers into bookings with per-service payment tracking."""

    def __init__(
        self,
        store: LedgerStore,
        discounts: DiscountEngine | None = None,
        stay_days: int = config.DEFAULT_STAY_DAYS,
    ):
        self.store = store
        self.discounts = discounts or DiscountEngine()
        self.stay_days = stay_days
        self.validator = InputValidator()

    def convert(
        self,
        scope: TenantScope,
        offer: Offer | OfferAggregate,
        selection=None,
        collaborator_id: str | None = None,
        today: date | None = None,
    ) -> Booking | None:
        """
        Convert an offer into a Booking.

        selection: line-item ids, or LineItem copies edited by the operator
        (dates, amountPaid). Defaults to every item on the offer.

        Returns None when the offer belongs to another company.
        """
        aggregate = offer if isinstance(offer, OfferAggregate) else None
        offer = aggregate.offer if aggregate else offer
        today = today or date.today()

        if not scope.owns(offer, "offer"):
            return None
        if offer.id is None:
            raise ValueError("Offer must be saved before it can be converted")

        # Step 1: Reject double conversion; the stored status wins over a stale copy
        stored = self.store.get(OFFERS, offer.id)
        if offer.status == OFFER_BOOKED or (stored is not None and stored.get("status") == OFFER_BOOKED):
            raise AlreadyConverted(offer.id)
        existing = find_booking_for_offer(self.store, offer)
        if existing is not None:
            logger.warning(f"Offer {offer.id} already has booking {existing['id']} but is not marked booked")
            raise AlreadyConverted(offer.id, existing["id"])

        # Steps 2-5: Build the booking in memory
        services = self._select_services(offer, selection, today)
        booking = self._build_booking(offer, services, collaborator_id, today)

        # Step 6: Persist booking first, then flag the offer
        try:
            self.store.create(BOOKINGS, booking.id, booking.to_dict())
        except DocumentExists:
            raise AlreadyConverted(offer.id, booking.id)
        logger.info(
            f"Converted offer {offer.id} into booking {booking.id}: "
            f"total {booking.total_amount}, paid {booking.total_paid} ({booking.payment_status})"
        )

        self.store.update(OFFERS, offer.id, {
            "status": OFFER_BOOKED,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        })
        if aggregate is not None:
            aggregate.offer = replace(offer, status=OFFER_BOOKED)

        return booking

    def _select_services(self, offer: Offer, selection, today: date) -> list[LineItem]:
        """Clone the selected items; the offer keeps its own copies."""
        by_id = {item.id: item for item in offer.items}
        if selection is None:
            chosen = list(offer.items)
        else:
            chosen = []
            for entry in selection:
                item_id = entry.id if isinstance(entry, LineItem) else str(entry)
                if item_id not in by_id:
                    raise ValueError(f"Line item {item_id} is not part of offer {offer.id}")
                chosen.append(entry if isinstance(entry, LineItem) else by_id[item_id])

        if not chosen:
            raise EmptySelection(f"No line items selected for offer {offer.id}")

        services = []
        for source in chosen:
            item = copy.deepcopy(source)
            original = by_id[item.id]
            # Prices come from the offer, never from an operator-edited copy
            item.unit_price = original.unit_price
            item.original_price = original.original_price
            item.quantity = original.quantity
            item.discount_type = original.discount_type
            item.discount_value = original.discount_value

            # Step 2: Default service dates; a lone past end date gets a default-length stay ending on it
            if item.service_start_date is None:
                end = item.service_end_date
                if end is not None and end < today:
                    item.service_start_date = end - timedelta(days=self.stay_days)
                else:
                    item.service_start_date = today
            if item.service_end_date is None:
                item.service_end_date = item.service_start_date + timedelta(days=self.stay_days)
            self.validator.validate_service_dates(item.service_start_date, item.service_end_date)

            line_total = self.discounts.line_total(item)
            self.validator.validate_amount_paid(item, line_total)
            item.payment_status = derive_payment_status(line_total, item.amount_paid)
            services.append(item)
        return services

    def _build_booking(
        self,
        offer: Offer,
        services: list[LineItem],
        collaborator_id: str | None,
        today: date,
    ) -> Booking:
        # Step 3: Covered date range
        check_in = min(s.service_start_date for s in services)
        check_out = max(s.service_end_date for s in services)

        # Steps 4-5: Totals and payment status over the selection only
        total_amount = quantize_money(sum((self.discounts.line_total(s) for s in services), Decimal("0")))
        total_paid = quantize_money(sum((s.amount_paid for s in services), Decimal("0")))

        booking_id = booking_id_for(offer.id)
        now = datetime.now(timezone.utc)

        # Step 7: Pre-payments show up in the payment history
        history = [
            PaymentRecord(
                amount=s.amount_paid,
                date=today,
                status=PAYMENT_PAID,
                method=CONVERSION_METHOD,
                reference=s.id,
                note=f"Paid before conversion: {s.name.resolve(config.DEFAULT_LANGUAGE) or s.id}",
                created_at=now,
                booking_id=booking_id,
                service_id=s.id,
            )
            for s in services
            if s.amount_paid > 0
        ]

        return Booking(
            id=booking_id,
            offer_id=offer.id,
            client_id=offer.client_id,
            company_id=offer.company_id,
            check_in=check_in,
            check_out=check_out,
            services=services,
            total_amount=total_amount,
            total_paid=total_paid,
            payment_status=derive_payment_status(total_amount, total_paid),
            collaborator_id=collaborator_id,
            accommodation_type=accommodation_type(services, config.DEFAULT_LANGUAGE),
            payment_history=history,
            created_at=now,
        )


class BookingPayments:
    """Records client payments against individual booked services."""

    def __init__(self, store: LedgerStore, discounts: DiscountEngine | None = None):
        self.store = store
        self.discounts = discounts or DiscountEngine()
        self.validator = InputValidator()

    def record_service_payment(
        self,
        scope: TenantScope,
        booking_id: str,
        service_id: str,
        amount,
        method: str = "cash",
        reference: str | None = None,
        note: str | None = None,
        paid_on: date | None = None,
    ) -> Booking | None:
        """
        Add a payment to one service of a booking and re-derive the totals.

        The service's amountPaid may never exceed its discounted line total.
        Returns None when the booking belongs to another company.
        """
        value = self.validator.validate_amount(amount)

        doc = self.store.get(BOOKINGS, booking_id)
        if doc is None:
            raise DocumentNotFound(BOOKINGS, booking_id)
        if not scope.owns(doc, "booking"):
            return None

        booking = Booking.from_dict(doc)
        service = next((s for s in booking.services if s.id == service_id), None)
        if service is None:
            raise ValueError(f"Service {service_id} is not part of booking {booking_id}")

        line_total = self.discounts.line_total(service)
        new_paid = service.amount_paid + value
        if new_paid > line_total:
            raise InvalidAmount(
                f"Payment of {value} would bring {service_id} to {new_paid}, above its total of {line_total}"
            )
        service.amount_paid = new_paid
        service.payment_status = derive_payment_status(line_total, new_paid)

        booking.payment_history.append(PaymentRecord(
            amount=value,
            date=paid_on or date.today(),
            status=PAYMENT_PAID,
            method=method,
            reference=reference,
            note=note,
            created_at=datetime.now(timezone.utc),
            booking_id=booking.id,
            service_id=service.id,
        ))
        booking.total_paid = quantize_money(sum((s.amount_paid for s in booking.services), Decimal("0")))
        booking.payment_status = derive_payment_status(booking.total_amount, booking.total_paid)

        self.store.update(BOOKINGS, booking.id, {
            "services": [s.to_dict() for s in booking.services],
            "paymentHistory": [p.to_dict() for p in booking.payment_history],
            "totalPaid": float(booking.total_paid),
            "paymentStatus": booking.payment_status,
        })
        logger.info(f"Recorded {value} ({method}) on booking {booking.id} service {service_id}")
        return booking
