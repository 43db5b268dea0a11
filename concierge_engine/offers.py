"""
Offer Aggregate

A priced list of line items plus notes. Totals are derived on every read;
nothing cached can drift. Once booked, an offer is frozen history.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

from .calculators import DiscountEngine, PriceResolver, quantize_money
from .errors import OfferLocked, PriceUnavailable
from .models import OFFER_BOOKED, OFFER_DRAFT, CatalogService, LineItem, LocalizedText, Offer, normalize_category
from .store import BOOKINGS, OFFERS, LedgerStore
from .tenancy import TenantScope
from .validators import InputValidator

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OfferAggregate:
    """Editing operations and derived totals for one Offer."""

    def __init__(
        self,
        offer: Offer,
        resolver: PriceResolver | None = None,
        discounts: DiscountEngine | None = None,
    ):
        self.offer = offer
        self.resolver = resolver or PriceResolver()
        self.discounts = discounts or DiscountEngine()
        self.validator = InputValidator()

    @classmethod
    def new(cls, scope: TenantScope, client_id: str, notes: str = "", **kwargs) -> "OfferAggregate":
        offer = Offer(id=None, client_id=client_id, company_id=scope.company_id, notes=notes)
        return cls(offer, **kwargs)

    @classmethod
    def load(cls, store: LedgerStore, scope: TenantScope, offer_id: str, **kwargs) -> "OfferAggregate | None":
        """Load an offer; offers of another company are skipped (None)."""
        doc = store.get(OFFERS, offer_id)
        if doc is None or not scope.owns(doc, "offer"):
            return None
        return cls(Offer.from_dict(doc), **kwargs)

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self.offer.status == OFFER_BOOKED:
            raise OfferLocked(self.offer.id)

    def get_item(self, item_id: str) -> LineItem:
        for item in self.offer.items:
            if item.id == item_id:
                return item
        raise ValueError(f"Line item {item_id} is not part of offer {self.offer.id}")

    def add_line_item(self, service: CatalogService, period=None, quantity: int = 1) -> LineItem:
        """
        Price a catalog service and add it to the offer.

        Raises PriceUnavailable when the catalog has no positive price; the
        caller must then use add_custom_item. Adding the same service for
        the same period again bumps the existing line's quantity.
        """
        self._ensure_editable()
        self.validator.validate_quantity(quantity)

        quote = self.resolver.resolve(service, period)
        if not quote.available:
            logger.info(f"Service {service.id} has no resolvable price; manual entry required")
            raise PriceUnavailable(service.id)

        for item in self.offer.items:
            if item.service_id == service.id and item.selected_period == quote.period:
                item.quantity += quantity
                return item

        item = LineItem(
            id=_new_id("li"),
            service_id=service.id,
            category=service.category,
            name=service.name,
            unit_price=quote.unit_price,
            original_price=quote.unit_price,
            quantity=quantity,
            unit=quote.unit,
            selected_period=quote.period,
            source_tag=quote.source_tag,
        )
        self.offer.items.append(item)
        return item

    def add_custom_item(
        self,
        price,
        quantity: int = 1,
        name=None,
        category: str = "custom",
        unit: str = "service",
        service: CatalogService | None = None,
    ) -> LineItem:
        """Manual-entry path: the only way an unpriced service enters an offer."""
        self._ensure_editable()
        self.validator.validate_quantity(quantity)
        unit_price = self.validator.validate_amount(price, "price")

        item = LineItem(
            id=_new_id("li"),
            service_id=service.id if service else None,
            category=service.category if service else normalize_category(category),
            name=service.name if service and name is None else LocalizedText.from_raw(name),
            unit_price=unit_price,
            original_price=unit_price,
            quantity=quantity,
            unit=unit,
            source_tag="manual",
        )
        self.offer.items.append(item)
        return item

    def remove_line_item(self, item_id: str) -> None:
        self._ensure_editable()
        item = self.get_item(item_id)
        self.offer.items.remove(item)

    def update_quantity(self, item_id: str, quantity: int) -> LineItem:
        self._ensure_editable()
        item = self.get_item(item_id)
        item.quantity = self.validator.validate_quantity(quantity)
        return item

    def set_service_dates(self, item_id: str, start: date | None, end: date | None) -> LineItem:
        self._ensure_editable()
        self.validator.validate_service_dates(start, end)
        item = self.get_item(item_id)
        item.service_start_date = start
        item.service_end_date = end
        return item

    def apply_bulk_discount(self, item_ids, discount_type: str, discount_value) -> list[LineItem]:
        """Set the same discount on a subset of lines. Totals stay derived."""
        self._ensure_editable()
        self.discounts.validate(discount_type, discount_value)
        items = [self.get_item(i) for i in item_ids]
        for item in items:
            self.discounts.apply_discount(item, discount_type, discount_value)
        return items

    def set_offer_discount(self, discount_type: str | None, discount_value) -> None:
        self._ensure_editable()
        value = self.discounts.validate(discount_type, discount_value)
        self.offer.discount_type = discount_type if value else None
        self.offer.discount_value = value

    # -------------------------------------------------------------------------
    # Derived totals
    # -------------------------------------------------------------------------

    @property
    def subtotal(self) -> Decimal:
        """Σ original_price × quantity, before any discount."""
        return quantize_money(sum((self.discounts.line_base(i) for i in self.offer.items), Decimal("0")))

    @property
    def line_totals(self) -> Decimal:
        """Σ per-line discounted totals."""
        return quantize_money(sum((self.discounts.line_total(i) for i in self.offer.items), Decimal("0")))

    @property
    def discount_amount(self) -> Decimal:
        return self.discounts.offer_discount(self.subtotal, self.offer.discount_type, self.offer.discount_value)

    @property
    def total(self) -> Decimal:
        """
        Σ line totals minus the offer-level discount on the subtotal.

        The two discounts target different bases and both apply.
        """
        return max(self.line_totals - self.discount_amount, Decimal("0"))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, store: LedgerStore) -> Offer:
        """
        Create or update a draft offer.

        Fails once the offer is booked, including the half-converted case
        where a booking already references it but the flag was never set.
        """
        offer = self.offer
        self._ensure_editable()

        if offer.id is not None:
            stored = store.get(OFFERS, offer.id)
            if stored and stored.get("status") == OFFER_BOOKED:
                raise OfferLocked(offer.id)
            if store.query(BOOKINGS, companyId=offer.company_id, offerId=offer.id):
                raise OfferLocked(offer.id)

        if not offer.items:
            raise ValueError("An offer needs at least one line item")

        now = _now()
        if offer.id is None or store.get(OFFERS, offer.id) is None:
            offer_id = offer.id or _new_id("of")
            doc = replace(offer, id=offer_id, status=OFFER_DRAFT, created_at=offer.created_at or now)
            store.create(OFFERS, offer_id, doc.to_dict())
            logger.info(f"Created offer {offer_id} for client {offer.client_id}")
        else:
            doc = replace(offer, updated_at=now)
            store.update(OFFERS, offer.id, doc.to_dict())
            logger.info(f"Updated offer {offer.id}")

        # Commit to in-memory state only after the write succeeded
        self.offer = doc
        return doc
