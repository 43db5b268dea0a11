"""
Concierge Engine - Main Orchestrator

Dict-in / dict-out facade over the engine components, used by the Flask
API and the Lambda handler.
"""

import json
import logging
from typing import Any, Dict

from . import config
from .booking import BookingConverter, BookingPayments
from .calculators import DiscountEngine, PriceResolver
from .commission import CommissionLedger
from .errors import DocumentNotFound
from .finance import FinanceSync
from .models import CatalogService, LineItem, Offer
from .offers import OfferAggregate
from .output import OutputBuilder, to_money
from .store import BOOKINGS, COLLABORATORS, OFFERS, SERVICES, Catalog, InMemoryStore, LedgerStore, open_store
from .tenancy import TenantScope

logger = logging.getLogger(__name__)


class ConciergeEngine:
    """
    Main orchestrator for offer pricing and the booking ledger.

    Quote pipeline:
    1. Resolve each catalog service price (or take the manual price)
    2. Apply line-level discounts
    3. Apply the offer-level discount
    4. Build output

    Store-backed operations take a TenantScope and write through the
    component that owns the invariant.
    """

    def __init__(self, store: LedgerStore | None = None, current_period=None):
        self.store = store if store is not None else open_store(config.STORE_PATH)
        self.resolver = PriceResolver(current_period)
        self.discounts = DiscountEngine()
        self.catalog = Catalog(self.store)
        self.converter = BookingConverter(self.store, self.discounts)
        self.payments = BookingPayments(self.store, self.discounts)
        self.ledger = CommissionLedger(self.store)
        self.finance = FinanceSync(self.store, self.discounts)
        self.output_builder = OutputBuilder(self.discounts)

    # -------------------------------------------------------------------------
    # Stateless
    # -------------------------------------------------------------------------

    def price_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve the price of one catalog service dict."""
        raw = data.get("service", data)
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise ValueError("A catalog service with an 'id' is required")
        service = CatalogService.from_dict(raw)
        quote = self.resolver.resolve(service, data.get("period"))
        return self.output_builder.build_price(service, quote)

    def quote_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Price an offer without persisting it."""
        offer = Offer(
            id=None,
            client_id=data.get("clientId"),
            company_id=data.get("companyId"),
            notes=data.get("notes") or "",
        )
        aggregate = self._aggregate(offer)
        self._fill(aggregate, data, lookup=self._inline_service)
        return self.output_builder.build_quote(aggregate)

    # -------------------------------------------------------------------------
    # Store-backed
    # -------------------------------------------------------------------------

    def create_offer(self, scope: TenantScope, data: Dict[str, Any]) -> Dict[str, Any]:
        """Build and save a draft offer from catalog service ids."""
        if not data.get("clientId"):
            raise ValueError("clientId is required")
        aggregate = OfferAggregate.new(
            scope,
            data["clientId"],
            notes=data.get("notes") or "",
            resolver=self.resolver,
            discounts=self.discounts,
        )
        self._fill(aggregate, data, lookup=lambda entry: self._catalog_service(scope, entry))
        aggregate.save(self.store)
        return self.output_builder.build_quote(aggregate)

    def convert_offer(self, scope: TenantScope, offer_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert a saved offer into a booking.

        data["selection"] may list item ids or item dicts carrying operator
        edits (serviceStartDate, serviceEndDate, amountPaid).
        """
        aggregate = OfferAggregate.load(self.store, scope, offer_id, resolver=self.resolver, discounts=self.discounts)
        if aggregate is None:
            raise DocumentNotFound(OFFERS, offer_id)

        selection = data.get("selection")
        if selection is not None:
            selection = [self._selected_item(aggregate, entry) for entry in selection]

        booking = self.converter.convert(scope, aggregate, selection, collaborator_id=data.get("collaboratorId"))
        return self.output_builder.build_booking(booking)

    def record_service_payment(self, scope: TenantScope, booking_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        booking = self.payments.record_service_payment(
            scope,
            booking_id,
            data.get("serviceId"),
            data.get("amount"),
            method=data.get("method") or "cash",
            reference=data.get("reference"),
            note=data.get("note"),
        )
        if booking is None:
            raise DocumentNotFound(BOOKINGS, booking_id)
        return self.output_builder.build_booking(booking)

    def record_collaborator_payment(self, scope: TenantScope, collaborator_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        collaborator = self.ledger.record_payment(scope, collaborator_id, data)
        if collaborator is None:
            raise DocumentNotFound(COLLABORATORS, collaborator_id)
        return self.output_builder.build_collaborator(collaborator)

    def collaborator_stats(self, scope: TenantScope) -> list[Dict[str, Any]]:
        return self.output_builder.build_collaborator_stats(self.ledger.collaborator_stats(scope))

    def sync_finance(self, scope: TenantScope) -> Dict[str, Any]:
        counts = self.finance.sync_bookings(scope)
        summary = self.finance.summary(scope)
        return {
            "sync": counts,
            "summary": {
                "income": to_money(summary["income"]),
                "provider_costs": to_money(summary["provider_costs"]),
                "profit": to_money(summary["profit"]),
                "pending": summary["pending"],
            },
        }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _aggregate(self, offer: Offer) -> OfferAggregate:
        return OfferAggregate(offer, resolver=self.resolver, discounts=self.discounts)

    def _fill(self, aggregate: OfferAggregate, data: Dict[str, Any], lookup) -> None:
        """Add each requested service, then the discounts."""
        entries = data.get("services")
        if not isinstance(entries, list) or not entries:
            raise ValueError("'services' must be a non-empty list")

        for entry in entries:
            quantity = entry.get("quantity", 1)
            if entry.get("price") is not None:
                service = lookup(entry) if entry.get("service") or entry.get("serviceId") else None
                item = aggregate.add_custom_item(
                    entry["price"],
                    quantity=quantity,
                    name=entry.get("name"),
                    category=entry.get("category") or "custom",
                    unit=entry.get("unit") or "service",
                    service=service,
                )
            else:
                item = aggregate.add_line_item(lookup(entry), entry.get("period"), quantity)

            if entry.get("discountType"):
                aggregate.apply_bulk_discount([item.id], entry["discountType"], entry.get("discountValue"))

        if data.get("discountType"):
            aggregate.set_offer_discount(data["discountType"], data.get("discountValue"))

    @staticmethod
    def _inline_service(entry: Dict[str, Any]) -> CatalogService:
        raw = entry.get("service")
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise ValueError("Each service entry needs a catalog 'service' with an 'id', or a manual 'price'")
        return CatalogService.from_dict(raw)

    def _catalog_service(self, scope: TenantScope, entry: Dict[str, Any]) -> CatalogService:
        service_id = entry.get("serviceId")
        service = self.catalog.get_service(service_id) if service_id else None
        if service is None or not scope.owns(service, "service"):
            raise DocumentNotFound(SERVICES, service_id)
        return service

    @staticmethod
    def _selected_item(aggregate: OfferAggregate, entry):
        if not isinstance(entry, dict):
            return str(entry)
        item_id = str(entry.get("id"))
        try:
            original = aggregate.get_item(item_id)
        except ValueError:
            return item_id
        return LineItem.from_dict({**original.to_dict(), **entry})


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def quote_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Price an offer from a Python dict and return a Python dict."""
    return ConciergeEngine(store=InMemoryStore()).quote_from_dict(input_data)


def quote_from_json(json_input: str) -> str:
    """Price an offer from a JSON string and return a JSON string."""
    try:
        input_data = json.loads(json_input)
        result = quote_from_dict(input_data)
        return json.dumps(result, indent=2, ensure_ascii=False)

    except ValueError as e:
        error_response = {"error": str(e), "status": "validation_failed"}
        return json.dumps(error_response, indent=2)

    except Exception as e:
        logger.error(f"Unexpected error pricing quote: {e}", exc_info=True)
        error_response = {"error": "Internal error", "status": "error"}
        return json.dumps(error_response, indent=2)
