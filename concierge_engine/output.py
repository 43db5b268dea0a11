"""
Output Builder

Constructs API responses from engine objects.
"""

from decimal import Decimal

from . import config
from .calculators import DiscountEngine
from .models import Booking, CatalogService, Collaborator, LineItem, PriceQuote
from .offers import OfferAggregate


def to_money(value: Decimal | None) -> float | None:
    """Convert Decimal to float with 2 decimal places."""
    if value is None:
        return None
    return round(float(value), 2)


def _fmt(value) -> str:
    """Format a number as currency string for descriptions."""
    return f"€{value:,.2f}"


def _discount_label(discount_type: str | None, discount_value: Decimal) -> str:
    if not discount_type or not discount_value:
        return "no discount"
    if discount_type == "percentage":
        return f"{discount_value}% off"
    return f"{_fmt(discount_value)} off"


class OutputBuilder:
    """Builds the response dicts returned by the HTTP surfaces."""

    def __init__(self, discounts: DiscountEngine | None = None, language: str = config.DEFAULT_LANGUAGE):
        self.discounts = discounts or DiscountEngine()
        self.language = language

    def build_price(self, service: CatalogService, quote: PriceQuote) -> dict:
        return {
            "service_id": service.id,
            "category": service.category,
            "name": service.name.resolve(self.language),
            "available": quote.available,
            "unit_price": {
                "value": to_money(quote.unit_price),
                "description": (
                    f"{_fmt(quote.unit_price)} per {quote.unit} from {quote.source_tag}"
                    if quote.available else "No catalog price; enter the price manually"
                ),
            },
            "unit": quote.unit,
            "period": quote.period,
            "source": quote.source_tag,
        }

    def build_line_item(self, item: LineItem) -> dict:
        base = self.discounts.line_base(item)
        total = self.discounts.line_total(item)
        return {
            "id": item.id,
            "service_id": item.service_id,
            "name": item.name.resolve(self.language),
            "category": item.category,
            "quantity": item.quantity,
            "unit": item.unit,
            "unit_price": to_money(item.original_price),
            "period": item.selected_period,
            "source": item.source_tag,
            "line_total": {
                "value": to_money(total),
                "description": (
                    f"{_fmt(item.original_price)} × {item.quantity} = {_fmt(base)}, "
                    f"{_discount_label(item.discount_type, item.discount_value)} → {_fmt(total)}"
                ),
            },
        }

    def build_quote(self, aggregate: OfferAggregate) -> dict:
        """Offer summary plus a {value, description} block for each total."""
        offer = aggregate.offer
        subtotal = aggregate.subtotal
        line_totals = aggregate.line_totals
        line_discounts = subtotal - line_totals
        offer_discount = aggregate.discount_amount
        total = aggregate.total

        return {
            "offer_summary": {
                "offer_id": offer.id,
                "client_id": offer.client_id,
                "company_id": offer.company_id,
                "status": offer.status,
                "item_count": len(offer.items),
                "notes": offer.notes,
            },
            "line_items": [self.build_line_item(i) for i in offer.items],
            "calculations": {
                "subtotal": {
                    "value": to_money(subtotal),
                    "description": "Σ original price × quantity, before any discount",
                },
                "line_discounts": {
                    "value": to_money(line_discounts),
                    "description": f"subtotal ({_fmt(subtotal)}) - Σ line totals ({_fmt(line_totals)})",
                },
                "line_totals": {
                    "value": to_money(line_totals),
                    "description": "Σ per-line totals after line discounts",
                },
                "offer_discount": {
                    "value": to_money(offer_discount),
                    "description": (
                        f"{_discount_label(offer.discount_type, offer.discount_value)} on subtotal ({_fmt(subtotal)})"
                        if offer_discount else "No offer-level discount"
                    ),
                },
                "total": {
                    "value": to_money(total),
                    "description": f"max({_fmt(line_totals)} - {_fmt(offer_discount)}, 0) = {_fmt(total)}",
                },
            },
        }

    def build_booking(self, booking: Booking) -> dict:
        return {
            "booking_id": booking.id,
            "offer_id": booking.offer_id,
            "client_id": booking.client_id,
            "company_id": booking.company_id,
            "check_in": booking.check_in.isoformat() if booking.check_in else None,
            "check_out": booking.check_out.isoformat() if booking.check_out else None,
            "accommodation_type": booking.accommodation_type,
            "collaborator_id": booking.collaborator_id,
            "total_amount": to_money(booking.total_amount),
            "total_paid": to_money(booking.total_paid),
            "payment_status": booking.payment_status,
            "services": [
                {
                    "id": s.id,
                    "name": s.name.resolve(self.language),
                    "start": s.service_start_date.isoformat() if s.service_start_date else None,
                    "end": s.service_end_date.isoformat() if s.service_end_date else None,
                    "line_total": to_money(self.discounts.line_total(s)),
                    "amount_paid": to_money(s.amount_paid),
                    "payment_status": s.payment_status,
                }
                for s in booking.services
            ],
            "payment_history": [
                {
                    "amount": to_money(p.amount),
                    "date": p.date.isoformat() if p.date else None,
                    "method": p.method,
                    "service_id": p.service_id,
                }
                for p in booking.payment_history
            ],
        }

    def build_collaborator(self, collaborator: Collaborator) -> dict:
        return {
            "id": collaborator.id,
            "name": collaborator.name,
            "paid_total": to_money(collaborator.paid_total),
            "scheduled_total": to_money(collaborator.scheduled_total),
            "payments": [p.to_dict() for p in collaborator.payments],
        }

    def build_collaborator_stats(self, stats: list[dict]) -> list[dict]:
        return [
            {
                "id": s["id"],
                "name": s["name"],
                "commission_rate": float(s["commission_rate"]),
                "booking_count": s["booking_count"],
                "total_commission": to_money(s["total_commission"]),
                "paid_total": to_money(s["paid_total"]),
                "scheduled_total": to_money(s["scheduled_total"]),
                "outstanding": {
                    "value": to_money(s["outstanding"]),
                    "description": (
                        f"max(commission ({_fmt(s['total_commission'])}) - paid ({_fmt(s['paid_total'])}), 0)"
                    ),
                },
            }
            for s in stats
        ]
