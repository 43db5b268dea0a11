"""
Discount Engine

Line totals and offer-level discounts. Discounts are always computed from
original_price so re-applying a discount never compounds.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..errors import InvalidDiscount
from ..models import DISCOUNT_TYPES, LineItem

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using half-up rounding."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class DiscountEngine:
    """Computes discounted totals for line items and offers."""

    def validate(self, discount_type: str | None, discount_value) -> Decimal:
        """Check a discount pair and return the value as Decimal."""
        try:
            value = Decimal(str(discount_value or 0))
        except ArithmeticError:
            raise InvalidDiscount(f"discount value must be numeric, got: {discount_value!r}")
        if not value.is_finite() or value < 0:
            raise InvalidDiscount(f"discount value cannot be negative, got: {discount_value}")
        if value > 0 and discount_type not in DISCOUNT_TYPES:
            raise InvalidDiscount(
                f"Invalid discount type: {discount_type}. Must be 'percentage' or 'fixed'"
            )
        return value

    def discounted(self, base: Decimal, discount_type: str | None, discount_value) -> Decimal:
        """Apply one percentage-or-fixed discount to a base, floored at zero."""
        value = Decimal(str(discount_value or 0))
        if not value:
            return quantize_money(base)
        if discount_type == "percentage":
            return quantize_money(max(base * (1 - value / HUNDRED), ZERO))
        if discount_type == "fixed":
            return quantize_money(max(base - value, ZERO))
        raise InvalidDiscount(f"Invalid discount type: {discount_type}")

    def line_base(self, item: LineItem) -> Decimal:
        return item.original_price * item.quantity

    def line_total(self, item: LineItem) -> Decimal:
        """
        Payable total of one line.

        base = original_price × quantity, then the line's own discount.
        """
        return self.discounted(self.line_base(item), item.discount_type, item.discount_value)

    def apply_discount(self, item: LineItem, discount_type: str, discount_value) -> LineItem:
        """Set discount fields only; unit and original prices are untouched."""
        item.discount_value = self.validate(discount_type, discount_value)
        item.discount_type = discount_type if item.discount_value else None
        return item

    def offer_discount(self, subtotal: Decimal, discount_type: str | None, discount_value) -> Decimal:
        """
        Offer-level discount amount, computed on the undiscounted subtotal.

        Independent of any per-line discounts: both may be present.
        """
        return quantize_money(subtotal - self.discounted(subtotal, discount_type, discount_value))
