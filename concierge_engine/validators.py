"""
Input Validation for the Concierge Ledger Engine

Validates values before any engine operation writes anything.
Raises ValueError subclasses with clear messages for constraint violations.
"""

from datetime import date
from decimal import Decimal, InvalidOperation

from .errors import InvalidAmount
from .models import PAYMENT_PAID, PAYMENT_SCHEDULED, LineItem, PaymentRecord


class InputValidator:
    """Validates engine input according to business rules."""

    def validate_amount(self, amount, label: str = "amount") -> Decimal:
        """Amounts must be numeric and strictly positive."""
        if amount is None or isinstance(amount, bool):
            raise InvalidAmount(f"{label} must be numeric, got: {amount!r}")
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidAmount(f"{label} must be numeric, got: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise InvalidAmount(f"{label} must be positive, got: {amount}")
        return value

    def validate_quantity(self, quantity) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValueError(f"quantity must be an integer >= 1, got: {quantity!r}")
        return quantity

    def validate_service_dates(self, start: date | None, end: date | None) -> None:
        if start is not None and end is not None and end < start:
            raise ValueError(f"service end date {end} is before start date {start}")

    def validate_amount_paid(self, item: LineItem, line_total: Decimal) -> None:
        """amountPaid must stay within [0, line total]."""
        if item.amount_paid < 0:
            raise InvalidAmount(f"amountPaid cannot be negative on item {item.id}: {item.amount_paid}")
        if item.amount_paid > line_total:
            raise InvalidAmount(
                f"amountPaid ({item.amount_paid}) exceeds line total ({line_total}) on item {item.id}"
            )

    def validate_payment(self, entry: PaymentRecord) -> None:
        """Validate a collaborator payout entry."""
        self.validate_amount(entry.amount)
        if entry.status not in (PAYMENT_PAID, PAYMENT_SCHEDULED):
            raise ValueError(f"Invalid payment status: {entry.status}. Must be 'paid' or 'scheduled'")
        if entry.date is None:
            raise ValueError("payment date is required")

    def validate_commission_rate(self, rate: Decimal) -> None:
        if not (0 <= rate <= 1):
            raise ValueError(f"commissionRate must be between 0 and 1, got: {rate}")
