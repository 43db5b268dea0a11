"""
Calculators Package

Pure pricing and discount components shared by offers and bookings.
"""

from .discount import DiscountEngine, quantize_money
from .pricing import PriceResolver, normalize_period, normalize_unit

__all__ = [
    "DiscountEngine",
    "PriceResolver",
    "normalize_period",
    "normalize_unit",
    "quantize_money",
]
