"""
Price Resolver

Turns a catalog service with overlapping pricing representations into a
single unit price and unit. Each rule is a pure function returning a
PriceQuote or None; the resolver runs them in order and the first match wins.
"""

from datetime import date
from decimal import Decimal

from ..models import HOURLY_CATEGORIES, CatalogService, PriceQuote

# Seasonal fallback order when the requested month has no price
CANONICAL_MONTHS = ("may", "june", "july", "august", "september", "october")

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

STANDARD_PERIOD = "standard"

# Substring -> unit, checked in order ("nightly" must not read as "day")
_UNIT_KEYWORDS = (
    ("week", "week"),
    ("night", "night"),
    ("month", "month"),
    ("hour", "hour"),
    ("day", "day"),
    ("daily", "day"),
    ("service", "service"),
    ("fixed", "service"),
    ("flat", "service"),
    ("trip", "service"),
    ("event", "service"),
)


def default_unit(category: str) -> str:
    """Staff is billed per hour, everything else per day."""
    return "hour" if category in HOURLY_CATEGORIES else "day"


def normalize_unit(declared: str | None, category: str) -> str:
    """Map a free-form declared type ('per week', 'Nightly') onto a unit."""
    text = str(declared or "").strip().lower()
    for keyword, unit in _UNIT_KEYWORDS:
        if keyword in text:
            return unit
    return default_unit(category)


def normalize_period(period) -> str | None:
    """Accept a month name in any case, a date, or 'standard'."""
    if period is None:
        return None
    if isinstance(period, date):
        return MONTH_NAMES[period.month - 1]
    text = str(period).strip().lower()
    if not text:
        return None
    if text == STANDARD_PERIOD:
        return STANDARD_PERIOD
    for month in MONTH_NAMES:
        if month.startswith(text[:3]) and len(text) >= 3:
            return month
    return text


def _positive(value: Decimal | None) -> bool:
    return value is not None and value > 0


# =============================================================================
# RESOLUTION RULES
# =============================================================================


def resolve_flat_daily(service: CatalogService, period: str | None) -> PriceQuote | None:
    if _positive(service.flat_daily):
        return PriceQuote(service.flat_daily, "day", "flat_daily")
    return None


def resolve_seasonal(service: CatalogService, period: str | None) -> PriceQuote | None:
    if not period or period == STANDARD_PERIOD:
        return None
    entry = service.monthly_seasonal.get(period)
    if entry is None or not _positive(entry.price):
        return None
    return PriceQuote(
        entry.price,
        normalize_unit(entry.unit_type, service.category),
        f"seasonal:{period}",
        period=period,
    )


def resolve_seasonal_fallback(service: CatalogService, period: str | None) -> PriceQuote | None:
    for month in CANONICAL_MONTHS:
        entry = service.monthly_seasonal.get(month)
        if entry is not None and _positive(entry.price):
            return PriceQuote(
                entry.price,
                normalize_unit(entry.unit_type, service.category),
                f"seasonal_fallback:{month}",
                period=month,
            )
    return None


def resolve_legacy_config(service: CatalogService, period: str | None) -> PriceQuote | None:
    if not service.legacy_config_list:
        return None
    config = service.legacy_config_list[0]
    if not _positive(config.price):
        return None
    return PriceQuote(config.price, normalize_unit(config.type, service.category), "legacy_config")


def resolve_generic_rate(service: CatalogService, period: str | None) -> PriceQuote | None:
    # generic_rate preserves GENERIC_RATE_FIELDS priority order
    for rate_field, amount in service.generic_rate.items():
        if _positive(amount):
            return PriceQuote(amount, default_unit(service.category), f"generic:{rate_field}")
    return None


class PriceResolver:
    """
    Resolves the effective unit price of a catalog service.

    Priority order:
    1. Flat daily price
    2. Seasonal price for the requested (or current) month
    3. First populated seasonal month, May through October
    4. First legacy price configuration
    5. Generic rate fields (price, dailyPrice, rate, hourlyRate)

    The current period is injected, never read from the clock, so identical
    inputs always produce identical quotes.
    """

    RULES = (
        resolve_flat_daily,
        resolve_seasonal,
        resolve_seasonal_fallback,
        resolve_legacy_config,
        resolve_generic_rate,
    )

    def __init__(self, current_period=None):
        self.current_period = normalize_period(current_period)

    def resolve(self, service: CatalogService, period=None) -> PriceQuote:
        """Return the first matching quote, or an unavailable quote."""
        requested = normalize_period(period) or self.current_period
        for rule in self.RULES:
            quote = rule(service, requested)
            if quote is not None:
                return quote
        return PriceQuote.unavailable()
