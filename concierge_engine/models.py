"""
Domain Models for the Concierge Ledger Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values use Decimal for precision. from_dict/to_dict read and
write the camelCase document shape kept in the Ledger Store.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

# =============================================================================
# CONSTANTS
# =============================================================================

CATEGORIES = (
    "villa", "boat", "car", "chef", "security",
    "nanny", "excursion", "custom", "core-concierge",
)

# Legacy collection names and spellings found in older documents
_CATEGORY_ALIASES = {
    "villas": "villa",
    "boats": "boat",
    "cars": "car",
    "chefs": "chef",
    "nannies": "nanny",
    "excursions": "excursion",
    "core_concierge": "core-concierge",
    "coreconcierge": "core-concierge",
    "concierge": "core-concierge",
}

HOURLY_CATEGORIES = frozenset({"chef", "security", "nanny"})

UNITS = ("day", "night", "week", "month", "hour", "service")

DISCOUNT_TYPES = ("percentage", "fixed")

UNPAID = "unpaid"
PARTIALLY_PAID = "partially_paid"
PAID = "paid"

OFFER_DRAFT = "draft"
OFFER_BOOKED = "booked"

BOOKING_CONFIRMED = "confirmed"

PAYMENT_PAID = "paid"
PAYMENT_SCHEDULED = "scheduled"

FINANCE_SETTLED = "settled"
FINANCE_PENDING = "pending"

COLLABORATOR_PAYOUT = "collaborator_payout"


# =============================================================================
# PARSING HELPERS
# =============================================================================


def parse_amount(value) -> Decimal | None:
    """Parse a legacy numeric field. Blanks and garbage count as absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_date(value) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def normalize_category(value) -> str:
    category = str(value or "custom").strip().lower()
    category = _CATEGORY_ALIASES.get(category, category)
    return category if category in CATEGORIES else "custom"


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


# =============================================================================
# CATALOG MODELS
# =============================================================================


@dataclass
class LocalizedText:
    """
    A name that is either a plain string or a {language: text} mapping.

    The engine never interprets it; resolve() is for presentation only.
    """

    raw: str | dict | None = None

    @classmethod
    def from_raw(cls, value) -> "LocalizedText":
        if isinstance(value, LocalizedText):
            return value
        return cls(raw=value)

    def resolve(self, language: str = "en") -> str:
        if isinstance(self.raw, dict):
            text = self.raw.get(language) or self.raw.get("en")
            if not text:
                text = next((v for v in self.raw.values() if v), "")
            return str(text)
        return "" if self.raw is None else str(self.raw)

    def to_raw(self):
        return self.raw


@dataclass
class SeasonalPrice:
    """One month entry of a seasonal price table."""

    price: Decimal | None
    unit_type: str | None = None

    @classmethod
    def from_raw(cls, value) -> "SeasonalPrice":
        if isinstance(value, dict):
            return cls(
                price=parse_amount(value.get("price")),
                unit_type=value.get("unitType") or value.get("type"),
            )
        return cls(price=parse_amount(value))


@dataclass
class PriceConfiguration:
    """An entry of the legacy ordered price-configuration list."""

    price: Decimal | None
    type: str | None = None
    month: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PriceConfiguration":
        return cls(
            price=parse_amount(data.get("price")),
            type=data.get("type"),
            month=data.get("month"),
        )


# Generic rate fields, in priority order
GENERIC_RATE_FIELDS = ("price", "dailyPrice", "rate", "hourlyRate")


@dataclass
class CatalogService:
    """A read-only catalog entry with up to five pricing representations."""

    id: str
    category: str
    name: LocalizedText = field(default_factory=LocalizedText)
    company_id: str | None = None
    flat_daily: Decimal | None = None
    monthly_seasonal: dict[str, SeasonalPrice] = field(default_factory=dict)
    legacy_config_list: list[PriceConfiguration] = field(default_factory=list)
    generic_rate: dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "CatalogService":
        pricing = data.get("pricing") if isinstance(data.get("pricing"), dict) else {}

        flat = data.get("flatDaily")
        if flat is None:
            flat = pricing.get("daily")

        monthly = data.get("monthlySeasonal") or pricing.get("monthly") or {}
        seasonal = {
            str(month).strip().lower(): SeasonalPrice.from_raw(entry)
            for month, entry in monthly.items()
        }

        configs = data.get("legacyConfigList") or data.get("priceConfigurations") or []
        legacy = [PriceConfiguration.from_dict(c) for c in configs if isinstance(c, dict)]

        generic = {}
        for rate_field in GENERIC_RATE_FIELDS:
            amount = parse_amount(data.get(rate_field))
            if amount is not None:
                generic[rate_field] = amount

        return cls(
            id=str(data["id"]),
            category=normalize_category(data.get("category")),
            name=LocalizedText.from_raw(data.get("name")),
            company_id=data.get("companyId"),
            flat_daily=parse_amount(flat),
            monthly_seasonal=seasonal,
            legacy_config_list=legacy,
            generic_rate=generic,
        )


@dataclass
class PriceQuote:
    """Result of price resolution. source_tag is for audits, not arithmetic."""

    unit_price: Decimal | None
    unit: str | None
    source_tag: str
    period: str | None = None

    @property
    def available(self) -> bool:
        return self.unit_price is not None and self.unit_price > 0

    @classmethod
    def unavailable(cls) -> "PriceQuote":
        return cls(unit_price=None, unit=None, source_tag="unavailable")


# =============================================================================
# OFFER / BOOKING MODELS
# =============================================================================


@dataclass
class LineItem:
    """One priced, quantified service inside an Offer or Booking."""

    id: str
    category: str
    unit_price: Decimal
    original_price: Decimal
    quantity: int = 1
    unit: str = "day"
    service_id: str | None = None
    name: LocalizedText = field(default_factory=LocalizedText)
    discount_type: str | None = None
    discount_value: Decimal = Decimal("0")
    selected_period: str | None = None
    source_tag: str | None = None
    service_start_date: date | None = None
    service_end_date: date | None = None
    payment_status: str = UNPAID
    amount_paid: Decimal = Decimal("0")
    provider_cost: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        unit_price = parse_amount(data.get("unitPrice", data.get("price"))) or Decimal("0")
        original = parse_amount(data.get("originalPrice"))
        return cls(
            id=str(data["id"]),
            category=normalize_category(data.get("category")),
            unit_price=unit_price,
            original_price=original if original is not None else unit_price,
            quantity=int(data.get("quantity") or 1),
            unit=data.get("unit") or "day",
            service_id=data.get("serviceId"),
            name=LocalizedText.from_raw(data.get("name")),
            discount_type=data.get("discountType"),
            discount_value=parse_amount(data.get("discountValue")) or Decimal("0"),
            selected_period=data.get("selectedPeriod"),
            source_tag=data.get("sourceTag"),
            service_start_date=parse_date(data.get("serviceStartDate", data.get("startDate"))),
            service_end_date=parse_date(data.get("serviceEndDate", data.get("endDate"))),
            payment_status=data.get("paymentStatus") or UNPAID,
            amount_paid=parse_amount(data.get("amountPaid")) or Decimal("0"),
            provider_cost=parse_amount(data.get("providerCost")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serviceId": self.service_id,
            "category": self.category,
            "name": self.name.to_raw(),
            "unitPrice": _num(self.unit_price),
            "originalPrice": _num(self.original_price),
            "quantity": self.quantity,
            "unit": self.unit,
            "discountType": self.discount_type,
            "discountValue": _num(self.discount_value),
            "selectedPeriod": self.selected_period,
            "sourceTag": self.source_tag,
            "serviceStartDate": _iso(self.service_start_date),
            "serviceEndDate": _iso(self.service_end_date),
            "paymentStatus": self.payment_status,
            "amountPaid": _num(self.amount_paid),
            "providerCost": _num(self.provider_cost),
        }


@dataclass
class Offer:
    """A quote for a client. Totals are derived, never stored."""

    id: str | None
    client_id: str
    company_id: str
    items: list[LineItem] = field(default_factory=list)
    notes: str = ""
    status: str = OFFER_DRAFT
    discount_type: str | None = None
    discount_value: Decimal = Decimal("0")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_booked(self) -> bool:
        return self.status == OFFER_BOOKED

    @classmethod
    def from_dict(cls, data: dict) -> "Offer":
        return cls(
            id=data.get("id"),
            client_id=data.get("clientId"),
            company_id=data.get("companyId"),
            items=[LineItem.from_dict(i) for i in data.get("items", [])],
            notes=data.get("notes") or "",
            status=data.get("status") or OFFER_DRAFT,
            discount_type=data.get("discountType"),
            discount_value=parse_amount(data.get("discountValue")) or Decimal("0"),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "companyId": self.company_id,
            "items": [i.to_dict() for i in self.items],
            "notes": self.notes,
            "status": self.status,
            "discountType": self.discount_type,
            "discountValue": _num(self.discount_value),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class PaymentRecord:
    """A single payment, either against a booking service or to a collaborator."""

    amount: Decimal
    date: date
    status: str = PAYMENT_PAID
    method: str | None = None
    reference: str | None = None
    note: str | None = None
    created_at: datetime | None = None
    booking_id: str | None = None
    service_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentRecord":
        return cls(
            amount=parse_amount(data.get("amount")) or Decimal("0"),
            date=parse_date(data.get("date")),
            status=data.get("status") or PAYMENT_PAID,
            method=data.get("method"),
            reference=data.get("reference"),
            note=data.get("note"),
            created_at=parse_datetime(data.get("createdAt")),
            booking_id=data.get("bookingId"),
            service_id=data.get("serviceId"),
        )

    def to_dict(self) -> dict:
        return {
            "amount": _num(self.amount),
            "date": _iso(self.date),
            "status": self.status,
            "method": self.method,
            "reference": self.reference,
            "note": self.note,
            "createdAt": _iso(self.created_at),
            "bookingId": self.booking_id,
            "serviceId": self.service_id,
        }


@dataclass
class Booking:
    """The accepted, financially authoritative form of an Offer."""

    id: str
    client_id: str
    company_id: str
    check_in: date
    check_out: date
    services: list[LineItem] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    payment_status: str = UNPAID
    offer_id: str | None = None
    collaborator_id: str | None = None
    status: str = BOOKING_CONFIRMED
    accommodation_type: str | None = None
    payment_history: list[PaymentRecord] = field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Booking":
        return cls(
            id=data["id"],
            client_id=data.get("clientId"),
            company_id=data.get("companyId"),
            check_in=parse_date(data.get("checkIn")),
            check_out=parse_date(data.get("checkOut")),
            services=[LineItem.from_dict(s) for s in data.get("services", [])],
            total_amount=parse_amount(data.get("totalAmount")) or Decimal("0"),
            total_paid=parse_amount(data.get("totalPaid")) or Decimal("0"),
            payment_status=data.get("paymentStatus") or UNPAID,
            offer_id=data.get("offerId"),
            collaborator_id=data.get("collaboratorId"),
            status=data.get("status") or BOOKING_CONFIRMED,
            accommodation_type=data.get("accommodationType"),
            payment_history=[PaymentRecord.from_dict(p) for p in data.get("paymentHistory", [])],
            created_at=parse_datetime(data.get("createdAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "offerId": self.offer_id,
            "clientId": self.client_id,
            "companyId": self.company_id,
            "checkIn": _iso(self.check_in),
            "checkOut": _iso(self.check_out),
            "services": [s.to_dict() for s in self.services],
            "totalAmount": _num(self.total_amount),
            "totalPaid": _num(self.total_paid),
            "paymentStatus": self.payment_status,
            "collaboratorId": self.collaborator_id,
            "status": self.status,
            "accommodationType": self.accommodation_type,
            "paymentHistory": [p.to_dict() for p in self.payment_history],
            "createdAt": _iso(self.created_at),
        }


# =============================================================================
# LEDGER MODELS
# =============================================================================


@dataclass
class Collaborator:
    """A referral partner. paid_total/scheduled_total are always recomputed."""

    id: str
    company_id: str
    commission_rate: Decimal = Decimal("0")
    name: str | None = None
    email: str | None = None
    payments: list[PaymentRecord] = field(default_factory=list)
    paid_total: Decimal = Decimal("0")
    scheduled_total: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "Collaborator":
        return cls(
            id=data["id"],
            company_id=data.get("companyId"),
            commission_rate=parse_amount(data.get("commissionRate")) or Decimal("0"),
            name=data.get("name"),
            email=data.get("email"),
            payments=[PaymentRecord.from_dict(p) for p in data.get("payments") or []],
            paid_total=parse_amount(data.get("paidTotal")) or Decimal("0"),
            scheduled_total=parse_amount(data.get("scheduledTotal")) or Decimal("0"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "email": self.email,
            "commissionRate": _num(self.commission_rate),
            "payments": [p.to_dict() for p in self.payments],
            "paidTotal": _num(self.paid_total),
            "scheduledTotal": _num(self.scheduled_total),
        }


@dataclass
class FinanceRecord:
    """A company-wide ledger entry mirroring a financial event."""

    company_id: str
    service_key: str
    date: date
    client_amount: Decimal = Decimal("0")
    provider_cost: Decimal | None = None
    status: str = FINANCE_PENDING
    description: str = ""
    id: str | None = None
    collaborator_id: str | None = None
    booking_id: str | None = None
    client_id: str | None = None
    created_at: datetime | None = None

    @property
    def profit(self) -> Decimal:
        return self.client_amount - (self.provider_cost or Decimal("0"))

    @classmethod
    def from_dict(cls, data: dict) -> "FinanceRecord":
        return cls(
            id=data.get("id"),
            company_id=data.get("companyId"),
            service_key=data.get("serviceKey") or "",
            date=parse_date(data.get("date")),
            client_amount=parse_amount(data.get("clientAmount")) or Decimal("0"),
            provider_cost=parse_amount(data.get("providerCost")),
            status=data.get("status") or FINANCE_PENDING,
            description=data.get("description") or "",
            collaborator_id=data.get("collaboratorId"),
            booking_id=data.get("bookingId"),
            client_id=data.get("clientId"),
            created_at=parse_datetime(data.get("createdAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "collaboratorId": self.collaborator_id,
            "bookingId": self.booking_id,
            "clientId": self.client_id,
            "serviceKey": self.service_key,
            "clientAmount": _num(self.client_amount),
            "providerCost": _num(self.provider_cost),
            "status": self.status,
            "date": _iso(self.date),
            "description": self.description,
            "createdAt": _iso(self.created_at),
        }
