"""
Engine Errors

Validation problems derive from ValueError so callers can keep treating them
as bad input (HTTP 400, exit code 1). State conflicts are plain
ConciergeError subclasses.
"""


class ConciergeError(Exception):
    """Base class for every error raised by the engine."""


class InvalidAmount(ConciergeError, ValueError):
    """A payment amount is non-numeric, not positive, or exceeds what is owed."""


class InvalidDiscount(ConciergeError, ValueError):
    """Unknown discount type or negative discount value."""


class EmptySelection(ConciergeError, ValueError):
    """A conversion was requested with no line items selected."""


class MissingScope(ConciergeError, ValueError):
    """A company-scoped operation was invoked without a company id."""


class AlreadyConverted(ConciergeError):
    """The offer has already been turned into a booking."""

    def __init__(self, offer_id: str, booking_id: str | None = None):
        self.offer_id = offer_id
        self.booking_id = booking_id
        detail = f" (booking {booking_id})" if booking_id else ""
        super().__init__(f"Offer {offer_id} has already been converted{detail}")


class OfferLocked(ConciergeError):
    """A booked offer was edited or saved."""

    def __init__(self, offer_id: str | None):
        self.offer_id = offer_id
        super().__init__(f"Offer {offer_id or '<unsaved>'} is booked and can no longer be modified")


class PriceUnavailable(ConciergeError):
    """
    No positive price could be resolved for a catalog service.

    This is a routing signal rather than a failure: the caller is expected
    to switch to the manual-entry path (OfferAggregate.add_custom_item).
    """

    def __init__(self, service_id: str | None):
        self.service_id = service_id
        super().__init__(f"No price available for service {service_id}; use manual entry")


class DocumentExists(ConciergeError):
    """A create() targeted an id that is already taken."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} already exists")


class DocumentNotFound(ConciergeError, LookupError):
    """An update() or lookup targeted a missing document."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")
