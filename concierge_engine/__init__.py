"""
CONCIERGE LEDGER ENGINE
Pricing, offers, bookings, collaborator commissions and ledger reconciliation
"""

from .models import Booking, CatalogService, Collaborator, LineItem, Offer
from .processor import ConciergeEngine
from .tenancy import TenantScope

__all__ = ['ConciergeEngine', 'TenantScope', 'CatalogService', 'LineItem', 'Offer', 'Booking', 'Collaborator']
