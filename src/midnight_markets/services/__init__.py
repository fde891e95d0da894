"""Application services: use case orchestration."""

from midnight_markets.services.base import LedgerService, OperationOutcome
from midnight_markets.services.change_feed import ChangeFeed
from midnight_markets.services.marketplace_engine import MarketplaceEngine, build_ledger_store
from midnight_markets.services.markets import MarketService
from midnight_markets.services.moderation import ModerationService
from midnight_markets.services.name_pricing import NameQuote, quote_name
from midnight_markets.services.naming import NamingService
from midnight_markets.services.offer_lifecycle import OfferLifecycleService

__all__ = [
    "ChangeFeed",
    "LedgerService",
    "MarketService",
    "MarketplaceEngine",
    "ModerationService",
    "NameQuote",
    "NamingService",
    "OfferLifecycleService",
    "OperationOutcome",
    "build_ledger_store",
    "quote_name",
]
