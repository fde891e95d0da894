"""Database infrastructure: engine, ORM models, and the SQL Ledger Store."""

from midnight_markets.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from midnight_markets.infrastructure.database.orm_models import (
    Base,
    EscrowBalanceRow,
    LedgerEventRow,
    MarketRow,
    NameRegistrationRow,
    OfferRow,
    PayoutRow,
    PlatformRow,
)
from midnight_markets.infrastructure.database.sql_store import SqlLedgerStore

__all__ = [
    "Base",
    "EscrowBalanceRow",
    "LedgerEventRow",
    "MarketRow",
    "NameRegistrationRow",
    "OfferRow",
    "PayoutRow",
    "PlatformRow",
    "SqlLedgerStore",
    "build_engine",
    "build_session_factory",
    "create_tables",
]
