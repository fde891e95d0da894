"""Shared test fixtures for the Midnight Markets test suite.

Provides:
    - Test settings (no .env, in-memory SQLite URL)
    - A manually advanced clock for timeout tests
    - MarketplaceEngine instances over the in-memory and SQL Ledger Stores
    - Seeded market/offer fixtures at each lifecycle stage
    - A mocked Redis client with SET NX semantics
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from midnight_markets.config import Settings
from midnight_markets.infrastructure.database.sql_store import SqlLedgerStore
from midnight_markets.infrastructure.ledger_store import InMemoryLedgerStore
from midnight_markets.services.marketplace_engine import MarketplaceEngine

OWNER = "1"
MARKET_ID = 1
OFFER_ID = 101
SHERIFF = "sheriffA"
SELLER = "sellerX"
BUYER = "buyerY"
AMOUNT = 1000


@dataclass
class FakeClock:
    """Clock that only moves when told to."""

    now: datetime = field(default_factory=lambda: datetime(2025, 1, 1, 12, 0, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Configuration Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        app_env="development",
        ledger_backend="memory",
        database_url="sqlite+aiosqlite:///:memory:",
        platform_owner_id=OWNER,
        platform_fee_bps=0,
        change_feed_queue_size=8,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Engine Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(settings: Settings, clock: FakeClock) -> MarketplaceEngine:
    """Engine over a fresh in-memory Ledger Store."""
    engine = await MarketplaceEngine.create(settings, store=InMemoryLedgerStore(), clock=clock)
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def sql_engine(settings: Settings, clock: FakeClock) -> MarketplaceEngine:
    """Engine over the SQLAlchemy Ledger Store on in-memory SQLite."""
    store = SqlLedgerStore("sqlite+aiosqlite:///:memory:")
    engine = await MarketplaceEngine.create(settings, store=store, clock=clock)
    yield engine
    await engine.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def any_engine(request: pytest.FixtureRequest, settings: Settings, clock: FakeClock):
    """The same engine over each Ledger Store backend."""
    if request.param == "sql":
        store = SqlLedgerStore("sqlite+aiosqlite:///:memory:")
    else:
        store = InMemoryLedgerStore()
    engine = await MarketplaceEngine.create(settings, store=store, clock=clock)
    yield engine
    await engine.close()


# ---------------------------------------------------------------------------
# Seeded Ledger Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def open_offer(engine: MarketplaceEngine) -> MarketplaceEngine:
    """Market 1 (sheriffA, 100 bps) holding Open offer 101 for 1000."""
    created = await engine.call_operation("createMarket", [MARKET_ID, SHERIFF, "Electronics", 100])
    assert created.success, created
    posted = await engine.call_operation(
        "postOffer", [OFFER_ID, MARKET_ID, SELLER, AMOUNT, "hashABC"]
    )
    assert posted.success, posted
    return engine


@pytest_asyncio.fixture
async def accepted_offer(open_offer: MarketplaceEngine) -> MarketplaceEngine:
    result = await open_offer.call_operation("acceptOffer", [OFFER_ID, BUYER, MARKET_ID, AMOUNT])
    assert result.success, result
    return open_offer


@pytest_asyncio.fixture
async def proven_offer(accepted_offer: MarketplaceEngine) -> MarketplaceEngine:
    result = await accepted_offer.call_operation("submitProof", [OFFER_ID, SELLER, "proofDEF"])
    assert result.success, result
    return accepted_offer


@pytest.fixture
def assert_conserved() -> Callable[[MarketplaceEngine], Awaitable[None]]:
    """Check escrow conservation for every market.

    Each balance equals the amounts of that market's Accepted/ProofSubmitted
    offers, and every deposit ever accepted is either still in escrow or paid out.
    """

    async def check(engine: MarketplaceEngine) -> None:
        state = await engine.get_state()
        for escrow in state.escrow_balances:
            offers = [o for o in state.offers if o.market_id == escrow.market_id]
            held = sum(o.amount for o in offers if o.status.holds_escrow)
            assert escrow.balance == held
            deposited = sum(o.amount for o in offers if o.accepted_at is not None)
            paid = sum(p.amount for p in state.payouts if p.market_id == escrow.market_id)
            assert deposited == escrow.balance + paid

    return check


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def redis_client() -> MagicMock:
    """Mocked redis.asyncio client backed by a dict (set/exists/delete/ping)."""
    keys: dict[str, str] = {}

    def set_(key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in keys:
            return None
        keys[key] = value
        return True

    client = MagicMock()
    client.keys_store = keys
    client.set = AsyncMock(side_effect=set_)
    client.exists = AsyncMock(side_effect=lambda *names: sum(name in keys for name in names))
    client.delete = AsyncMock(
        side_effect=lambda *names: sum(keys.pop(name, None) is not None for name in names)
    )
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client
