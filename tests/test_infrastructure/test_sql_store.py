"""Tests for the SQLAlchemy Ledger Store on in-memory SQLite."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from midnight_markets.domain.enums import EntityType, EventType, OfferStatus, PayoutKind
from midnight_markets.domain.exceptions import AlreadyExistsError
from midnight_markets.domain.models import (
    EscrowBalance,
    LedgerEvent,
    Market,
    NameRegistration,
    Offer,
    Payout,
    PlatformState,
)
from midnight_markets.infrastructure.database.orm_models import EscrowBalanceRow, OfferRow
from midnight_markets.infrastructure.database.sql_store import SqlLedgerStore, _SqlTransaction
from midnight_markets.infrastructure.ledger_store import offer_key

pytestmark = pytest.mark.sql

CREATED = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def store() -> SqlLedgerStore:
    store = SqlLedgerStore("sqlite+aiosqlite:///:memory:")
    await store.initialize(PlatformState(owner_id="1", platform_fee_bps=25))
    yield store
    await store.close()


def _offer(**overrides) -> Offer:
    fields = {
        "id": 101,
        "market_id": 1,
        "seller_id": "sellerX",
        "amount": 1000,
        "details_hash": "hashABC",
        "created_at": CREATED,
    }
    fields.update(overrides)
    return Offer(**fields)


class TestSqlLedgerStore:
    @pytest.mark.asyncio
    async def test_genesis_persisted(self, store: SqlLedgerStore) -> None:
        snapshot = await store.snapshot()
        assert snapshot.platform == PlatformState(owner_id="1", platform_fee_bps=25)

    @pytest.mark.asyncio
    async def test_entities_round_trip(self, store: SqlLedgerStore) -> None:
        market = Market(id=1, sheriff_id="sheriffA", name="Electronics", sheriff_fee_bps=100)
        offer = _offer(
            status=OfferStatus.PROOF_SUBMITTED,
            buyer_id="buyerY",
            proof_hash="proofDEF",
            accepted_at=CREATED,
            proof_submitted_at=CREATED,
        )
        name = NameRegistration(
            name_hash="abc", owner_token="sheriffA", price=10, registered_at=CREATED
        )
        payout = Payout(
            offer_id=101, market_id=1, recipient="sellerX", amount=990, kind=PayoutKind.SELLER
        )

        async with store.transaction(offer_key(101)) as tx:
            await tx.write(EntityType.MARKET, 1, market)
            await tx.write(EntityType.OFFER, 101, offer)
            await tx.write(EntityType.ESCROW, 1, EscrowBalance(market_id=1, balance=1000))
            await tx.write(EntityType.NAME, "abc", name)
            await tx.write(EntityType.PAYOUT, payout.key, payout)

        snapshot = await store.snapshot()
        assert snapshot.markets == (market,)
        assert snapshot.offers[0].status is OfferStatus.PROOF_SUBMITTED
        assert snapshot.offers[0].proof_hash == "proofDEF"
        assert snapshot.offers[0].created_at == CREATED
        assert snapshot.escrow_balances == (EscrowBalance(market_id=1, balance=1000),)
        assert snapshot.name_registry[0].owner_token == "sheriffA"
        assert snapshot.payouts == (payout,)

    @pytest.mark.asyncio
    async def test_update_overwrites_row(self, store: SqlLedgerStore) -> None:
        async with store.transaction() as tx:
            await tx.write(EntityType.OFFER, 101, _offer())
        async with store.transaction() as tx:
            await tx.write(EntityType.OFFER, 101, _offer(status=OfferStatus.CANCELLED))
            assert (await tx.read(EntityType.OFFER, 101)).status is OfferStatus.CANCELLED

        offers = (await store.snapshot()).offers
        assert len(offers) == 1
        assert offers[0].status is OfferStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, store: SqlLedgerStore) -> None:
        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                await tx.write(EntityType.OFFER, 101, _offer())
                tx.append_event(
                    LedgerEvent(
                        event_type=EventType.OFFER_POSTED,
                        operation="postOffer",
                        actor="sellerX",
                        offer_id=101,
                    )
                )
                raise RuntimeError("abort")

        assert (await store.snapshot()).offers == ()
        assert await store.events() == []

    @pytest.mark.asyncio
    async def test_events_kept_in_order_with_payload(self, store: SqlLedgerStore) -> None:
        async with store.transaction() as tx:
            for event_type, new_status in [
                (EventType.OFFER_POSTED, OfferStatus.OPEN),
                (EventType.OFFER_ACCEPTED, OfferStatus.ACCEPTED),
            ]:
                tx.append_event(
                    LedgerEvent(
                        event_type=event_type,
                        operation="op",
                        actor="a",
                        market_id=1,
                        offer_id=101,
                        new_status=new_status,
                        data={"amount": 1000},
                    )
                )

        events = await store.events(offer_id=101)
        assert [e.event_type for e in events] == [EventType.OFFER_POSTED, EventType.OFFER_ACCEPTED]
        assert events[1].new_status is OfferStatus.ACCEPTED
        assert events[1].data == {"amount": 1000}
        assert await store.events(market_id=2) == []


class TestCrossProcessLocking:
    @pytest.mark.asyncio
    async def test_server_database_reads_take_row_locks(self) -> None:
        session = MagicMock()
        session.get = AsyncMock(return_value=None)
        tx = _SqlTransaction(session, lock_rows=True)

        assert await tx.read(EntityType.OFFER, 101) is None

        session.get.assert_awaited_once_with(OfferRow, 101, with_for_update=True)

    @pytest.mark.asyncio
    async def test_sqlite_reads_without_row_locks(self) -> None:
        session = MagicMock()
        session.get = AsyncMock(return_value=None)
        tx = _SqlTransaction(session)

        await tx.read(EntityType.ESCROW, 1)

        session.get.assert_awaited_once_with(EscrowBalanceRow, 1)

    @pytest.mark.asyncio
    async def test_lock_mode_follows_dialect(self, store: SqlLedgerStore) -> None:
        server = SqlLedgerStore("postgresql+asyncpg://mm:mm@localhost:5432/midnight_markets")
        try:
            assert server._lock_rows is True
            assert store._lock_rows is False
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_lost_insert_race_reports_already_exists(self) -> None:
        session = MagicMock()
        session.merge = AsyncMock()
        session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT INTO offers", {}, Exception("duplicate key"))
        )
        tx = _SqlTransaction(session, lock_rows=True)

        with pytest.raises(AlreadyExistsError) as exc_info:
            await tx.write(EntityType.OFFER, 101, _offer())

        assert exc_info.value.code == "ALREADY_EXISTS"
        assert exc_info.value.details == {"entity": "offer", "key": 101}
