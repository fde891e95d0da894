"""SQLAlchemy-backed Ledger Store.

Each store transaction is one database transaction: every write is merged
and flushed in order, and the whole unit commits when the block exits
cleanly or rolls back when it raises. Per-key asyncio locks serialize
operations on the same market/offer inside this process; the database
transaction provides the all-or-nothing guarantee.

Across worker processes the in-process locks do not help, so on server
databases every read takes a row lock (SELECT ... FOR UPDATE) held until
commit. A second process touching the same offer or escrow row waits for
the first to commit and then reads its result, so a repeated release sees
FundsReleased and escrow updates never overwrite each other. An insert
that loses a race on a primary key surfaces as AlreadyExistsError.

SQLite allows one writer and in-memory SQLite shares a single connection,
so on SQLite every session additionally runs under one store-wide lock.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from midnight_markets.domain.enums import EntityType
from midnight_markets.domain.exceptions import AlreadyExistsError
from midnight_markets.domain.models import PLATFORM_KEY, LedgerEvent, LedgerSnapshot
from midnight_markets.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from midnight_markets.infrastructure.database.orm_models import (
    EscrowBalanceRow,
    LedgerEventRow,
    MarketRow,
    NameRegistrationRow,
    OfferRow,
    PayoutRow,
    PlatformRow,
)
from midnight_markets.infrastructure.ledger_store import KeyedLocks
from midnight_markets.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Hashable

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from midnight_markets.domain.models import PlatformState

logger = get_logger(__name__)

_MODELS: dict[EntityType, Any] = {
    EntityType.PLATFORM: PlatformRow,
    EntityType.MARKET: MarketRow,
    EntityType.OFFER: OfferRow,
    EntityType.ESCROW: EscrowBalanceRow,
    EntityType.NAME: NameRegistrationRow,
    EntityType.PAYOUT: PayoutRow,
}


class _SqlTransaction:
    """LedgerTransaction over a single AsyncSession."""

    def __init__(self, session: AsyncSession, lock_rows: bool = False) -> None:
        self._session = session
        self._lock_rows = lock_rows

    async def read(self, entity_type: EntityType, key: Hashable) -> Any | None:
        if self._lock_rows:
            row = await self._session.get(_MODELS[entity_type], key, with_for_update=True)
        else:
            row = await self._session.get(_MODELS[entity_type], key)
        return None if row is None else row.to_entity()

    async def write(self, entity_type: EntityType, key: Hashable, entity: Any) -> None:
        await self._session.merge(_MODELS[entity_type].from_entity(entity))
        try:
            await self._session.flush()
        except IntegrityError:
            logger.warning("ledger.insert_conflict", entity=entity_type, key=key)
            raise AlreadyExistsError(entity_type.value, key) from None

    async def scan(self, entity_type: EntityType) -> list[Any]:
        model = _MODELS[entity_type]
        result = await self._session.execute(
            select(model).order_by(*model.__mapper__.primary_key)
        )
        return [row.to_entity() for row in result.scalars().all()]

    def append_event(self, event: LedgerEvent) -> None:
        self._session.add(LedgerEventRow.from_entity(event))


class SqlLedgerStore:
    """Ledger Store persisted through SQLAlchemy's async ORM."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self._engine: AsyncEngine = build_engine(database_url, echo=echo)
        self._session_factory = build_session_factory(self._engine)
        self._locks = KeyedLocks()
        self._serialize = self._engine.dialect.name == "sqlite"
        self._lock_rows = not self._serialize
        self._session_lock = asyncio.Lock()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncExitStack() as stack:
            if self._serialize:
                await stack.enter_async_context(self._session_lock)
            yield await stack.enter_async_context(self._session_factory())

    async def initialize(self, genesis: PlatformState) -> PlatformState:
        await create_tables(self._engine)
        async with self._session() as session, session.begin():
            row = await session.get(PlatformRow, PLATFORM_KEY)
            if row is None:
                row = PlatformRow.from_entity(genesis)
                session.add(row)
            platform = row.to_entity()
        logger.info("ledger.initialized", backend="sql", owner_id=platform.owner_id)
        return platform

    @asynccontextmanager
    async def transaction(self, *lock_keys: str) -> AsyncIterator[_SqlTransaction]:
        async with self._locks.hold(lock_keys):
            async with self._session() as session, session.begin():
                yield _SqlTransaction(session, lock_rows=self._lock_rows)

    async def snapshot(self) -> LedgerSnapshot:
        async with self._session() as session:

            async def rows(model: Any, *order_by: Any) -> tuple:
                result = await session.execute(select(model).order_by(*order_by))
                return tuple(row.to_entity() for row in result.scalars().all())

            platform_row = await session.get(PlatformRow, PLATFORM_KEY)
            if platform_row is None:
                raise RuntimeError("Ledger not initialized. Call initialize() first.")
            return LedgerSnapshot(
                platform=platform_row.to_entity(),
                markets=await rows(MarketRow, MarketRow.id),
                offers=await rows(OfferRow, OfferRow.id),
                escrow_balances=await rows(EscrowBalanceRow, EscrowBalanceRow.market_id),
                name_registry=await rows(NameRegistrationRow, NameRegistrationRow.name_hash),
                payouts=await rows(PayoutRow, PayoutRow.offer_id, PayoutRow.kind),
            )

    async def events(
        self,
        offer_id: int | None = None,
        market_id: int | None = None,
    ) -> list[LedgerEvent]:
        stmt = select(LedgerEventRow).order_by(LedgerEventRow.id.asc())
        if offer_id is not None:
            stmt = stmt.where(LedgerEventRow.offer_id == offer_id)
        if market_id is not None:
            stmt = stmt.where(LedgerEventRow.market_id == market_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [row.to_entity() for row in result.scalars().all()]

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("database.engine_disposed")
