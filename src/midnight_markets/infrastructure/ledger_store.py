"""Ledger Store interface and the in-memory implementation.

The store exclusively owns every entity table. Services never touch a table
directly; they open a transaction naming the keys they will mutate:

    async with store.transaction(market_key(1), offer_key(101)) as tx:
        offer = await tx.read(EntityType.OFFER, 101)
        await tx.write(EntityType.OFFER, 101, replace(offer, ...))
        tx.append_event(LedgerEvent(...))

Transactions on the same key serialize through a per-key asyncio.Lock;
locks are always taken in sorted order so overlapping key sets cannot
deadlock. Writes are staged and applied only when the block exits cleanly,
so an operation either commits every write or none of them.
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from midnight_markets.domain.enums import EntityType
from midnight_markets.domain.models import PLATFORM_KEY, LedgerEvent, LedgerSnapshot
from midnight_markets.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Hashable, Iterable

    from midnight_markets.domain.models import PlatformState

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Lock keys
# ---------------------------------------------------------------------------


def market_key(market_id: int) -> str:
    return f"market:{market_id}"


def offer_key(offer_id: int) -> str:
    return f"offer:{offer_id}"


def name_key(name_hash: str) -> str:
    return f"name:{name_hash}"


PLATFORM_LOCK = "platform"


class KeyedLocks:
    """Registry of per-key asyncio locks.

    A lock lives only while some task holds or waits on it, so the registry
    stays as small as the set of keys currently in use.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire every lock in ``keys`` (deduplicated, sorted) for the block."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


@runtime_checkable
class LedgerTransaction(Protocol):
    """A unit of work against the store. Reads observe the transaction's own writes."""

    async def read(self, entity_type: EntityType, key: Hashable) -> Any | None:
        """Return the entity stored under ``key`` or None."""
        ...

    async def write(self, entity_type: EntityType, key: Hashable, entity: Any) -> None:
        """Stage ``entity`` under ``key``."""
        ...

    async def scan(self, entity_type: EntityType) -> list[Any]:
        """Return every entity of a type, ordered by key."""
        ...

    def append_event(self, event: LedgerEvent) -> None:
        """Stage an audit event for the append-only log."""
        ...


@runtime_checkable
class LedgerStore(Protocol):
    """Persistence boundary for all entity tables."""

    async def initialize(self, genesis: PlatformState) -> PlatformState:
        """Create the platform row if missing and return the effective platform state."""
        ...

    def transaction(self, *lock_keys: str) -> Any:
        """Async context manager yielding a LedgerTransaction."""
        ...

    async def snapshot(self) -> LedgerSnapshot:
        """Point-in-time read-only copy of every table."""
        ...

    async def events(
        self,
        offer_id: int | None = None,
        market_id: int | None = None,
    ) -> list[LedgerEvent]:
        """Audit trail in commit order, optionally filtered."""
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class _MemoryTransaction:
    def __init__(self, tables: dict[EntityType, dict[Hashable, Any]]) -> None:
        self._tables = tables
        self._staged: dict[EntityType, dict[Hashable, Any]] = defaultdict(dict)
        self.events: list[LedgerEvent] = []

    async def read(self, entity_type: EntityType, key: Hashable) -> Any | None:
        staged = self._staged.get(entity_type, {})
        if key in staged:
            return staged[key]
        return self._tables[entity_type].get(key)

    async def write(self, entity_type: EntityType, key: Hashable, entity: Any) -> None:
        self._staged[entity_type][key] = entity

    async def scan(self, entity_type: EntityType) -> list[Any]:
        merged = {**self._tables[entity_type], **self._staged.get(entity_type, {})}
        return [merged[key] for key in sorted(merged, key=str)]

    def append_event(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def commit(self, events: list[LedgerEvent]) -> None:
        for entity_type, rows in self._staged.items():
            self._tables[entity_type].update(rows)
        events.extend(self.events)


class InMemoryLedgerStore:
    """Dict-backed Ledger Store for tests, demos and single-process deployments.

    Entities are frozen dataclasses, so handing them out of a snapshot never
    lets a caller mutate the store.
    """

    def __init__(self) -> None:
        self._tables: dict[EntityType, dict[Hashable, Any]] = {
            entity_type: {} for entity_type in EntityType
        }
        self._events: list[LedgerEvent] = []
        self._locks = KeyedLocks()

    async def initialize(self, genesis: PlatformState) -> PlatformState:
        platform = self._tables[EntityType.PLATFORM].setdefault(PLATFORM_KEY, genesis)
        logger.info("ledger.initialized", backend="memory", owner_id=platform.owner_id)
        return platform

    @asynccontextmanager
    async def transaction(self, *lock_keys: str) -> AsyncIterator[_MemoryTransaction]:
        async with self._locks.hold(lock_keys):
            tx = _MemoryTransaction(self._tables)
            yield tx
            tx.commit(self._events)

    async def snapshot(self) -> LedgerSnapshot:
        def rows(entity_type: EntityType) -> tuple[Any, ...]:
            table = self._tables[entity_type]
            return tuple(table[key] for key in sorted(table, key=str))

        platform = self._tables[EntityType.PLATFORM].get(PLATFORM_KEY)
        if platform is None:
            raise RuntimeError("Ledger not initialized. Call initialize() first.")
        return LedgerSnapshot(
            platform=platform,
            markets=tuple(sorted(rows(EntityType.MARKET), key=lambda m: m.id)),
            offers=tuple(sorted(rows(EntityType.OFFER), key=lambda o: o.id)),
            escrow_balances=tuple(
                sorted(rows(EntityType.ESCROW), key=lambda e: e.market_id)
            ),
            name_registry=rows(EntityType.NAME),
            payouts=tuple(
                sorted(rows(EntityType.PAYOUT), key=lambda p: (p.offer_id, p.kind.value))
            ),
        )

    async def events(
        self,
        offer_id: int | None = None,
        market_id: int | None = None,
    ) -> list[LedgerEvent]:
        return [
            event
            for event in self._events
            if (offer_id is None or event.offer_id == offer_id)
            and (market_id is None or event.market_id == market_id)
        ]

    async def close(self) -> None:
        logger.info("ledger.closed", backend="memory")
