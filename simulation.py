#!/usr/bin/env python3
"""Midnight Markets: End-to-End Simulation.

Simulates three scenarios with Sheriff, Seller and Buyer bots:

    Scenario 1: Happy Path
        - Sheriff creates market 1 "Electronics" at 100 bps
        - Seller posts offer 101 for 1000, buyer accepts with exact deposit
        - Seller submits proof, sheriff releases -> sheriffFee=10, sellerNet=990

    Scenario 2: Moderation and Rejections
        - Buyer's short deposit is rejected (INVALID_AMOUNT)
        - Sheriff hides the offer -> accept rejected; unhide -> accept succeeds
        - Impostor release is rejected (UNAUTHORIZED); a second release is
          rejected (WRONG_STATE)

    Scenario 3: Timeouts
        - Buyer accepts but seller never delivers -> buyer refund after 14 days
        - Seller delivers but sheriff never releases -> seller claims after 14 days

Usage:
    # Option A: In-memory Ledger Store:
    python simulation.py

    # Option B: SQLite-backed Ledger Store (in-memory database):
    python simulation.py --sql

    # Run a specific scenario:
    python simulation.py --sql --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from midnight_markets.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from midnight_markets.config import Settings  # noqa: E402
from midnight_markets.services.marketplace_engine import MarketplaceEngine  # noqa: E402
from midnight_markets.services.name_pricing import quote_name  # noqa: E402

OWNER = "1"


@dataclass
class SimulatedClock:
    """Manually advanced clock so timeout scenarios run instantly."""

    now: datetime = field(default_factory=lambda: datetime(2025, 1, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


# ---------------------------------------------------------------------------
# Engine lifecycle helpers
# ---------------------------------------------------------------------------
async def build_engine(use_sql: bool, clock: SimulatedClock) -> MarketplaceEngine:
    settings = Settings(
        ledger_backend="sql" if use_sql else "memory",
        database_url="sqlite+aiosqlite:///:memory:",
        platform_owner_id=OWNER,
        platform_fee_bps=0,
    )
    engine = await MarketplaceEngine.create(settings, clock=clock)
    logger.info("simulation.engine_ready", backend=settings.ledger_backend)
    return engine


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class Bot:
    identity: str
    engine: MarketplaceEngine

    async def call(self, operation: str, *params: Any) -> dict:
        result = await self.engine.call_operation(operation, list(params), caller=self.identity)
        print_result(self.identity, operation, result.model_dump())
        return result.model_dump()


class SheriffBot(Bot):
    async def create_market(self, market_id: int, name: str, fee_bps: int) -> dict:
        quote = quote_name(name)
        await self.call("registerName", quote.name_hash, self.identity, quote.price)
        return await self.call("createMarket", market_id, self.identity, name, fee_bps)

    async def release(self, offer_id: int, market_id: int) -> dict:
        return await self.call("releaseFunds", offer_id, self.identity, market_id)

    async def hide_offer(self, offer_id: int, market_id: int, hidden: bool) -> dict:
        return await self.call("setOfferHiddenBySheriff", offer_id, market_id, hidden, self.identity)


class SellerBot(Bot):
    async def post(self, offer_id: int, market_id: int, amount: int, details: str) -> dict:
        return await self.call("postOffer", offer_id, market_id, self.identity, amount, details)

    async def deliver(self, offer_id: int, proof: str) -> dict:
        return await self.call("submitProof", offer_id, self.identity, proof)

    async def claim(self, offer_id: int) -> dict:
        return await self.call("sellerRefundTimeout", offer_id, self.identity)


class BuyerBot(Bot):
    async def accept(self, offer_id: int, market_id: int, deposit: int) -> dict:
        return await self.call("acceptOffer", offer_id, self.identity, market_id, deposit)

    async def refund(self, offer_id: int) -> dict:
        return await self.call("buyerRefundTimeout", offer_id, self.identity)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def section(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def print_result(actor: str, operation: str, result: dict) -> None:
    mark = "OK  " if result["success"] else "FAIL"
    print(f"  [{mark}] {actor:>10} {operation:<24} {result['message']}")
    if not result["success"]:
        print(f"         error: {result['data']['error']}")


async def print_state(engine: MarketplaceEngine) -> None:
    state = await engine.get_state()
    print(f"\n  Platform owner {state.owner_id}, fee {state.platform_fee_rate} bps")
    for offer in state.offers:
        print(f"  Offer {offer.id} (market {offer.market_id}): {offer.status.value}")
    for escrow in state.escrow_balances:
        print(f"  Escrow market {escrow.market_id}: {escrow.balance}")
    for payout in state.payouts:
        print(f"  Payout offer {payout.offer_id}: {payout.amount} -> {payout.recipient} ({payout.kind})")


async def print_audit_trail(engine: MarketplaceEngine) -> None:
    section("Audit Trail")
    for event in await engine.events():
        transition = ""
        if event.new_status is not None:
            old = event.old_status.value if event.old_status else "-"
            transition = f" {old} -> {event.new_status.value}"
        print(f"  {event.occurred_at:%Y-%m-%d} {event.event_type.value:<26}{transition}")


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_1_happy_path(engine: MarketplaceEngine, clock: SimulatedClock) -> None:
    section("Scenario 1: Happy Path")
    sheriff = SheriffBot("sheriffA", engine)
    seller = SellerBot("sellerX", engine)
    buyer = BuyerBot("buyerY", engine)

    await sheriff.create_market(1, "Electronics", 100)
    await seller.post(101, 1, 1000, "hashABC")
    await buyer.accept(101, 1, 1000)
    await seller.deliver(101, "proofDEF")
    released = await sheriff.release(101, 1)

    data = released["data"]
    print(f"\n  Split: sheriffFee={data['sheriffFee']} sellerNet={data['sellerNet']}")
    await print_state(engine)


async def scenario_2_moderation(engine: MarketplaceEngine, clock: SimulatedClock) -> None:
    section("Scenario 2: Moderation and Rejections")
    sheriff = SheriffBot("sheriffB", engine)
    seller = SellerBot("sellerZ", engine)
    buyer = BuyerBot("buyerW", engine)
    impostor = SheriffBot("mallory", engine)

    await sheriff.create_market(2, "LA Vintage Cameras", 250)
    await seller.post(201, 2, 5000, "hashCAM")
    await buyer.accept(201, 2, 4999)
    await sheriff.hide_offer(201, 2, True)
    await buyer.accept(201, 2, 5000)
    await sheriff.hide_offer(201, 2, False)
    await buyer.accept(201, 2, 5000)
    await seller.deliver(201, "proofCAM")
    await impostor.release(201, 2)
    await sheriff.release(201, 2)
    await sheriff.release(201, 2)
    await print_state(engine)


async def scenario_3_timeouts(engine: MarketplaceEngine, clock: SimulatedClock) -> None:
    section("Scenario 3: Timeouts")
    sheriff = SheriffBot("sheriffC", engine)
    seller = SellerBot("sellerT", engine)
    buyer = BuyerBot("buyerT", engine)

    await sheriff.create_market(3, "Rare Books", 0)
    await seller.post(301, 3, 800, "hashBOOK1")
    await seller.post(302, 3, 1200, "hashBOOK2")
    await buyer.accept(301, 3, 800)
    await buyer.accept(302, 3, 1200)
    await seller.deliver(302, "proofBOOK2")

    await buyer.refund(301)
    clock.advance(timedelta(days=14, seconds=1))
    await buyer.refund(301)
    await seller.claim(302)
    await print_state(engine)


SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_moderation,
    3: scenario_3_timeouts,
}


# ===========================================================================
# Main
# ===========================================================================
async def run(scenarios: list[int], use_sql: bool = False) -> None:
    clock = SimulatedClock()
    engine = await build_engine(use_sql, clock)
    try:
        print("\n" + "*" * 70)
        print("  MIDNIGHT MARKETS: SIMULATION")
        print(f"  Ledger Store: {'SQLite (in-memory)' if use_sql else 'in-memory'}")
        print("*" * 70)

        for num in scenarios:
            await SCENARIOS[num](engine, clock)

        await print_audit_trail(engine)
        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await engine.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Midnight Markets Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sql",
        action="store_true",
        help="Use the SQLAlchemy Ledger Store on in-memory SQLite.",
    )
    args = parser.parse_args()

    if args.scenario and args.scenario not in SCENARIOS:
        parser.error(f"Unknown scenario {args.scenario}. Available: 1, 2, 3")
    selected = [args.scenario] if args.scenario else sorted(SCENARIOS)
    asyncio.run(run(selected, use_sql=args.sql))
