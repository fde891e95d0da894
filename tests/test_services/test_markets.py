"""Tests for market creation and platform fee configuration."""

from __future__ import annotations

import pytest

from midnight_markets.domain.enums import EventType


class TestCreateMarket:
    @pytest.mark.asyncio
    async def test_creates_visible_market_with_empty_escrow(self, engine) -> None:
        result = await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])

        assert result.success
        assert result.data == {
            "marketId": 1,
            "sheriffId": "sheriffA",
            "name": "Electronics",
            "sheriffFeeRate": 100,
        }
        state = await engine.get_state()
        market = state.market(1)
        assert market.sheriff_id == "sheriffA"
        assert market.sheriff_fee_rate == 100
        assert market.hidden is False
        assert state.escrow_balance(1) == 0

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected_and_table_unchanged(self, engine) -> None:
        await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])

        result = await engine.call_operation("createMarket", [1, "sheriffB", "Books", 200])

        assert not result.success
        assert result.error_code == "ALREADY_EXISTS"
        state = await engine.get_state()
        assert len(state.markets) == 1
        assert state.market(1).sheriff_id == "sheriffA"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fee", [-1, 10_001])
    async def test_fee_out_of_range(self, engine, fee: int) -> None:
        result = await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", fee])
        assert result.error_code == "INVALID_AMOUNT"
        assert (await engine.get_state()).markets == []

    @pytest.mark.asyncio
    async def test_combined_fee_checked_against_platform_fee(self, engine) -> None:
        await engine.call_operation("setPlatformFee", [500, "1"])

        result = await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 9_600])

        assert result.error_code == "INVALID_AMOUNT"

    @pytest.mark.asyncio
    async def test_records_event(self, engine) -> None:
        await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])
        events = await engine.events(market_id=1)
        assert [e.event_type for e in events] == [EventType.MARKET_CREATED]
        assert events[0].actor == "sheriffA"


class TestSetPlatformFee:
    @pytest.mark.asyncio
    async def test_owner_sets_fee(self, engine) -> None:
        result = await engine.call_operation("setPlatformFee", [50, "1"])

        assert result.success
        assert result.data == {"platformFeeRate": 50, "previousFeeRate": 0}
        assert (await engine.get_state()).platform_fee_rate == 50

    @pytest.mark.asyncio
    async def test_numeric_owner_identity(self, engine) -> None:
        result = await engine.call_operation("setPlatformFee", [50, 1])
        assert result.success

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, engine) -> None:
        result = await engine.call_operation("setPlatformFee", [50, "sheriffA"])

        assert result.error_code == "UNAUTHORIZED"
        assert (await engine.get_state()).platform_fee_rate == 0

    @pytest.mark.asyncio
    async def test_rejected_when_any_market_would_exceed_100_percent(self, engine) -> None:
        await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])
        await engine.call_operation("createMarket", [2, "sheriffB", "Art", 9_500])

        result = await engine.call_operation("setPlatformFee", [600, "1"])

        assert result.error_code == "INVALID_AMOUNT"
        assert "market 2" in result.message
        assert (await engine.get_state()).platform_fee_rate == 0

    @pytest.mark.asyncio
    async def test_applies_to_later_releases(self, proven_offer) -> None:
        await proven_offer.call_operation("setPlatformFee", [50, "1"])

        result = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        assert result.data["sheriffFee"] == 10
        assert result.data["platformFee"] == 5
        assert result.data["sellerNet"] == 985
