"""Tests for name registration and the price preview."""

from __future__ import annotations

import hashlib

import pytest

from midnight_markets.services.name_pricing import hash_name, price_name, quote_name


class TestRegisterName:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self, engine) -> None:
        first = await engine.call_operation("registerName", ["abc123", "sheriffA", 10])
        second = await engine.call_operation("registerName", ["abc123", "sheriffB", 99])

        assert first.success
        assert first.data == {"nameHash": "abc123", "ownerToken": "sheriffA", "price": 10}
        assert second.error_code == "ALREADY_EXISTS"
        registry = (await engine.get_state()).name_registry
        assert [(r.name_hash, r.owner_token, r.price) for r in registry] == [
            ("abc123", "sheriffA", 10)
        ]

    @pytest.mark.asyncio
    async def test_negative_price_rejected(self, engine) -> None:
        result = await engine.call_operation("registerName", ["abc123", "sheriffA", -1])
        assert result.error_code == "INVALID_AMOUNT"
        assert (await engine.get_state()).name_registry == []

    @pytest.mark.asyncio
    async def test_price_above_ledger_cap_rejected(self, any_engine) -> None:
        result = await any_engine.call_operation("registerName", ["abc123", "sheriffA", 2**63])
        assert result.error_code == "INVALID_AMOUNT"
        assert (await any_engine.get_state()).name_registry == []

    @pytest.mark.asyncio
    async def test_registry_does_not_gate_market_creation(self, engine) -> None:
        result = await engine.call_operation("createMarket", [1, "sheriffA", "Unregistered", 0])
        assert result.success


class TestNamePricing:
    def test_hash_is_sha256_hex(self) -> None:
        assert hash_name("Electronics") == hashlib.sha256(b"Electronics").hexdigest()

    @pytest.mark.parametrize(
        ("name", "price"),
        [
            ("Electronics", 10),
            ("Los Angeles Vintage", 60),
            ("LA cameras", 60),
            ("rare old brass pocket", 0),
            ("one two three four five six", 0),
            ("one two three", 10),
        ],
    )
    def test_price_tiers(self, name: str, price: int) -> None:
        assert price_name(name) == price

    def test_quote_bundles_hash_and_price(self) -> None:
        quote = quote_name("Electronics")
        assert quote.name_hash == hash_name("Electronics")
        assert quote.price == 10

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            quote_name("")
