"""Tests for the offer lifecycle: post, accept, proof, release, cancel."""

from __future__ import annotations

from dataclasses import replace

import pytest

from midnight_markets.domain.enums import EntityType, EventType, OfferStatus, PayoutKind
from midnight_markets.domain.fees import MAX_LEDGER_INT


class TestPostOffer:
    @pytest.mark.asyncio
    async def test_posts_open_offer(self, open_offer) -> None:
        state = await open_offer.get_state()
        offer = state.offer(101)
        assert offer.status is OfferStatus.OPEN
        assert offer.seller_id == "sellerX"
        assert offer.buyer_id is None
        assert offer.hidden is False

    @pytest.mark.asyncio
    async def test_duplicate_offer_id(self, open_offer) -> None:
        result = await open_offer.call_operation("postOffer", [101, 1, "sellerZ", 5, "h"])
        assert result.error_code == "ALREADY_EXISTS"

    @pytest.mark.asyncio
    async def test_unknown_market(self, engine) -> None:
        result = await engine.call_operation("postOffer", [101, 9, "sellerX", 1000, "h"])
        assert result.error_code == "NOT_FOUND"
        assert result.data["entity"] == "market"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, engine, amount: int) -> None:
        await engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])
        result = await engine.call_operation("postOffer", [101, 1, "sellerX", amount, "h"])
        assert result.error_code == "INVALID_AMOUNT"
        assert (await engine.get_state()).offers == []



class TestLedgerLimits:
    """Amounts, balances and ids are capped at the signed 64-bit column range."""

    @pytest.mark.asyncio
    async def test_amount_above_cap_rejected_on_both_backends(self, any_engine) -> None:
        await any_engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])

        result = await any_engine.call_operation("postOffer", [101, 1, "sellerX", 2**63, "h"])

        assert result.error_code == "INVALID_AMOUNT"
        assert (await any_engine.get_state()).offers == []

    @pytest.mark.asyncio
    async def test_amount_at_cap_accepted(self, any_engine) -> None:
        await any_engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])

        result = await any_engine.call_operation(
            "postOffer", [101, 1, "sellerX", MAX_LEDGER_INT, "h"]
        )

        assert result.success
        assert (await any_engine.get_state()).offer(101).amount == MAX_LEDGER_INT

    @pytest.mark.asyncio
    async def test_escrow_balance_cannot_pass_cap(self, any_engine, assert_conserved) -> None:
        await any_engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])
        for offer_id in (101, 102):
            await any_engine.call_operation("postOffer", [offer_id, 1, "sellerX", 2**62, "h"])
        first = await any_engine.call_operation("acceptOffer", [101, "buyerY", 1, 2**62])
        assert first.success

        second = await any_engine.call_operation("acceptOffer", [102, "buyerZ", 1, 2**62])

        assert second.error_code == "INVALID_AMOUNT"
        state = await any_engine.get_state()
        assert state.escrow_balance(1) == 2**62
        assert state.offer(102).status is OfferStatus.OPEN
        await assert_conserved(any_engine)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offer_id", [-1, 2**63])
    async def test_out_of_range_id_rejected(self, any_engine, offer_id: int) -> None:
        await any_engine.call_operation("createMarket", [1, "sheriffA", "Electronics", 100])

        result = await any_engine.call_operation("postOffer", [offer_id, 1, "sellerX", 10, "h"])

        assert result.error_code == "INVALID_PARAMS"

class TestAcceptOffer:
    @pytest.mark.asyncio
    async def test_exact_deposit_moves_funds_into_escrow(self, open_offer, assert_conserved) -> None:
        result = await open_offer.call_operation("acceptOffer", [101, "buyerY", 1, 1000])

        assert result.success
        assert result.data["escrowBalance"] == 1000
        state = await open_offer.get_state()
        assert state.offer(101).status is OfferStatus.ACCEPTED
        assert state.offer(101).buyer_id == "buyerY"
        assert state.escrow_balance(1) == 1000
        await assert_conserved(open_offer)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("deposit", [999, 1001])
    async def test_deposit_must_match_exactly(self, open_offer, deposit: int) -> None:
        result = await open_offer.call_operation("acceptOffer", [101, "buyerY", 1, deposit])

        assert result.error_code == "INVALID_AMOUNT"
        state = await open_offer.get_state()
        assert state.escrow_balance(1) == 0
        assert state.offer(101).status is OfferStatus.OPEN

    @pytest.mark.asyncio
    async def test_offer_in_other_market_is_not_found(self, open_offer) -> None:
        await open_offer.call_operation("createMarket", [2, "sheriffB", "Books", 0])
        result = await open_offer.call_operation("acceptOffer", [101, "buyerY", 2, 1000])
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_cannot_accept_twice(self, accepted_offer) -> None:
        result = await accepted_offer.call_operation("acceptOffer", [101, "buyerZ", 1, 1000])

        assert result.error_code == "WRONG_STATE"
        assert result.data["expected"] == "Open"
        assert result.data["actual"] == "Accepted"
        assert (await accepted_offer.get_state()).escrow_balance(1) == 1000

    @pytest.mark.asyncio
    async def test_unknown_offer(self, engine) -> None:
        result = await engine.call_operation("acceptOffer", [404, "buyerY", 1, 1000])
        assert result.error_code == "NOT_FOUND"


class TestSubmitProof:
    @pytest.mark.asyncio
    async def test_seller_submits_proof(self, accepted_offer) -> None:
        result = await accepted_offer.call_operation("submitProof", [101, "sellerX", "proofDEF"])

        assert result.success
        offer = (await accepted_offer.get_state()).offer(101)
        assert offer.status is OfferStatus.PROOF_SUBMITTED
        assert offer.proof_hash == "proofDEF"

    @pytest.mark.asyncio
    async def test_only_seller(self, accepted_offer) -> None:
        result = await accepted_offer.call_operation("submitProof", [101, "buyerY", "proofDEF"])
        assert result.error_code == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_requires_accepted(self, open_offer) -> None:
        result = await open_offer.call_operation("submitProof", [101, "sellerX", "proofDEF"])
        assert result.error_code == "WRONG_STATE"


class TestReleaseFunds:
    @pytest.mark.asyncio
    async def test_release_splits_and_empties_escrow(self, proven_offer, assert_conserved) -> None:
        result = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        assert result.success
        assert result.data["sheriffFee"] == 10
        assert result.data["platformFee"] == 0
        assert result.data["sellerNet"] == 990
        state = await proven_offer.get_state()
        assert state.offer(101).status is OfferStatus.FUNDS_RELEASED
        assert state.escrow_balance(1) == 0
        payouts = {p.kind: (p.recipient, p.amount) for p in state.payouts}
        assert payouts == {
            PayoutKind.SELLER: ("sellerX", 990),
            PayoutKind.SHERIFF_FEE: ("sheriffA", 10),
        }
        await assert_conserved(proven_offer)

    @pytest.mark.asyncio
    async def test_platform_fee_credited_to_owner(self, proven_offer) -> None:
        await proven_offer.call_operation("setPlatformFee", [50, "1"])
        await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        payouts = {p.kind: p for p in (await proven_offer.get_state()).payouts}
        assert payouts[PayoutKind.PLATFORM_FEE].recipient == "1"
        assert payouts[PayoutKind.PLATFORM_FEE].amount == 5

    @pytest.mark.asyncio
    async def test_no_double_release(self, proven_offer) -> None:
        first = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])
        second = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        assert first.success
        assert second.error_code == "WRONG_STATE"
        assert second.data["actual"] == "FundsReleased"
        state = await proven_offer.get_state()
        assert sum(p.amount for p in state.payouts) == 1000

    @pytest.mark.asyncio
    async def test_non_sheriff_rejected(self, proven_offer) -> None:
        result = await proven_offer.call_operation("releaseFunds", [101, "sellerX", 1])

        assert result.error_code == "UNAUTHORIZED"
        state = await proven_offer.get_state()
        assert state.offer(101).status is OfferStatus.PROOF_SUBMITTED
        assert state.escrow_balance(1) == 1000

    @pytest.mark.asyncio
    async def test_declared_market_must_match(self, proven_offer) -> None:
        await proven_offer.call_operation("createMarket", [2, "sheriffA", "Books", 0])
        result = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 2])
        assert result.error_code == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_release_requires_proof(self, accepted_offer) -> None:
        result = await accepted_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        assert result.error_code == "WRONG_STATE"
        assert result.data["expected"] == "ProofSubmitted"
        assert result.data["actual"] == "Accepted"

    @pytest.mark.asyncio
    async def test_escrow_shortfall_is_reported_not_applied(self, proven_offer) -> None:
        # Corrupt the ledger directly to simulate an invariant breach.
        async with proven_offer.store.transaction() as tx:
            escrow = await tx.read(EntityType.ESCROW, 1)
            await tx.write(EntityType.ESCROW, 1, replace(escrow, balance=400))

        result = await proven_offer.call_operation("releaseFunds", [101, "sheriffA", 1])

        assert result.error_code == "INSUFFICIENT_ESCROW"
        assert result.data["required"] == 1000
        assert result.data["available"] == 400
        state = await proven_offer.get_state()
        assert state.offer(101).status is OfferStatus.PROOF_SUBMITTED
        assert state.payouts == []


class TestCancelOffer:
    @pytest.mark.asyncio
    async def test_seller_cancels_open_offer(self, open_offer) -> None:
        result = await open_offer.call_operation("cancelOfferBySeller", [101, "sellerX"])

        assert result.success
        assert result.data["cancelledBy"] == "seller"
        assert (await open_offer.get_state()).offer(101).status is OfferStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_sheriff_cancels_open_offer(self, open_offer) -> None:
        result = await open_offer.call_operation("cancelOfferBySheriff", [101, "sheriffA", 1])
        assert result.success
        assert (await open_offer.get_state()).offer(101).status is OfferStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cannot_cancel_funded_offer(self, accepted_offer) -> None:
        by_seller = await accepted_offer.call_operation("cancelOfferBySeller", [101, "sellerX"])
        by_sheriff = await accepted_offer.call_operation(
            "cancelOfferBySheriff", [101, "sheriffA", 1]
        )

        assert by_seller.error_code == "WRONG_STATE"
        assert by_sheriff.error_code == "WRONG_STATE"
        assert (await accepted_offer.get_state()).escrow_balance(1) == 1000

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(self, open_offer) -> None:
        result = await open_offer.call_operation("cancelOfferBySeller", [101, "buyerY"])
        assert result.error_code == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_cancelled_offer_cannot_be_accepted(self, open_offer) -> None:
        await open_offer.call_operation("cancelOfferBySeller", [101, "sellerX"])
        result = await open_offer.call_operation("acceptOffer", [101, "buyerY", 1, 1000])
        assert result.error_code == "WRONG_STATE"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_reference_scenario_on_each_backend(self, any_engine, assert_conserved) -> None:
        engine = any_engine
        steps = [
            ("createMarket", [1, "sheriffA", "Electronics", 100]),
            ("postOffer", [101, 1, "sellerX", 1000, "hashABC"]),
            ("acceptOffer", [101, "buyerY", 1, 1000]),
            ("submitProof", [101, "sellerX", "proofDEF"]),
            ("releaseFunds", [101, "sheriffA", 1]),
        ]
        for name, params in steps:
            result = await engine.call_operation(name, params)
            assert result.success, result

        assert result.data["sheriffFee"] == 10
        assert result.data["sellerNet"] == 990
        state = await engine.get_state()
        assert state.offer(101).status is OfferStatus.FUNDS_RELEASED
        assert state.escrow_balance(1) == 0
        await assert_conserved(engine)

        events = await engine.events(offer_id=101)
        assert [e.event_type for e in events] == [
            EventType.OFFER_POSTED,
            EventType.OFFER_ACCEPTED,
            EventType.PROOF_SUBMITTED,
            EventType.FUNDS_RELEASED,
        ]
        assert events[-1].old_status is OfferStatus.PROOF_SUBMITTED
        assert events[-1].new_status is OfferStatus.FUNDS_RELEASED
