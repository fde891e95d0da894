"""Fee arithmetic.

All rates are integer basis points (1 bps = 0.01%, 10000 bps = 100%).
Fees are floored, so any rounding remainder stays with the seller.
Rate combinations that could drive the seller's net below zero are rejected
when a market is created or the platform fee changes, never at release.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from midnight_markets.domain.exceptions import InvalidAmountError

BPS_DENOMINATOR = 10_000

# Largest value a signed 64-bit ledger column holds; amounts, balances and ids stay within it.
MAX_LEDGER_INT = 2**63 - 1


@dataclass(frozen=True)
class FeeSplit:
    amount: int
    sheriff_fee: int
    platform_fee: int
    seller_net: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def validate_ledger_amount(amount: int, label: str) -> None:
    """Reject amounts the ledger cannot represent."""
    if amount > MAX_LEDGER_INT:
        raise InvalidAmountError(f"{label} exceeds the ledger maximum of {MAX_LEDGER_INT}")


def validate_fee_rate(bps: int, label: str) -> None:
    """Reject rates outside 0..10000 bps."""
    if isinstance(bps, bool) or not isinstance(bps, int):
        raise InvalidAmountError(f"{label} must be an integer number of basis points")
    if not 0 <= bps <= BPS_DENOMINATOR:
        raise InvalidAmountError(
            f"{label} must be between 0 and {BPS_DENOMINATOR} bps, got {bps}"
        )


def validate_combined_rate(sheriff_fee_bps: int, platform_fee_bps: int) -> None:
    """Reject a sheriff + platform rate pair above 100%."""
    total = sheriff_fee_bps + platform_fee_bps
    if total > BPS_DENOMINATOR:
        raise InvalidAmountError(
            f"Combined fees exceed 100%: sheriff {sheriff_fee_bps} bps + "
            f"platform {platform_fee_bps} bps = {total} bps"
        )


def compute_fee_split(amount: int, sheriff_fee_bps: int, platform_fee_bps: int) -> FeeSplit:
    """Split ``amount`` into sheriff fee, platform fee and seller net.

    >>> compute_fee_split(1000, 100, 50)
    FeeSplit(amount=1000, sheriff_fee=10, platform_fee=5, seller_net=985)
    """
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative, got {amount}")
    validate_fee_rate(sheriff_fee_bps, "Sheriff fee")
    validate_fee_rate(platform_fee_bps, "Platform fee")
    validate_combined_rate(sheriff_fee_bps, platform_fee_bps)

    sheriff_fee = amount * sheriff_fee_bps // BPS_DENOMINATOR
    platform_fee = amount * platform_fee_bps // BPS_DENOMINATOR
    return FeeSplit(
        amount=amount,
        sheriff_fee=sheriff_fee,
        platform_fee=platform_fee,
        seller_net=amount - sheriff_fee - platform_fee,
    )
