"""Taker fee hook.

The fee constant is configured at 0, so every trade currently pays no fee.
The split below is where creator/platform fees would be routed once enabled.
"""
from dataclasses import dataclass

from config.settings import settings

CREATOR_FEE_SHARE = 0.25
PLATFORM_FEE_SHARE = 0.75


@dataclass(frozen=True)
class Fees:
    creator_fee: float = 0.0
    platform_fee: float = 0.0
    liquidity_fee: float = 0.0

    @property
    def total(self) -> float:
        return self.creator_fee + self.platform_fee + self.liquidity_fee

    def __add__(self, other: "Fees") -> "Fees":
        return Fees(
            creator_fee=self.creator_fee + other.creator_fee,
            platform_fee=self.platform_fee + other.platform_fee,
            liquidity_fee=self.liquidity_fee + other.liquidity_fee,
        )


NO_FEES = Fees()


def get_taker_fee(shares: float, prob: float) -> float:
    """Fee is largest at prob=0.5 and vanishes toward 0% and 100%."""
    return settings.TAKER_FEE_CONSTANT * prob * (1 - prob) * shares


def get_fees_split(total_fees: float) -> Fees:
    if total_fees <= 0:
        return NO_FEES
    return Fees(
        creator_fee=total_fees * CREATOR_FEE_SHARE,
        platform_fee=total_fees * PLATFORM_FEE_SHARE,
        liquidity_fee=0.0,
    )


def sum_fees(fees: list[Fees]) -> Fees:
    total = NO_FEES
    for f in fees:
        total = total + f
    return total
