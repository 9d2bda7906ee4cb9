"""Pricing engine value objects — pure dataclasses, no store dependency."""
from dataclasses import dataclass, field

from src.pm_amm.domain.fees import NO_FEES, Fees
from src.pm_common.enums import Outcome


@dataclass(frozen=True)
class Pool:
    """Virtual YES/NO share reserves backing one CPMM curve."""

    yes: float
    no: float

    def get(self, outcome: Outcome) -> float:
        return self.yes if outcome == Outcome.YES else self.no

    def to_dict(self) -> dict[str, float]:
        return {"YES": self.yes, "NO": self.no}


@dataclass(frozen=True)
class CpmmState:
    pool: Pool
    p: float = 0.5  # curve weight, fixed at contract creation


@dataclass(frozen=True)
class PurchaseResult:
    shares: float
    new_pool: Pool
    prob_before: float
    prob_after: float
    fees: Fees = field(default=NO_FEES)


@dataclass(frozen=True)
class SaleResult:
    payout: float
    new_pool: Pool
    prob_before: float
    prob_after: float
    buy_amount: float  # amount of the opposite-outcome purchase backing the sale
