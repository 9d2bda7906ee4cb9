"""Arbitrage solver results."""
from dataclasses import dataclass, field

from src.pm_amm.domain.models import Pool
from src.pm_common.enums import Outcome
from src.pm_order.domain.models import FillResult


@dataclass
class AnswerBetResult:
    """One answer's leg of a joint trade."""

    answer_id: str
    fill: FillResult

    @property
    def outcome(self) -> Outcome:
        return self.fill.outcome

    @property
    def new_pool(self) -> Pool:
        return self.fill.new_pool


@dataclass
class ArbitrageResult:
    """Joint update keeping a dependent market's probabilities summing to one.

    `taker_shares_by_answer` holds the shares the taker ends up with after
    the side purchases are redeemed: only net positive positions appear.
    """

    new_bet_result: AnswerBetResult
    other_bet_results: list[AnswerBetResult]
    taker_shares_by_answer: dict[str, dict[Outcome, float]] = field(default_factory=dict)
    redeemed_shares: float = 0.0  # shares bought in each side answer and redeemed

    @property
    def all_results(self) -> list[AnswerBetResult]:
        return [self.new_bet_result, *self.other_bet_results]

    def new_pools(self) -> dict[str, Pool]:
        return {r.answer_id: r.new_pool for r in self.all_results}


@dataclass
class ArbitrageSaleResult:
    payout: float
    buy_amount: float  # cost of the opposite-side arbitrage buy backing the sale
    arbitrage: ArbitrageResult
