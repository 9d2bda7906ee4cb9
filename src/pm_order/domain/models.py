"""Bet / limit order domain model — pure dataclasses, no store dependency."""
from dataclasses import dataclass, field
from datetime import datetime

from src.pm_amm.domain.models import Pool
from src.pm_common.enums import Outcome
from src.pm_common.errors import InternalError
from src.pm_common.floats import floating_lesser_equal


@dataclass
class Fill:
    """One execution recorded on a bet (taker side or maker side)."""

    matched_bet_id: str | None  # None = filled directly by the AMM
    amount: float
    shares: float
    timestamp: datetime | None = None


@dataclass
class Bet:
    """A market bet, a sale (negative amount/shares) or a limit order.

    Limit orders carry limit_prob and order_amount; `amount` is the filled
    part and never exceeds order_amount. Only fill bookkeeping and
    cancellation mutate a bet after creation.
    """

    id: str
    contract_id: str
    user_id: str
    amount: float
    shares: float
    outcome: Outcome
    prob_before: float
    prob_after: float
    answer_id: str | None = None
    limit_prob: float | None = None
    order_amount: float | None = None
    is_filled: bool = True
    is_cancelled: bool = False
    is_redemption: bool = False
    expires_at: datetime | None = None
    created_time: datetime | None = None
    fills: list[Fill] = field(default_factory=list)

    @property
    def is_limit_order(self) -> bool:
        return self.limit_prob is not None

    @property
    def is_open(self) -> bool:
        return self.is_limit_order and not self.is_filled and not self.is_cancelled

    @property
    def remaining_amount(self) -> float:
        return (self.order_amount or 0.0) - self.amount

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def crossed_by(self, prob: float) -> bool:
        """YES orders fill once prob drops to the limit, NO orders once it rises to it."""
        if self.limit_prob is None:
            raise InternalError(f"Bet {self.id} is not a limit order")
        if self.outcome == Outcome.YES:
            return prob <= self.limit_prob
        return prob >= self.limit_prob

    def record_fill(self, amount: float, shares: float, prob_after: float,
                    matched_bet_id: str | None, timestamp: datetime | None) -> None:
        self.amount += amount
        self.shares += shares
        self.prob_after = prob_after
        self.fills.append(Fill(matched_bet_id, amount, shares, timestamp))
        if floating_lesser_equal(self.remaining_amount, 0):
            self.is_filled = True


LimitBet = Bet


@dataclass
class TakerFill:
    matched_bet_id: str | None
    amount: float
    shares: float


@dataclass
class MakerFill:
    """Resting order consumed by a taker; its escrow buys the maker's outcome."""

    bet_id: str
    user_id: str
    outcome: Outcome
    amount: float
    shares: float


@dataclass
class MatchResult:
    takers: list[TakerFill]
    makers: list[MakerFill]
    orders_to_cancel: list[Bet]
    remaining_amount: float
    new_pool: Pool


@dataclass
class FillResult:
    """Taker bet fully executed: matched fills plus the AMM remainder."""

    outcome: Outcome
    takers: list[TakerFill]
    makers: list[MakerFill]
    orders_to_cancel: list[Bet]
    new_pool: Pool
    prob_before: float
    prob_after: float

    @property
    def amount(self) -> float:
        return sum(t.amount for t in self.takers)

    @property
    def shares(self) -> float:
        return sum(t.shares for t in self.takers)
