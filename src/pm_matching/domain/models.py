from dataclasses import dataclass, field

from src.pm_amm.domain.models import Pool
from src.pm_common.enums import Outcome, Resolution
from src.pm_market.domain.models import Contract
from src.pm_order.domain.models import Bet, TakerFill


@dataclass
class PositionDelta:
    """One ledger change. Negative shares are a sale."""

    user_id: str
    answer_id: str | None
    outcome: Outcome
    shares: float
    amount: float = 0.0  # cost basis added by a buy


@dataclass
class OrderFill:
    """Fill to record on a limit order, as maker or as taker."""

    order: Bet
    amount: float
    shares: float
    prob_after: float
    matched_bet_id: str | None = None


@dataclass
class TradePlan:
    """Everything a trade changes, computed before anything is written.

    `pools` is keyed by answer id; the None key is a binary contract's pool.
    `volume` is per answer; `contract_volume` is what the contract adds.
    """

    contract: Contract
    pools: dict[str | None, Pool] = field(default_factory=dict)
    volume: dict[str, float] = field(default_factory=dict)
    contract_volume: float = 0.0
    balance_deltas: dict[str, float] = field(default_factory=dict)
    positions: list[PositionDelta] = field(default_factory=list)
    new_bets: list[Bet] = field(default_factory=list)
    order_fills: list[OrderFill] = field(default_factory=list)
    cancelled_orders: list[Bet] = field(default_factory=list)
    price_answer_id: str | None = None

    def add_balance(self, user_id: str, delta: float) -> None:
        self.balance_deltas[user_id] = self.balance_deltas.get(user_id, 0.0) + delta

    def add_volume(self, answer_id: str, amount: float) -> None:
        self.volume[answer_id] = self.volume.get(answer_id, 0.0) + abs(amount)

    def cancel(self, order: Bet) -> None:
        """Cancel an open order and refund its unfilled remainder."""
        if not order.is_open or any(o.id == order.id for o in self.cancelled_orders):
            return
        self.cancelled_orders.append(order)
        if order.remaining_amount > 0:
            self.add_balance(order.user_id, order.remaining_amount)


@dataclass
class BetResult:
    bet: Bet
    fills: list[TakerFill]

    @property
    def shares(self) -> float:
        return self.bet.shares

    @property
    def prob_after(self) -> float:
        return self.bet.prob_after


@dataclass
class SaleResult:
    bet: Bet
    payout: float

    @property
    def prob_after(self) -> float:
        return self.bet.prob_after


@dataclass
class LimitOrderResult:
    order: Bet
    fills: list[TakerFill]

    @property
    def remaining_amount(self) -> float:
        return max(self.order.remaining_amount, 0.0)


@dataclass
class ExpiryResult:
    expired_count: int = 0
    total_refunded: float = 0.0


@dataclass
class ResolutionResult:
    resolution: Resolution
    cancelled_orders: int
    total_payout: float
