"""Best-price matching of an incoming bet against resting limit orders.

A matched fill is executed through the pool: the taker's share of the fill
is a CPMM purchase of the taker's outcome on the running pool. If that
purchase pushes the price past the maker's limit, the maker's escrow buys
the maker's outcome until the price is back at the limit, so a maker never
pays more than its limit. Orders the taker's flow does not reach are left
resting. Whatever the book cannot absorb is bought from the AMM directly.
"""
import logging

from src.pm_amm.domain.models import CpmmState
from src.pm_amm.engine.cpmm import (
    calculate_amount_to_buy_shares,
    calculate_amount_to_reach_prob,
    calculate_cpmm_purchase,
    get_cpmm_probability,
)
from src.pm_common.enums import Outcome
from src.pm_common.floats import binary_search, floating_lesser_equal
from src.pm_order.domain.models import Bet, FillResult, MakerFill, MatchResult, TakerFill
from src.pm_risk.rules.self_trade import is_self_trade

logger = logging.getLogger(__name__)


def _sort_for_taker(orders: list[Bet], outcome: Outcome) -> list[Bet]:
    # YES taker walks NO orders from the highest limit down, NO taker the reverse
    if outcome == Outcome.YES:
        return sorted(orders, key=lambda o: o.limit_prob if o.limit_prob is not None else 0.0,
                      reverse=True)
    return sorted(orders, key=lambda o: o.limit_prob if o.limit_prob is not None else 1.0)


def match_limit_orders(
    amount: float,
    outcome: Outcome,
    orders: list[Bet],
    state: CpmmState,
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None = None,
) -> MatchResult:
    """Walk opposite-outcome resting orders and fill them against `amount`.

    Pure: neither the orders nor the balances passed in are mutated.
    """
    takers: list[TakerFill] = []
    makers: list[MakerFill] = []
    orders_to_cancel: list[Bet] = []
    balances = dict(balance_by_user_id)
    pool = state.pool
    remaining = amount

    candidates = _sort_for_taker(
        [o for o in orders if o.is_open and o.outcome != outcome], outcome
    )
    for order in candidates:
        if floating_lesser_equal(remaining, 0):
            break
        if taker_user_id is not None and is_self_trade(taker_user_id, order.user_id):
            continue

        maker_balance = balances.get(order.user_id, 0.0)
        fill_amount = min(remaining, order.remaining_amount, maker_balance)
        if floating_lesser_equal(fill_amount, 0):
            # nothing left on the order, or the maker can no longer back it
            orders_to_cancel.append(order)
            continue

        taker_buy = calculate_cpmm_purchase(CpmmState(pool, state.p), fill_amount, outcome)
        if not order.crossed_by(taker_buy.prob_after):
            continue
        maker_state = CpmmState(taker_buy.new_pool, state.p)
        maker_amount = calculate_amount_to_reach_prob(
            maker_state, order.limit_prob, order.outcome, fill_amount
        )
        if floating_lesser_equal(maker_amount, 0):
            continue
        maker_buy = calculate_cpmm_purchase(maker_state, maker_amount, order.outcome)
        pool = maker_buy.new_pool

        takers.append(TakerFill(matched_bet_id=order.id, amount=fill_amount,
                                shares=taker_buy.shares))
        makers.append(MakerFill(bet_id=order.id, user_id=order.user_id, outcome=order.outcome,
                                amount=maker_amount, shares=maker_buy.shares))
        balances[order.user_id] = maker_balance - maker_amount
        remaining -= fill_amount
        logger.debug(
            "Matched %.4f %s against order %s (maker %.4f)",
            fill_amount, outcome.value, order.id, maker_amount,
        )

    return MatchResult(
        takers=takers,
        makers=makers,
        orders_to_cancel=orders_to_cancel,
        remaining_amount=max(remaining, 0.0),
        new_pool=pool,
    )


def compute_fills(
    state: CpmmState,
    outcome: Outcome,
    amount: float,
    orders: list[Bet],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None = None,
) -> FillResult:
    """Match against the book first, then buy the unmatched remainder from the AMM."""
    prob_before = get_cpmm_probability(state.pool, state.p)
    match = match_limit_orders(amount, outcome, orders, state, balance_by_user_id, taker_user_id)

    takers = list(match.takers)
    pool = match.new_pool
    if not floating_lesser_equal(match.remaining_amount, 0):
        purchase = calculate_cpmm_purchase(
            CpmmState(pool, state.p), match.remaining_amount, outcome
        )
        takers.append(TakerFill(matched_bet_id=None, amount=match.remaining_amount,
                                shares=purchase.shares))
        pool = purchase.new_pool

    return FillResult(
        outcome=outcome,
        takers=takers,
        makers=match.makers,
        orders_to_cancel=match.orders_to_cancel,
        new_pool=pool,
        prob_before=prob_before,
        prob_after=get_cpmm_probability(pool, state.p),
    )


def calculate_amount_to_buy_shares_with_fills(
    state: CpmmState,
    shares: float,
    outcome: Outcome,
    orders: list[Bet],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None = None,
) -> float:
    """Amount whose compute_fills yields exactly `shares`. Bounded by `shares` (price <= 1)."""
    matchable = [
        o for o in orders
        if o.is_open and o.outcome != outcome
        and not (taker_user_id is not None and is_self_trade(taker_user_id, o.user_id))
    ]
    if not matchable:
        return calculate_amount_to_buy_shares(state, shares, outcome)

    def comparator(amount: float) -> float:
        if amount <= 0:
            return -shares
        fills = compute_fills(state, outcome, amount, orders, balance_by_user_id, taker_user_id)
        return fills.shares - shares

    return binary_search(0.0, shares, comparator)
