"""Multi-answer arbitrage for dependent multiple-choice markets.

In a market whose answers must sum to one, a YES purchase on one answer is
executed jointly with NO purchases of the same share count `n` in every
other answer. Holding one NO in each of the other k-1 answers is worth one
YES in the target plus (k-2) in cash, so those side shares are redeemed:

    YES on target:  amount = yes_amount + side_cost - n*(k-2)
                    taker gets yes_shares + n YES on target

A NO purchase is the mirror image: one YES in each other answer is worth
exactly one NO in the target (no cash).

`n` is found by bisection so that the probabilities of all new pools sum
to one. Each leg goes through compute_fills, so resting limit orders on
any answer absorb part of the flow and change how much pool movement the
remaining legs need; every bisection step re-evaluates all legs.
"""
import logging

from config.settings import settings
from src.pm_amm.engine.cpmm import get_cpmm_probability
from src.pm_amm.engine.invariants import is_pool_drained
from src.pm_arbitrage.domain.models import AnswerBetResult, ArbitrageResult, ArbitrageSaleResult
from src.pm_common.enums import Outcome
from src.pm_common.errors import (
    AnswerNotFoundError,
    InternalError,
    PoolDrainRejectedError,
    ValidationError,
)
from src.pm_common.floats import EPSILON, binary_search, floating_lesser_equal
from src.pm_market.domain.models import Answer
from src.pm_order.domain.models import Bet, FillResult
from src.pm_order.engine.matching_algo import (
    calculate_amount_to_buy_shares_with_fills,
    compute_fills,
)
from src.pm_risk.rules.order_limit import check_positive_amount

logger = logging.getLogger(__name__)

SUM_TO_ONE_EPSILON = 1e-6
_MAX_BRACKET_DOUBLINGS = 64


def _empty_fill(answer: Answer, outcome: Outcome) -> FillResult:
    prob = get_cpmm_probability(answer.pool, answer.p)
    return FillResult(
        outcome=outcome, takers=[], makers=[], orders_to_cancel=[],
        new_pool=answer.pool, prob_before=prob, prob_after=prob,
    )


def _buy_shares_in_answer(
    answer: Answer,
    outcome: Outcome,
    shares: float,
    orders: list[Bet],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None,
) -> FillResult:
    if floating_lesser_equal(shares, 0):
        return _empty_fill(answer, outcome)
    amount = calculate_amount_to_buy_shares_with_fills(
        answer.state, shares, outcome, orders, balance_by_user_id, taker_user_id
    )
    if floating_lesser_equal(amount, 0):
        return _empty_fill(answer, outcome)
    return compute_fills(answer.state, outcome, amount, orders, balance_by_user_id, taker_user_id)


def _evaluate_buy(
    answers: list[Answer],
    target: Answer,
    outcome: Outcome,
    amount: float,
    side_shares: float,
    orders_by_answer: dict[str, list[Bet]],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None,
) -> ArbitrageResult | None:
    """All legs for a given side share count, or None if the amount cannot cover them."""
    others = [a for a in answers if a.id != target.id]
    side_outcome = outcome.opposite

    try:
        side_results = [
            AnswerBetResult(
                a.id,
                _buy_shares_in_answer(
                    a, side_outcome, side_shares, orders_by_answer.get(a.id, []),
                    balance_by_user_id, taker_user_id,
                ),
            )
            for a in others
        ]
        side_cost = sum(r.fill.amount for r in side_results)
        redeemed_cash = side_shares * (len(others) - 1) if outcome == Outcome.YES else 0.0
        main_amount = amount - (side_cost - redeemed_cash)
        if main_amount < -EPSILON:
            return None
        if floating_lesser_equal(main_amount, 0):
            main_fill = _empty_fill(target, outcome)
        else:
            main_fill = compute_fills(
                target.state, outcome, main_amount, orders_by_answer.get(target.id, []),
                balance_by_user_id, taker_user_id,
            )
    except ValidationError:
        # a leg would push an answer to the probability boundary
        return None

    return ArbitrageResult(
        new_bet_result=AnswerBetResult(target.id, main_fill),
        other_bet_results=side_results,
        taker_shares_by_answer={target.id: {outcome: main_fill.shares + side_shares}},
        redeemed_shares=side_shares,
    )


def _prob_sum(result: ArbitrageResult, answers: list[Answer]) -> float:
    pools = result.new_pools()
    return sum(get_cpmm_probability(pools[a.id], a.p) for a in answers)


def calculate_multi_arbitrage_buy(
    answers: list[Answer],
    target: Answer,
    outcome: Outcome,
    amount: float,
    orders_by_answer: dict[str, list[Bet]],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None = None,
) -> ArbitrageResult:
    """Buy `amount` of `outcome` on `target`, rebalancing every other answer."""
    check_positive_amount(amount)
    if all(a.id != target.id for a in answers):
        raise AnswerNotFoundError(target.id)

    def evaluate(side_shares: float) -> ArbitrageResult | None:
        return _evaluate_buy(
            answers, target, outcome, amount, side_shares,
            orders_by_answer, balance_by_user_id, taker_user_id,
        )

    def comparator(side_shares: float) -> float:
        result = evaluate(side_shares)
        if result is None:
            return 1.0  # too many side shares
        total = _prob_sum(result, answers)
        # more side shares lower the sum on a YES buy and raise it on a NO buy
        return 1 - total if outcome == Outcome.YES else total - 1

    high = amount
    for _ in range(_MAX_BRACKET_DOUBLINGS):
        if comparator(high) >= 0:
            break
        high *= 2
    else:
        raise InternalError(f"Arbitrage bracket not found for amount {amount}")

    side_shares = binary_search(
        0.0, high, comparator,
        max_iterations=settings.ARBITRAGE_MAX_ITERATIONS,
        tolerance=settings.ARBITRAGE_TOLERANCE,
    )
    result = evaluate(side_shares)
    if result is None:
        raise InternalError(f"Arbitrage solution infeasible at {side_shares} side shares")

    total = _prob_sum(result, answers)
    if abs(total - 1) >= SUM_TO_ONE_EPSILON:
        raise InternalError(f"Arbitrage did not normalize probabilities: sum={total}")
    logger.debug(
        "Arbitrage %s %.4f on %s: %.6f side shares, prob sum %.12f",
        outcome.value, amount, target.id, side_shares, total,
    )
    return result


def calculate_multi_arbitrage_sell(
    answers: list[Answer],
    target: Answer,
    outcome: Outcome,
    shares: float,
    orders_by_answer: dict[str, list[Bet]],
    balance_by_user_id: dict[str, float],
    taker_user_id: str | None = None,
) -> ArbitrageSaleResult:
    """Sell `shares` of `outcome` on `target`.

    Buys exactly `shares` of the opposite outcome through the arbitrage path
    and redeems the resulting YES+NO pairs, so payout = shares - buy amount.
    """
    check_positive_amount(shares, "Shares")
    buy_outcome = outcome.opposite

    def comparator(amount: float) -> float:
        if amount <= 0:
            return -shares
        try:
            result = calculate_multi_arbitrage_buy(
                answers, target, buy_outcome, amount,
                orders_by_answer, balance_by_user_id, taker_user_id,
            )
        except ValidationError:
            return 1.0
        return result.taker_shares_by_answer[target.id][buy_outcome] - shares

    buy_amount = binary_search(0.0, shares, comparator)
    if floating_lesser_equal(buy_amount, 0):
        raise ValidationError(f"Sale of {shares} shares is too small to price")
    result = calculate_multi_arbitrage_buy(
        answers, target, buy_outcome, buy_amount,
        orders_by_answer, balance_by_user_id, taker_user_id,
    )

    drained = [r.answer_id for r in result.all_results if is_pool_drained(r.new_pool)]
    if drained:
        logger.info("Arbitrage sale rejected: would drain answers %s", drained)
        raise PoolDrainRejectedError()
    payout = shares - buy_amount
    if payout <= 0:
        raise ValidationError(f"Payout must be positive, got {payout}")

    return ArbitrageSaleResult(payout=payout, buy_amount=buy_amount, arbitrage=result)
