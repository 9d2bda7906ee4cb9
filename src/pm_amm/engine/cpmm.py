"""Weighted constant-product market maker (CPMM).

Curve invariant for a pool (y, n) with weight p:

    k = y^p * n^(1-p)

Implied probability of YES:

    prob = p*n / (p*n + (1-p)*y)

A buy of `amount` on one outcome adds `amount` to both reserves and removes
shares from the bought side until the invariant holds again. A sale of `s`
shares is a purchase of `s` opposite shares followed by redeeming the `s`
YES+NO pairs for `s`, so the payout is `s` minus the cost of that purchase.
"""
import logging
import math

from config.settings import settings
from src.pm_amm.domain.fees import get_fees_split, get_taker_fee
from src.pm_amm.domain.models import CpmmState, Pool, PurchaseResult, SaleResult
from src.pm_amm.engine.invariants import is_pool_drained
from src.pm_common.enums import Outcome
from src.pm_common.errors import PoolDrainRejectedError, ValidationError
from src.pm_common.floats import binary_search

logger = logging.getLogger(__name__)


def get_cpmm_probability(pool: Pool, p: float = 0.5) -> float:
    return (p * pool.no) / ((1 - p) * pool.yes + p * pool.no)


def get_outcome_probability(pool: Pool, p: float, outcome: Outcome) -> float:
    prob = get_cpmm_probability(pool, p)
    return prob if outcome == Outcome.YES else 1 - prob


def get_invariant(pool: Pool, p: float) -> float:
    return pool.yes**p * pool.no ** (1 - p)


def calculate_cpmm_shares(pool: Pool, p: float, amount: float, outcome: Outcome) -> float:
    """Shares minted for `amount` (after fees) on `outcome`. Closed form of the invariant."""
    if amount == 0:
        return 0.0
    y, n = pool.yes, pool.no
    k = get_invariant(pool, p)
    if outcome == Outcome.YES:
        return y + amount - (k * (amount + n) ** (p - 1)) ** (1 / p)
    return n + amount - (k * (amount + y) ** -p) ** (1 / (1 - p))


def _check_positive(value: float, what: str) -> None:
    if not value > 0:
        raise ValidationError(f"{what} must be positive, got {value}")


def _check_open_interval(prob: float) -> None:
    if not (0 < prob < 1):
        raise ValidationError(f"Trade would push probability to the boundary: {prob}")


def calculate_cpmm_purchase(state: CpmmState, amount: float, outcome: Outcome) -> PurchaseResult:
    """Buy `amount` worth of `outcome` shares against the pool."""
    _check_positive(amount, "Amount")
    pool, p = state.pool, state.p
    prob_before = get_cpmm_probability(pool, p)

    gross_shares = calculate_cpmm_shares(pool, p, amount, outcome)
    fees = get_fees_split(get_taker_fee(gross_shares, prob_before))
    remaining = amount - fees.total
    shares = calculate_cpmm_shares(pool, p, remaining, outcome)

    if outcome == Outcome.YES:
        new_pool = Pool(yes=pool.yes - shares + remaining, no=pool.no + remaining)
    else:
        new_pool = Pool(yes=pool.yes + remaining, no=pool.no - shares + remaining)

    prob_after = get_cpmm_probability(new_pool, p)
    _check_open_interval(prob_after)
    return PurchaseResult(
        shares=shares,
        new_pool=new_pool,
        prob_before=prob_before,
        prob_after=prob_after,
        fees=fees,
    )


def _amount_for_shares_even_weight(pool: Pool, shares: float, outcome: Outcome) -> float:
    # p = 0.5, no fees: (y + a - s)(n + a) = y*n is a quadratic in a
    # a^2 + a(y + n - s) - s*n = 0 (YES side; swap reserves for NO)
    other = pool.no if outcome == Outcome.YES else pool.yes
    b = pool.yes + pool.no - shares
    disc = math.sqrt(b * b + 4 * shares * other)
    if b > 0:
        return 2 * shares * other / (b + disc)
    return (disc - b) / 2


def calculate_amount_to_buy_shares(state: CpmmState, shares: float, outcome: Outcome) -> float:
    """Cost of exactly `shares` shares of `outcome`. Price <= 1 bounds it by `shares`."""
    _check_positive(shares, "Shares")
    if state.p == 0.5 and settings.TAKER_FEE_CONSTANT == 0:
        return _amount_for_shares_even_weight(state.pool, shares, outcome)

    def comparator(amount: float) -> float:
        if amount <= 0:
            return -shares
        return calculate_cpmm_purchase(state, amount, outcome).shares - shares

    return binary_search(0.0, shares, comparator)


def calculate_amount_to_reach_prob(
    state: CpmmState, prob: float, outcome: Outcome, max_amount: float
) -> float:
    """Largest buy of `outcome`, up to `max_amount`, that keeps the price short of `prob`.

    YES buys raise the probability and NO buys lower it. Zero when the
    price is already at or past `prob` in the buying direction.
    """
    current = get_cpmm_probability(state.pool, state.p)
    if outcome == Outcome.YES and current >= prob:
        return 0.0
    if outcome == Outcome.NO and current <= prob:
        return 0.0

    if settings.TAKER_FEE_CONSTANT == 0:
        # prob fixes the reserve ratio n/y = r, the invariant k then fixes both reserves
        pool, p = state.pool, state.p
        r = prob * (1 - p) / (p * (1 - prob))
        k = get_invariant(pool, p)
        if outcome == Outcome.YES:
            amount = k * r**p - pool.no
        else:
            amount = k * r ** (p - 1) - pool.yes
        return min(max(amount, 0.0), max_amount)

    def comparator(amount: float) -> float:
        if amount <= 0:
            return -1.0
        after = calculate_cpmm_purchase(state, amount, outcome).prob_after
        return after - prob if outcome == Outcome.YES else prob - after

    if comparator(max_amount) <= 0:
        return max_amount
    return binary_search(0.0, max_amount, comparator)


def calculate_cpmm_sale(state: CpmmState, shares: float, outcome: Outcome) -> SaleResult:
    """Redeem `shares` of `outcome` back into the pool."""
    _check_positive(shares, "Shares")
    prob_before = get_cpmm_probability(state.pool, state.p)

    opposite = outcome.opposite
    buy_amount = calculate_amount_to_buy_shares(state, shares, opposite)
    purchase = calculate_cpmm_purchase(state, buy_amount, opposite)
    payout = shares - buy_amount

    if is_pool_drained(purchase.new_pool):
        logger.info(
            "Sale rejected: %.4f %s would drain pool to %s",
            shares, outcome.value, purchase.new_pool.to_dict(),
        )
        raise PoolDrainRejectedError()
    if payout <= 0:
        raise ValidationError(f"Payout must be positive, got {payout}")

    return SaleResult(
        payout=payout,
        new_pool=purchase.new_pool,
        prob_before=prob_before,
        prob_after=purchase.prob_after,
        buy_amount=buy_amount,
    )


def create_pool(liquidity: float, p: float = 0.5) -> Pool:
    """Initial pool whose implied probability equals the weight p."""
    _check_positive(liquidity, "Liquidity")
    return Pool(yes=liquidity, no=liquidity)


def create_answer_pools(liquidity: float, answer_count: int) -> list[Pool]:
    """Equal-probability pools (1/n each at p=0.5) splitting `liquidity` across answers."""
    _check_positive(liquidity, "Liquidity")
    if answer_count < 2:
        raise ValidationError(f"A multi-choice market needs at least 2 answers, got {answer_count}")
    per_answer = liquidity / answer_count
    return [
        Pool(yes=per_answer, no=per_answer / (answer_count - 1))
        for _ in range(answer_count)
    ]
