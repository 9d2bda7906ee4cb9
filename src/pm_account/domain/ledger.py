"""Position ledger arithmetic on a Metric.

Share counters only ever move by the exact shares bought or redeemed.
A sell for more than is held fails; the "sell everything" case is resolved
by the caller before reaching here (see resolve_sell_shares).
"""
from src.pm_account.domain.models import Metric
from src.pm_common.enums import Outcome
from src.pm_common.errors import InsufficientSharesError, ValidationError
from src.pm_common.floats import EPSILON, floating_lesser_equal


def held_shares(metric: Metric, outcome: Outcome) -> float:
    return metric.total_shares_yes if outcome == Outcome.YES else metric.total_shares_no


def resolve_sell_shares(metric: Metric, outcome: Outcome, requested: float | None) -> float:
    """Shares to sell: everything held when `requested` is None, else exactly `requested`."""
    held = held_shares(metric, outcome)
    if requested is None:
        if floating_lesser_equal(held, 0):
            raise InsufficientSharesError(0.0, held)
        return held
    if requested <= 0:
        raise ValidationError(f"Shares must be positive, got {requested}")
    if requested > held + EPSILON:
        raise InsufficientSharesError(requested, held)
    # absorb float residue so selling "all" leaves exactly zero
    return min(requested, held)


def apply_buy(metric: Metric, outcome: Outcome, shares: float, amount: float) -> None:
    if outcome == Outcome.YES:
        metric.total_shares_yes += shares
        metric.has_yes_shares = metric.total_shares_yes > EPSILON
    else:
        metric.total_shares_no += shares
        metric.has_no_shares = metric.total_shares_no > EPSILON
    metric.invested += amount


def apply_sell(metric: Metric, outcome: Outcome, shares: float) -> None:
    held = held_shares(metric, outcome)
    if shares > held + EPSILON:
        raise InsufficientSharesError(shares, held)

    total_before = metric.total_shares_yes + metric.total_shares_no
    remaining = max(held - shares, 0.0)
    if remaining < EPSILON:
        remaining = 0.0
    if outcome == Outcome.YES:
        metric.total_shares_yes = remaining
        metric.has_yes_shares = remaining > 0
    else:
        metric.total_shares_no = remaining
        metric.has_no_shares = remaining > 0

    # release cost basis pro rata to the shares given up
    if total_before > 0:
        metric.invested = max(metric.invested * (1 - shares / total_before), 0.0)
