"""Tests for pm_order.engine.matching_algo — book walk plus AMM remainder."""

import pytest

from src.pm_amm.domain.models import CpmmState, Pool
from src.pm_amm.engine.cpmm import calculate_cpmm_purchase, get_cpmm_probability
from src.pm_common.enums import Outcome
from src.pm_order.domain.models import Bet
from src.pm_order.engine.matching_algo import (
    calculate_amount_to_buy_shares_with_fills,
    compute_fills,
    match_limit_orders,
)

EVEN = CpmmState(Pool(yes=100.0, no=100.0))


def _make_order(**kwargs: object) -> Bet:
    defaults: dict[str, object] = {
        "id": "o-1",
        "contract_id": "c-1",
        "user_id": "maker",
        "amount": 0.0,
        "shares": 0.0,
        "outcome": Outcome.NO,
        "prob_before": 0.5,
        "prob_after": 0.5,
        "limit_prob": 0.4,
        "order_amount": 20.0,
        "is_filled": False,
    }
    defaults.update(kwargs)
    return Bet(**defaults)  # type: ignore[arg-type]


class TestMatchLimitOrders:
    def test_taker_matches_resting_no_order(self) -> None:
        order = _make_order()
        match = match_limit_orders(5.0, Outcome.YES, [order], EVEN, {"maker": 20.0}, "taker")

        assert len(match.takers) == 1
        assert match.takers[0].matched_bet_id == "o-1"
        assert match.takers[0].amount == pytest.approx(5.0)
        assert match.takers[0].shares > 5.0
        assert match.makers[0].bet_id == "o-1"
        assert match.makers[0].outcome == Outcome.NO
        assert match.makers[0].amount == pytest.approx(5.0)
        assert match.remaining_amount == 0.0
        assert get_cpmm_probability(match.new_pool) == pytest.approx(0.5, abs=0.01)
        # the order itself is untouched
        assert order.remaining_amount == 20.0

    def test_taker_larger_than_order(self) -> None:
        match = match_limit_orders(
            30.0, Outcome.YES, [_make_order()], EVEN, {"maker": 20.0}, "taker"
        )
        assert match.takers[0].amount == pytest.approx(20.0)
        assert match.remaining_amount == pytest.approx(10.0)

    def test_best_limit_first_for_yes_taker(self) -> None:
        low = _make_order(id="low", limit_prob=0.3, order_amount=10.0)
        high = _make_order(id="high", limit_prob=0.45, order_amount=10.0)
        match = match_limit_orders(5.0, Outcome.YES, [low, high], EVEN, {"maker": 50.0})
        assert [t.matched_bet_id for t in match.takers] == ["high"]

    def test_lowest_limit_first_for_no_taker(self) -> None:
        low = _make_order(id="low", outcome=Outcome.YES, limit_prob=0.55, order_amount=10.0)
        high = _make_order(id="high", outcome=Outcome.YES, limit_prob=0.7, order_amount=10.0)
        match = match_limit_orders(5.0, Outcome.NO, [high, low], EVEN, {"maker": 50.0})
        assert [t.matched_bet_id for t in match.takers] == ["low"]

    def test_same_outcome_orders_ignored(self) -> None:
        order = _make_order(outcome=Outcome.YES)
        match = match_limit_orders(5.0, Outcome.YES, [order], EVEN, {"maker": 20.0})
        assert match.takers == []
        assert match.remaining_amount == 5.0
        assert match.new_pool == EVEN.pool

    def test_self_trade_skipped(self) -> None:
        order = _make_order(user_id="Taker")
        match = match_limit_orders(5.0, Outcome.YES, [order], EVEN, {"Taker": 20.0}, "taker")
        assert match.takers == []
        assert match.orders_to_cancel == []

    def test_unbacked_order_cancelled(self) -> None:
        order = _make_order()
        match = match_limit_orders(5.0, Outcome.YES, [order], EVEN, {}, "taker")
        assert match.takers == []
        assert match.orders_to_cancel == [order]

    def test_maker_balance_caps_fill(self) -> None:
        first = _make_order(id="first", limit_prob=0.45)
        second = _make_order(id="second", limit_prob=0.40)
        match = match_limit_orders(
            30.0, Outcome.YES, [first, second], EVEN, {"maker": 12.0}, "taker"
        )
        assert match.takers[0].amount == pytest.approx(12.0)
        assert match.orders_to_cancel == [second]
        assert match.remaining_amount == pytest.approx(18.0)

    def test_order_out_of_reach_keeps_resting(self) -> None:
        # $5 of YES lifts prob to ~0.524, short of the NO order's 0.6 limit
        order = _make_order(limit_prob=0.6)
        match = match_limit_orders(5.0, Outcome.YES, [order], EVEN, {"maker": 20.0}, "taker")
        assert match.takers == []
        assert match.makers == []
        assert match.orders_to_cancel == []
        assert match.remaining_amount == 5.0
        assert match.new_pool == EVEN.pool

    @pytest.mark.parametrize(
        ("maker_outcome", "limit_prob", "max_price"),
        [(Outcome.NO, 0.55, 0.45), (Outcome.YES, 0.45, 0.45)],
    )
    def test_maker_never_pays_past_its_limit(
        self, maker_outcome: Outcome, limit_prob: float, max_price: float
    ) -> None:
        order = _make_order(outcome=maker_outcome, limit_prob=limit_prob)
        taker_outcome = maker_outcome.opposite
        match = match_limit_orders(20.0, taker_outcome, [order], EVEN, {"maker": 20.0}, "taker")

        maker = match.makers[0]
        assert match.takers[0].amount == pytest.approx(20.0)
        assert 0 < maker.amount < 20.0
        assert maker.amount / maker.shares <= max_price + 1e-9
        assert get_cpmm_probability(match.new_pool) == pytest.approx(limit_prob)

    def test_balances_not_mutated(self) -> None:
        balances = {"maker": 20.0}
        match_limit_orders(5.0, Outcome.YES, [_make_order()], EVEN, balances)
        assert balances == {"maker": 20.0}


class TestComputeFills:
    def test_empty_book_is_plain_amm_purchase(self) -> None:
        fills = compute_fills(EVEN, Outcome.YES, 10.0, [], {})
        purchase = calculate_cpmm_purchase(EVEN, 10.0, Outcome.YES)
        assert len(fills.takers) == 1
        assert fills.takers[0].matched_bet_id is None
        assert fills.shares == pytest.approx(purchase.shares)
        assert fills.new_pool == purchase.new_pool
        assert fills.prob_before == pytest.approx(0.5)

    def test_book_then_amm_remainder(self) -> None:
        fills = compute_fills(EVEN, Outcome.YES, 30.0, [_make_order()], {"maker": 20.0}, "taker")
        assert [t.matched_bet_id for t in fills.takers] == ["o-1", None]
        assert fills.amount == pytest.approx(30.0)
        assert fills.takers[1].amount == pytest.approx(10.0)
        assert len(fills.makers) == 1
        assert fills.prob_after > 0.5

    def test_matched_fill_moves_price_less(self) -> None:
        amm_only = compute_fills(EVEN, Outcome.YES, 20.0, [], {})
        matched = compute_fills(EVEN, Outcome.YES, 20.0, [_make_order()], {"maker": 20.0})
        assert abs(matched.prob_after - 0.5) < abs(amm_only.prob_after - 0.5)


class TestAmountForShares:
    def test_without_orders_uses_pool_inverse(self) -> None:
        amount = calculate_amount_to_buy_shares_with_fills(EVEN, 19.0909090909, Outcome.YES, [], {})
        assert amount == pytest.approx(10.0, abs=1e-6)

    def test_with_orders_hits_target_shares(self) -> None:
        orders = [_make_order()]
        balances = {"maker": 20.0}
        amount = calculate_amount_to_buy_shares_with_fills(
            EVEN, 25.0, Outcome.YES, orders, balances, "taker"
        )
        fills = compute_fills(EVEN, Outcome.YES, amount, orders, balances, "taker")
        assert fills.shares == pytest.approx(25.0, rel=1e-6)
        assert amount < 25.0
