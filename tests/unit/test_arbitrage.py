"""Tests for pm_arbitrage.engine.solver — dependent multi-choice pricing."""

import pytest

from src.pm_amm.domain.models import Pool
from src.pm_amm.engine.cpmm import create_answer_pools, get_cpmm_probability
from src.pm_arbitrage.domain.models import ArbitrageResult
from src.pm_arbitrage.engine.solver import (
    calculate_multi_arbitrage_buy,
    calculate_multi_arbitrage_sell,
)
from src.pm_common.enums import Outcome
from src.pm_common.errors import AnswerNotFoundError, ValidationError
from src.pm_market.domain.models import Answer
from src.pm_order.domain.models import Bet


def _answers(liquidity: float = 300.0, count: int = 3) -> list[Answer]:
    return [
        Answer(id=f"a-{i}", text=f"Answer {i}", index=i, pool=pool)
        for i, pool in enumerate(create_answer_pools(liquidity, count))
    ]


def _after(answers: list[Answer], result: ArbitrageResult) -> list[Answer]:
    pools = result.new_pools()
    return [Answer(id=a.id, text=a.text, index=a.index, pool=pools[a.id]) for a in answers]


def _prob_sum(answers: list[Answer]) -> float:
    return sum(get_cpmm_probability(a.pool, a.p) for a in answers)


class TestArbitrageBuy:
    def test_yes_buy_keeps_sum_at_one(self) -> None:
        answers = _answers()
        result = calculate_multi_arbitrage_buy(answers, answers[0], Outcome.YES, 10.0, {}, {})
        after = _after(answers, result)

        assert _prob_sum(after) == pytest.approx(1.0, abs=1e-6)
        assert after[0].prob > 1 / 3
        assert after[1].prob < 1 / 3
        assert after[2].prob < 1 / 3
        assert all(r.outcome == Outcome.NO for r in result.other_bet_results)
        assert result.redeemed_shares > 0

    def test_yes_buy_spends_exactly_amount(self) -> None:
        answers = _answers()
        result = calculate_multi_arbitrage_buy(answers, answers[0], Outcome.YES, 10.0, {}, {})
        side_cost = sum(r.fill.amount for r in result.other_bet_results)
        redeemed_cash = result.redeemed_shares * (len(answers) - 2)
        net = result.new_bet_result.fill.amount + side_cost - redeemed_cash
        assert net == pytest.approx(10.0, abs=1e-6)

    def test_taker_shares_include_redeemed(self) -> None:
        answers = _answers()
        result = calculate_multi_arbitrage_buy(answers, answers[1], Outcome.YES, 10.0, {}, {})
        shares = result.taker_shares_by_answer["a-1"][Outcome.YES]
        assert shares == pytest.approx(
            result.new_bet_result.fill.shares + result.redeemed_shares
        )
        # price below one: every dollar buys more than one share
        assert shares > 10.0

    def test_no_buy_keeps_sum_at_one(self) -> None:
        answers = _answers(count=4, liquidity=400.0)
        result = calculate_multi_arbitrage_buy(answers, answers[2], Outcome.NO, 15.0, {}, {})
        after = _after(answers, result)

        assert _prob_sum(after) == pytest.approx(1.0, abs=1e-6)
        assert after[2].prob < 0.25
        assert all(a.prob > 0.25 for a in after if a.id != "a-2")
        assert all(r.outcome == Outcome.YES for r in result.other_bet_results)
        side_cost = sum(r.fill.amount for r in result.other_bet_results)
        assert result.new_bet_result.fill.amount + side_cost == pytest.approx(15.0, abs=1e-6)

    def test_resting_order_absorbs_flow(self) -> None:
        answers = _answers()
        order = Bet(
            id="o-1", contract_id="c-1", user_id="maker", amount=0.0, shares=0.0,
            outcome=Outcome.NO, prob_before=1 / 3, prob_after=1 / 3, answer_id="a-0",
            limit_prob=0.3, order_amount=5.0, is_filled=False,
        )
        result = calculate_multi_arbitrage_buy(
            answers, answers[0], Outcome.YES, 10.0, {"a-0": [order]}, {"maker": 5.0}, "taker"
        )
        assert _prob_sum(_after(answers, result)) == pytest.approx(1.0, abs=1e-6)
        makers = result.new_bet_result.fill.makers
        assert [m.bet_id for m in makers] == ["o-1"]

    def test_unknown_target(self) -> None:
        answers = _answers()
        stranger = Answer(id="a-x", text="X", index=9, pool=Pool(100, 50))
        with pytest.raises(AnswerNotFoundError):
            calculate_multi_arbitrage_buy(answers, stranger, Outcome.YES, 10.0, {}, {})

    def test_non_positive_amount(self) -> None:
        answers = _answers()
        with pytest.raises(ValidationError):
            calculate_multi_arbitrage_buy(answers, answers[0], Outcome.YES, 0.0, {}, {})


class TestArbitrageSell:
    def test_round_trip_returns_roughly_the_stake(self) -> None:
        answers = _answers()
        buy = calculate_multi_arbitrage_buy(answers, answers[0], Outcome.YES, 10.0, {}, {})
        shares = buy.taker_shares_by_answer["a-0"][Outcome.YES]
        after_buy = _after(answers, buy)

        sale = calculate_multi_arbitrage_sell(after_buy, after_buy[0], Outcome.YES, shares, {}, {})
        after_sale = _after(after_buy, sale.arbitrage)

        assert sale.payout == pytest.approx(10.0, rel=0.05)
        assert sale.payout == pytest.approx(shares - sale.buy_amount)
        assert _prob_sum(after_sale) == pytest.approx(1.0, abs=1e-6)
        assert after_sale[0].prob == pytest.approx(1 / 3, abs=0.02)

    def test_non_positive_shares(self) -> None:
        answers = _answers()
        with pytest.raises(ValidationError):
            calculate_multi_arbitrage_sell(answers, answers[0], Outcome.YES, -1.0, {}, {})
