"""Multi-choice market flows: dependent (sum-to-one) and independent answers."""
from collections.abc import Awaitable, Callable

import pytest

from src.pm_common.enums import Outcome, Resolution
from src.pm_market.application.service import MarketService
from src.pm_market.domain.models import MultipleChoiceContract
from src.pm_matching.engine.engine import TradingEngine
from src.pm_store.infrastructure.memory import InMemoryStore

Fund = Callable[[str, float], Awaitable[None]]


def _prob_sum(contract: MultipleChoiceContract) -> float:
    return sum(a.prob for a in contract.answers)


async def _dependent(markets: MarketService) -> MultipleChoiceContract:
    return await markets.create_multi_choice_market(
        "Which color?", 300.0, ["Red", "Green", "Blue"], "creator"
    )


class TestDependentBuy:
    async def test_yes_buy_rebalances_all_answers(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        red, green, blue = contract.answers
        await fund("alice", 100.0)

        result = await engine.place_market_order(contract.id, "alice", 10.0, Outcome.YES, red.id)

        assert _prob_sum(contract) == pytest.approx(1.0, abs=1e-6)
        assert red.prob > 1 / 3
        assert green.prob < 1 / 3
        assert blue.prob < 1 / 3
        assert result.shares > 10.0
        assert result.prob_after == pytest.approx(red.prob)
        assert (await store.get_or_create_user("alice")).balance == pytest.approx(90.0)

        metric = await store.get_or_create_metric("alice", contract.id, red.id)
        assert metric.total_shares_yes == pytest.approx(result.shares)
        assert metric.invested == pytest.approx(10.0)
        # side purchases are redeemed, not held
        assert (await store.get_or_create_metric("alice", contract.id, green.id)).invested == 0.0

        bets = await store.list_bets(contract.id)
        redemptions = [b for b in bets if b.is_redemption]
        assert {b.answer_id for b in redemptions} == {green.id, blue.id}
        assert all(b.outcome == Outcome.NO for b in redemptions)
        assert contract.volume == pytest.approx(10.0)
        assert green.volume > 0
        assert contract.pool.yes == pytest.approx(sum(a.pool.yes for a in contract.answers))

    async def test_no_buy_rebalances_all_answers(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        red, green, blue = contract.answers
        await fund("alice", 100.0)

        result = await engine.place_market_order(contract.id, "alice", 15.0, Outcome.NO, blue.id)

        assert _prob_sum(contract) == pytest.approx(1.0, abs=1e-6)
        assert blue.prob < 1 / 3
        assert red.prob > 1 / 3
        assert green.prob > 1 / 3
        metric = await store.get_or_create_metric("alice", contract.id, blue.id)
        assert metric.total_shares_no == pytest.approx(result.shares)

    async def test_sum_holds_across_trades(
        self, engine: TradingEngine, markets: MarketService, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        await fund("alice", 500.0)
        await fund("bob", 500.0)
        red, green, blue = contract.answers

        await engine.place_market_order(contract.id, "alice", 40.0, Outcome.YES, red.id)
        await engine.place_market_order(contract.id, "bob", 25.0, Outcome.YES, green.id)
        await engine.place_market_order(contract.id, "alice", 10.0, Outcome.NO, red.id)
        await engine.place_market_order(contract.id, "bob", 60.0, Outcome.YES, blue.id)

        assert _prob_sum(contract) == pytest.approx(1.0, abs=1e-6)
        assert max(contract.answers, key=lambda a: a.prob) is blue


class TestDependentSell:
    async def test_sell_all_returns_roughly_the_stake(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        red = contract.answers[0]
        await fund("alice", 100.0)
        await engine.place_market_order(contract.id, "alice", 10.0, Outcome.YES, red.id)

        sale = await engine.sell_shares(contract.id, "alice", Outcome.YES, red.id)

        assert sale.payout == pytest.approx(10.0, rel=0.05)
        assert _prob_sum(contract) == pytest.approx(1.0, abs=1e-6)
        metric = await store.get_or_create_metric("alice", contract.id, red.id)
        assert metric.total_shares_yes == 0.0
        assert (await store.get_or_create_user("alice")).balance == pytest.approx(
            90.0 + sale.payout
        )
        assert contract.volume == pytest.approx(10.0 + sale.payout)


class TestIndependentAnswers:
    async def test_buy_moves_only_its_answer(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await markets.create_multi_choice_market(
            "Which will ship?", 200.0, ["API", "CLI"], "creator", should_answers_sum_to_one=False
        )
        api, cli = contract.answers
        cli_pool = cli.pool
        await fund("alice", 100.0)

        result = await engine.place_market_order(contract.id, "alice", 10.0, Outcome.YES, api.id)

        assert api.prob > 0.5
        assert cli.pool == cli_pool
        assert _prob_sum(contract) > 1.0
        assert not any(b.is_redemption for b in await store.list_bets(contract.id))

        sale = await engine.sell_shares(
            contract.id, "alice", Outcome.YES, api.id, shares=result.shares
        )
        assert sale.payout == pytest.approx(10.0, abs=1e-9)
        assert api.prob == pytest.approx(0.5, abs=1e-9)
        assert api.volume == pytest.approx(10.0 + sale.payout)
        assert cli.volume == 0.0
        assert contract.volume == pytest.approx(20.0)


class TestMultiLimitOrders:
    async def test_answer_order_rests_and_cancels(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        green = contract.answers[1]
        await fund("alice", 100.0)

        placed = await engine.place_limit_order(
            contract.id, "alice", Outcome.YES, 20.0, 0.2, answer_id=green.id
        )
        assert placed.order.is_open
        assert placed.order.answer_id == green.id

        refund = await engine.cancel_order("alice", placed.order.id)
        assert refund == pytest.approx(20.0)
        assert (await store.get_or_create_user("alice")).balance == pytest.approx(100.0)


class TestMultiResolution:
    async def test_winner_and_losers_paid(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        red, green, _ = contract.answers
        await fund("alice", 100.0)
        await fund("bob", 100.0)
        winner = await engine.place_market_order(contract.id, "alice", 10.0, Outcome.YES, red.id)
        loser_no = await engine.place_market_order(contract.id, "bob", 10.0, Outcome.NO, green.id)

        result = await markets.resolve_market(contract.id, Resolution.YES, red.id)

        assert red.resolution == Resolution.YES
        assert green.resolution == Resolution.NO
        assert contract.resolution == Resolution.YES
        assert (await store.get_or_create_user("alice")).balance == pytest.approx(
            90.0 + winner.shares
        )
        assert (await store.get_or_create_user("bob")).balance == pytest.approx(
            90.0 + loser_no.shares
        )
        assert result.total_payout == pytest.approx(winner.shares + loser_no.shares)

    async def test_cancel_refunds_every_answer(
        self, engine: TradingEngine, markets: MarketService, store: InMemoryStore, fund: Fund
    ) -> None:
        contract = await _dependent(markets)
        red, green, _ = contract.answers
        await fund("alice", 100.0)
        await engine.place_market_order(contract.id, "alice", 10.0, Outcome.YES, red.id)
        await engine.place_market_order(contract.id, "alice", 5.0, Outcome.YES, green.id)

        await markets.resolve_market(contract.id, Resolution.CANCEL)

        assert all(a.resolution == Resolution.CANCEL for a in contract.answers)
        assert (await store.get_or_create_user("alice")).balance == pytest.approx(100.0)
