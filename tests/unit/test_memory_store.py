from datetime import UTC, datetime

import pytest

from src.pm_amm.domain.models import Pool
from src.pm_common.enums import MarketPhase, Outcome
from src.pm_common.errors import InsufficientBalanceError
from src.pm_market.domain.models import BinaryContract, PriceHistoryPoint
from src.pm_order.domain.models import Bet
from src.pm_store.infrastructure.memory import InMemoryStore


def _contract(
    contract_id: str = "c-1", phase: MarketPhase = MarketPhase.SANDBOX
) -> BinaryContract:
    return BinaryContract(
        id=contract_id, question="Q?", creator_id="u-0", pool=Pool(100, 100), phase=phase
    )


def _bet(bet_id: str = "b-1", amount: float = 10.0) -> Bet:
    return Bet(
        id=bet_id, contract_id="c-1", user_id="u-1", amount=amount, shares=19.09,
        outcome=Outcome.YES, prob_before=0.5, prob_after=0.5476,
    )


class TestContracts:
    async def test_save_and_get(self) -> None:
        store = InMemoryStore()
        contract = _contract()
        await store.save_contract(contract)
        assert await store.get_contract("c-1") is contract
        assert await store.get_contract("c-404") is None

    async def test_list_by_phase(self) -> None:
        store = InMemoryStore()
        await store.save_contract(_contract("c-1"))
        await store.save_contract(_contract("c-2", phase=MarketPhase.GRADUATING))
        assert len(await store.list_contracts()) == 2
        graduating = await store.list_contracts(MarketPhase.GRADUATING)
        assert [c.id for c in graduating] == ["c-2"]


class TestBalances:
    async def test_new_user_has_zero_balance(self) -> None:
        user = await InMemoryStore().get_or_create_user("alice")
        assert user.balance == 0.0

    async def test_credit_and_debit(self) -> None:
        store = InMemoryStore()
        await store.update_user_balance("alice", 100.0)
        user = await store.update_user_balance("alice", -40.0)
        assert user.balance == pytest.approx(60.0)

    async def test_overdraft_rejected(self) -> None:
        store = InMemoryStore()
        await store.update_user_balance("alice", 10.0)
        with pytest.raises(InsufficientBalanceError):
            await store.update_user_balance("alice", -10.01)
        assert (await store.get_or_create_user("alice")).balance == 10.0

    async def test_residue_clamped_to_zero(self) -> None:
        store = InMemoryStore()
        await store.update_user_balance("alice", 10.0)
        user = await store.update_user_balance("alice", -10.0 - 1e-12)
        assert user.balance == 0.0


class TestMetrics:
    async def test_get_or_create_is_stable(self) -> None:
        store = InMemoryStore()
        first = await store.get_or_create_metric("alice", "c-1", "a-1")
        second = await store.get_or_create_metric("alice", "c-1", "a-1")
        assert first is second
        assert first.answer_id == "a-1"

    async def test_list_by_contract(self) -> None:
        store = InMemoryStore()
        await store.get_or_create_metric("alice", "c-1")
        await store.get_or_create_metric("bob", "c-1")
        await store.get_or_create_metric("alice", "c-2")
        assert {m.user_id for m in await store.list_metrics("c-1")} == {"alice", "bob"}


class TestBets:
    async def test_add_and_update(self) -> None:
        store = InMemoryStore()
        await store.add_bet("c-1", _bet())
        replacement = _bet(amount=12.0)
        await store.update_bet(replacement)
        bets = await store.list_bets("c-1")
        assert len(bets) == 1
        assert bets[0].amount == 12.0

    async def test_update_unknown_appends(self) -> None:
        store = InMemoryStore()
        await store.update_bet(_bet("b-9"))
        assert [b.id for b in await store.list_bets("c-1")] == ["b-9"]


class TestPricePoints:
    async def test_points_kept_per_contract(self) -> None:
        store = InMemoryStore()
        point = PriceHistoryPoint(datetime(2026, 1, 1, tzinfo=UTC), 0.6, 0.4)
        await store.add_price_point("c-1", point)
        assert store.get_price_points("c-1") == [point]
        assert store.get_price_points("c-2") == []
