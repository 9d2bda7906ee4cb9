"""MarketService: market creation, resolution and the graduation sweep.

Shares the engine's per-contract locks so that resolution and graduation
serialize with trades on the same contract.
"""
import asyncio
import logging

from config.settings import settings
from src.pm_amm.domain.models import Pool
from src.pm_amm.engine.cpmm import create_answer_pools, create_pool
from src.pm_clearing.domain.settlement import settle_metrics
from src.pm_common.enums import MarketPhase, Resolution
from src.pm_common.errors import AppError, ContractNotFoundError, ValidationError
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.lifecycle import (
    apply_resolution,
    update_market_phase,
    validate_resolution,
)
from src.pm_market.domain.models import (
    Answer,
    BinaryContract,
    Contract,
    MultipleChoiceContract,
)
from src.pm_market.domain.price_history import record_price_point
from src.pm_matching.domain.models import ResolutionResult
from src.pm_matching.engine.engine import TradingEngine

logger = logging.getLogger(__name__)


def _check_ante(liquidity: float) -> None:
    if not liquidity >= settings.MINIMUM_ANTE:
        raise ValidationError(
            f"Liquidity must be at least {settings.MINIMUM_ANTE}, got {liquidity}"
        )


class MarketService:
    def __init__(self, engine: TradingEngine) -> None:
        self._engine = engine
        self._store = engine.store
        self._graduation_lock = asyncio.Lock()

    async def _publish(self, contract: Contract) -> Contract:
        point = record_price_point(contract, contract.created_time)
        await self._store.add_price_point(contract.id, point)
        await self._store.save_contract(contract)
        return contract

    async def create_binary_market(
        self, question: str, liquidity: float, creator_id: str, p: float = 0.5
    ) -> BinaryContract:
        _check_ante(liquidity)
        if not (0 < p < 1):
            raise ValidationError(f"Weight p must be between 0 and 1, got {p}")
        contract = BinaryContract(
            id=generate_id("c_"),
            question=question,
            creator_id=creator_id,
            pool=create_pool(liquidity, p),
            p=p,
            created_time=self._engine.now(),
        )
        logger.info("Created binary market %s with liquidity %.2f", contract.id, liquidity)
        await self._publish(contract)
        return contract

    async def create_multi_choice_market(
        self,
        question: str,
        liquidity: float,
        answer_texts: list[str],
        creator_id: str,
        should_answers_sum_to_one: bool = True,
    ) -> MultipleChoiceContract:
        _check_ante(liquidity)
        if not (2 <= len(answer_texts) <= settings.MAX_ANSWERS):
            raise ValidationError(
                f"A multi-choice market needs 2-{settings.MAX_ANSWERS} answers,"
                f" got {len(answer_texts)}"
            )
        pools = create_answer_pools(liquidity, len(answer_texts))
        answers = [
            Answer(id=generate_id("a_"), text=text, index=i, pool=pool)
            for i, (text, pool) in enumerate(zip(answer_texts, pools))
        ]
        contract = MultipleChoiceContract(
            id=generate_id("c_"),
            question=question,
            creator_id=creator_id,
            pool=Pool(yes=sum(pool.yes for pool in pools), no=sum(pool.no for pool in pools)),
            answers=answers,
            should_answers_sum_to_one=should_answers_sum_to_one,
            created_time=self._engine.now(),
        )
        logger.info(
            "Created multi-choice market %s: %d answers, sum_to_one=%s",
            contract.id, len(answers), should_answers_sum_to_one,
        )
        await self._publish(contract)
        return contract

    async def resolve_market(
        self,
        contract_id: str,
        resolution: Resolution,
        winning_answer_id: str | None = None,
        resolution_probability: float | None = None,
    ) -> ResolutionResult:
        """Cancel open orders, resolve, then pay out and zero every position."""
        async with self._engine.contract_lock(contract_id):
            contract = await self._store.get_contract(contract_id)
            if contract is None:
                raise ContractNotFoundError(contract_id)
            validate_resolution(contract, resolution, winning_answer_id, resolution_probability)

            now = self._engine.now()
            cancelled, refunded = await self._engine.cancel_open_orders_locked(contract_id)
            apply_resolution(contract, resolution, now, winning_answer_id, resolution_probability)

            metrics = await self._store.list_metrics(contract_id)
            payouts = settle_metrics(contract, metrics)
            for metric in metrics:
                await self._store.update_metric(metric)
            for payout in payouts:
                await self._store.update_user_balance(payout.user_id, payout.amount)
            await self._store.save_contract(contract)

        total_payout = sum(p.amount for p in payouts)
        logger.info(
            "Resolved %s as %s: %d orders cancelled (%.2f refunded), %.2f paid out",
            contract_id, resolution.value, cancelled, refunded, total_payout,
        )
        return ResolutionResult(
            resolution=resolution, cancelled_orders=cancelled, total_payout=total_payout
        )

    async def check_all_graduations(self) -> int:
        """Promote graduating contracts whose timer has elapsed. Returns the count."""
        graduated = 0
        async with self._graduation_lock:
            for contract in await self._store.list_contracts(MarketPhase.GRADUATING):
                async with self._engine.contract_lock(contract.id):
                    try:
                        if update_market_phase(contract, self._engine.now()) and (
                            contract.phase == MarketPhase.MAIN
                        ):
                            await self._store.save_contract(contract)
                            graduated += 1
                    except AppError:
                        logger.exception("Graduation check failed for %s", contract.id)
        return graduated
