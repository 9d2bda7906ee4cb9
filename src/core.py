"""ExchangeCore: the public surface of the trading core.

Every operation returns an ApiResponse: code 0 with data on success, the
AppError code and message otherwise. InternalError signals a broken
invariant rather than a user-facing failure, so it propagates.
"""
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from src.pm_common.enums import Outcome, Resolution
from src.pm_common.errors import AppError, InternalError, ValidationError
from src.pm_common.response import ApiResponse, error_from_app_error, success_response
from src.pm_market.application.schemas import (
    ContractResponse,
    GraduationResponse,
    ResolveMarketResponse,
)
from src.pm_market.application.service import MarketService
from src.pm_matching.application.service import get_trading_engine
from src.pm_matching.engine.engine import TradingEngine
from src.pm_matching.engine.scheduler import SweepScheduler
from src.pm_order.application.schemas import (
    BetResponse,
    CancelOrderResponse,
    ExpireOrdersResponse,
    FillResponse,
    LimitOrderResponse,
    OrderListResponse,
    PlaceBetResponse,
    SellSharesResponse,
)
from src.pm_store.domain.repository import StoreProtocol

logger = logging.getLogger(__name__)


def _parse_outcome(value: Outcome | str) -> Outcome:
    try:
        return Outcome(value)
    except ValueError:
        raise ValidationError(f"Outcome must be YES or NO, got {value!r}") from None


def _parse_resolution(value: Resolution | str) -> Resolution:
    try:
        return Resolution(value)
    except ValueError:
        raise ValidationError(f"Unknown resolution {value!r}") from None


class ExchangeCore:
    def __init__(self, engine: TradingEngine | None = None) -> None:
        self.engine = engine if engine is not None else get_trading_engine()
        self.store: StoreProtocol = self.engine.store
        self.markets = MarketService(self.engine)
        self.scheduler = SweepScheduler(self.engine, self.markets)

    async def _run(self, name: str, op: Callable[[], Awaitable[Any]]) -> ApiResponse:
        try:
            data = await op()
        except InternalError:
            logger.error("%s aborted on an internal invariant violation", name)
            raise
        except AppError as exc:
            logger.info("%s rejected: [%d] %s", name, exc.code, exc.message)
            return error_from_app_error(exc)
        return success_response(data)

    # --- markets ---

    async def create_binary_market(
        self, question: str, liquidity: float, creator_id: str, p: float = 0.5
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            contract = await self.markets.create_binary_market(question, liquidity, creator_id, p)
            return ContractResponse.from_domain(contract).model_dump()

        return await self._run("create_binary_market", op)

    async def create_multi_choice_market(
        self,
        question: str,
        liquidity: float,
        answer_texts: list[str],
        creator_id: str,
        should_answers_sum_to_one: bool = True,
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            contract = await self.markets.create_multi_choice_market(
                question, liquidity, answer_texts, creator_id, should_answers_sum_to_one
            )
            return ContractResponse.from_domain(contract).model_dump()

        return await self._run("create_multi_choice_market", op)

    async def get_contract(self, contract_id: str) -> ApiResponse:
        async def op() -> dict[str, Any] | None:
            contract = await self.store.get_contract(contract_id)
            return ContractResponse.from_domain(contract).model_dump() if contract else None

        return await self._run("get_contract", op)

    async def resolve_market(
        self,
        contract_id: str,
        resolution: Resolution | str,
        winning_answer_id: str | None = None,
        resolution_probability: float | None = None,
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            result = await self.markets.resolve_market(
                contract_id, _parse_resolution(resolution),
                winning_answer_id, resolution_probability,
            )
            return ResolveMarketResponse(
                resolution=result.resolution.value,
                cancelled_orders=result.cancelled_orders,
                total_payout=result.total_payout,
            ).model_dump()

        return await self._run("resolve_market", op)

    async def check_all_graduations(self) -> ApiResponse:
        async def op() -> dict[str, Any]:
            graduated = await self.markets.check_all_graduations()
            return GraduationResponse(graduated=graduated).model_dump()

        return await self._run("check_all_graduations", op)

    # --- trading ---

    async def place_market_order(
        self,
        contract_id: str,
        user_id: str,
        amount: float,
        outcome: Outcome | str = Outcome.YES,
        answer_id: str | None = None,
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            result = await self.engine.place_market_order(
                contract_id, user_id, amount, _parse_outcome(outcome), answer_id
            )
            return PlaceBetResponse(
                shares=result.shares,
                prob_after=result.prob_after,
                fills=[FillResponse.from_domain(f) for f in result.fills],
                bet=BetResponse.from_domain(result.bet),
            ).model_dump()

        return await self._run("place_market_order", op)

    async def sell_shares(
        self,
        contract_id: str,
        user_id: str,
        outcome: Outcome | str = Outcome.YES,
        answer_id: str | None = None,
        shares: float | None = None,
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            result = await self.engine.sell_shares(
                contract_id, user_id, _parse_outcome(outcome), answer_id, shares
            )
            return SellSharesResponse(
                payout=result.payout,
                prob_after=result.prob_after,
                bet=BetResponse.from_domain(result.bet),
            ).model_dump()

        return await self._run("sell_shares", op)

    async def place_limit_order(
        self,
        contract_id: str,
        user_id: str,
        outcome: Outcome | str,
        amount: float,
        limit_prob: float,
        expires_at: datetime | None = None,
        answer_id: str | None = None,
    ) -> ApiResponse:
        async def op() -> dict[str, Any]:
            result = await self.engine.place_limit_order(
                contract_id, user_id, _parse_outcome(outcome), amount, limit_prob,
                expires_at, answer_id,
            )
            return LimitOrderResponse(
                order=BetResponse.from_domain(result.order),
                fills=[FillResponse.from_domain(f) for f in result.fills],
                remaining_amount=result.remaining_amount,
            ).model_dump()

        return await self._run("place_limit_order", op)

    async def cancel_order(self, user_id: str, order_id: str) -> ApiResponse:
        async def op() -> dict[str, Any]:
            refund = await self.engine.cancel_order(user_id, order_id)
            return CancelOrderResponse(order_id=order_id, refund=refund).model_dump()

        return await self._run("cancel_order", op)

    async def expire_limit_orders(self) -> ApiResponse:
        async def op() -> dict[str, Any]:
            result = await self.engine.expire_limit_orders()
            return ExpireOrdersResponse(
                expired_count=result.expired_count, total_refunded=result.total_refunded
            ).model_dump()

        return await self._run("expire_limit_orders", op)

    async def get_user_open_orders(self, user_id: str) -> ApiResponse:
        async def op() -> dict[str, Any]:
            orders = self.engine.get_user_open_orders(user_id)
            return OrderListResponse(
                items=[BetResponse.from_domain(o) for o in orders]
            ).model_dump()

        return await self._run("get_user_open_orders", op)
