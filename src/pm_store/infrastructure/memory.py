"""In-memory store conforming to StoreProtocol.

Holds live references: objects returned here are the stored objects, so
in-place mutation followed by the matching save/update call is the
expected write pattern (the same calls a database-backed store needs).
"""
import logging
from collections import defaultdict

from src.pm_account.domain.models import Metric, User
from src.pm_common.enums import MarketPhase
from src.pm_common.errors import InsufficientBalanceError
from src.pm_common.floats import EPSILON
from src.pm_market.domain.models import Contract, PriceHistoryPoint
from src.pm_order.domain.models import Bet

logger = logging.getLogger(__name__)


class InMemoryStore:
    def __init__(self) -> None:
        self._contracts: dict[str, Contract] = {}
        self._users: dict[str, User] = {}
        self._metrics: dict[tuple[str, str, str | None], Metric] = {}
        self._bets: dict[str, list[Bet]] = defaultdict(list)
        self._price_points: dict[str, list[PriceHistoryPoint]] = defaultdict(list)

    async def get_contract(self, contract_id: str) -> Contract | None:
        return self._contracts.get(contract_id)

    async def save_contract(self, contract: Contract) -> None:
        self._contracts[contract.id] = contract

    async def list_contracts(self, phase: MarketPhase | None = None) -> list[Contract]:
        return [c for c in self._contracts.values() if phase is None or c.phase == phase]

    async def get_or_create_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            user = User(id=user_id)
            self._users[user_id] = user
        return user

    async def update_user_balance(self, user_id: str, delta: float) -> User:
        user = await self.get_or_create_user(user_id)
        new_balance = user.balance + delta
        if new_balance < -EPSILON:
            raise InsufficientBalanceError(-delta, user.balance)
        user.balance = max(new_balance, 0.0)
        return user

    async def get_or_create_metric(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> Metric:
        key = (user_id, contract_id, answer_id)
        metric = self._metrics.get(key)
        if metric is None:
            metric = Metric(user_id=user_id, contract_id=contract_id, answer_id=answer_id)
            self._metrics[key] = metric
        return metric

    async def list_metrics(self, contract_id: str) -> list[Metric]:
        return [m for m in self._metrics.values() if m.contract_id == contract_id]

    async def update_metric(self, metric: Metric) -> None:
        self._metrics[metric.key] = metric

    async def add_bet(self, contract_id: str, bet: Bet) -> None:
        self._bets[contract_id].append(bet)

    async def update_bet(self, bet: Bet) -> None:
        bets = self._bets[bet.contract_id]
        for i, existing in enumerate(bets):
            if existing.id == bet.id:
                bets[i] = bet
                return
        logger.warning("update_bet for unknown bet %s; appending", bet.id)
        bets.append(bet)

    async def list_bets(self, contract_id: str) -> list[Bet]:
        return list(self._bets.get(contract_id, []))

    async def add_price_point(self, contract_id: str, point: PriceHistoryPoint) -> None:
        self._price_points[contract_id].append(point)

    def get_price_points(self, contract_id: str) -> list[PriceHistoryPoint]:
        return list(self._price_points.get(contract_id, []))
