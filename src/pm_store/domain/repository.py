"""Store Protocol — the persistence collaborator the core trades against.

The core never assumes a process-wide store: an implementation is injected
into the engine. Unit tests inject an AsyncMock or the in-memory store.
"""

from typing import Protocol

from src.pm_account.domain.models import Metric, User
from src.pm_common.enums import MarketPhase
from src.pm_market.domain.models import Contract, PriceHistoryPoint
from src.pm_order.domain.models import Bet


class StoreProtocol(Protocol):
    async def get_contract(self, contract_id: str) -> Contract | None: ...

    async def save_contract(self, contract: Contract) -> None: ...

    async def list_contracts(self, phase: MarketPhase | None = None) -> list[Contract]: ...

    async def get_or_create_user(self, user_id: str) -> User: ...

    async def update_user_balance(self, user_id: str, delta: float) -> User: ...

    async def get_or_create_metric(
        self, user_id: str, contract_id: str, answer_id: str | None = None
    ) -> Metric: ...

    async def list_metrics(self, contract_id: str) -> list[Metric]: ...

    async def update_metric(self, metric: Metric) -> None: ...

    async def add_bet(self, contract_id: str, bet: Bet) -> None: ...

    async def update_bet(self, bet: Bet) -> None: ...

    async def list_bets(self, contract_id: str) -> list[Bet]: ...

    async def add_price_point(self, contract_id: str, point: PriceHistoryPoint) -> None: ...
