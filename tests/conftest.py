"""Shared test fixtures."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest

from src.core import ExchangeCore
from src.pm_market.application.service import MarketService
from src.pm_matching.engine.engine import TradingEngine
from src.pm_store.infrastructure.memory import InMemoryStore


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def engine(store: InMemoryStore, clock: FakeClock) -> TradingEngine:
    return TradingEngine(store, clock=clock)


@pytest.fixture
def markets(engine: TradingEngine) -> MarketService:
    return MarketService(engine)


@pytest.fixture
def core(engine: TradingEngine) -> ExchangeCore:
    return ExchangeCore(engine)


@pytest.fixture
def fund(store: InMemoryStore) -> Callable[[str, float], Awaitable[None]]:
    """Credit a user before a scenario."""

    async def _fund(user_id: str, amount: float) -> None:
        await store.update_user_balance(user_id, amount)

    return _fund
