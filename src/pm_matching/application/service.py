# src/pm_matching/application/service.py
from src.pm_matching.engine.engine import TradingEngine
from src.pm_store.infrastructure.memory import InMemoryStore

_engine: TradingEngine | None = None


def get_trading_engine() -> TradingEngine:
    """Process default engine over an in-memory store. ExchangeCore falls back to it."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = TradingEngine(InMemoryStore())
    return _engine


def reset_trading_engine() -> None:
    global _engine  # noqa: PLW0603
    _engine = None
