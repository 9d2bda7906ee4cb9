"""Periodic sweeps: limit-order expiry and market graduation.

Each sweep runs as its own asyncio task. A sweep never overlaps itself:
the engine and market service hold a per-sweep lock while running.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable

from config.settings import settings
from src.pm_common.errors import AppError
from src.pm_market.application.service import MarketService
from src.pm_matching.engine.engine import TradingEngine

logger = logging.getLogger(__name__)


def _log_task_exception(task: asyncio.Task[None]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Sweep task %s crashed", task.get_name(), exc_info=task.exception())


class SweepScheduler:
    def __init__(
        self,
        engine: TradingEngine,
        markets: MarketService,
        expiry_interval_s: float | None = None,
        graduation_interval_s: float | None = None,
    ) -> None:
        self._engine = engine
        self._markets = markets
        self._expiry_interval_s = expiry_interval_s or settings.EXPIRY_SWEEP_INTERVAL_S
        self._graduation_interval_s = (
            graduation_interval_s or settings.GRADUATION_SWEEP_INTERVAL_S
        )
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._loop(self._expire, self._expiry_interval_s), name="expire-limit-orders"
            ),
            asyncio.create_task(
                self._loop(self._graduate, self._graduation_interval_s), name="check-graduations"
            ),
        ]
        for task in self._tasks:
            task.add_done_callback(_log_task_exception)
        logger.info(
            "Sweeps started: expiry every %.1fs, graduation every %.1fs",
            self._expiry_interval_s, self._graduation_interval_s,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _expire(self) -> None:
        await self._engine.expire_limit_orders()

    async def _graduate(self) -> None:
        graduated = await self._markets.check_all_graduations()
        if graduated:
            logger.info("Graduated %d markets", graduated)

    async def _loop(self, sweep: Callable[[], Awaitable[None]], interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await sweep()
            except AppError:
                logger.warning("Sweep failed; retrying next interval", exc_info=True)
