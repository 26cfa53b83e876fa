"""
MomentumEngine - координатор ядра.

Связывает компоненты:
    поток пачек тикеров -> SignalScanner -> PositionManager
    -> PortfolioLedger -> CooldownRegistry -> продолжение или остановка

Предоставляет интегратору start()/stop()/run() и шину событий
(PositionOpened, PositionRatcheted, PositionClosed, EngineHalted).
"""

import asyncio
import time
from typing import Callable, List, Optional

from loguru import logger

from .config import EngineConfig
from .core import (CooldownRegistry, PortfolioLedger, PositionManager,
                   ReferencePriceTable, SignalScanner)
from .errors import InvariantViolation, TransientFetchError
from .events import EngineEvent, EngineHalted, EventBus, PositionClosed
from .interfaces import MarketDataSource, TickFeed
from .models import Candidate, Tick


class MomentumEngine:
    """
    Движок одной позиции.

    Attributes:
        config: Полная конфигурация
        events: Шина событий жизненного цикла
        reference_prices: Снимок базовых цен
        cooldown: Реестр cooldown
        ledger: Баланс портфеля
        scanner: Сканер сигналов
        position_manager: Менеджер единственной позиции
    """

    def __init__(
        self,
        config: EngineConfig,
        market_data: MarketDataSource,
        feed: TickFeed,
        clock: Callable[[], float] = time.time,
        events: Optional[EventBus] = None,
    ):
        self.config = config
        self.market_data = market_data
        self.feed = feed
        self.events = events or EventBus()

        self.reference_prices = ReferencePriceTable()
        self.cooldown = CooldownRegistry(config.cooldown.duration_seconds, clock)
        self.ledger = PortfolioLedger(
            config.portfolio.starting_balance,
            config.portfolio.upper_bound_multiplier,
        )
        self.scanner = SignalScanner(
            config.scanner, self.reference_prices, self.cooldown, market_data
        )
        self.position_manager = PositionManager(
            config.position,
            self.ledger,
            self.cooldown,
            self.events,
            price_source=market_data,
            clock=clock,
            on_fatal=self._fail,
        )

        self.is_running = False
        self.halted = False
        self.halt_reason: Optional[str] = None
        self._feed_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()
        self._fatal_error: Optional[BaseException] = None

        # Подписываемся первыми: флаг halt выставляется раньше, чем
        # PositionClosed увидят остальные подписчики; само EngineHalted
        # шина доставит уже после PositionClosed
        self.events.subscribe(self._on_event)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def load_reference_prices(self) -> bool:
        """Заполнить (или заменить) таблицу базовых цен"""
        try:
            prices = await self.market_data.fetch_reference_prices()
        except TransientFetchError as e:
            logger.warning(f"⚠️ Reference prices unavailable: {e}")
            return False

        count = self.reference_prices.replace(prices)
        logger.info(f"📊 Reference price table: {count} instruments")
        return True

    async def start(self) -> None:
        """
        Запуск движка.

        Повторяет загрузку базовых цен до успеха (или до stop()),
        затем запускает потребление потока тикеров.
        """
        if self.is_running:
            logger.warning("⚠️ MomentumEngine: Уже запущен")
            return

        self.is_running = True
        self._fatal_error = None
        self._stopped.clear()

        while not await self.load_reference_prices():
            if not self.is_running:
                return
            await asyncio.sleep(self.config.engine.startup_retry_seconds)
            if not self.is_running:
                return

        self._feed_task = asyncio.create_task(self._consume_feed())
        if self.config.engine.reference_refresh_seconds:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

        logger.info(
            f"🚀 MomentumEngine: Запущен (balance={self.ledger.balance:.2f}, "
            f"threshold={self.config.scanner.entry_threshold_percent}%)"
        )

    async def run(self) -> None:
        """
        Запустить и ждать остановки (halt, конец потока или stop()).

        Raises:
            InvariantViolation: Если обработка потока нарушила инвариант ядра
        """
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.stop()

        if self._fatal_error is not None:
            raise self._fatal_error

    async def stop(self) -> None:
        """
        Остановка в любом состоянии.

        Открытая позиция брошена без принудительной ликвидации.
        """
        self.is_running = False

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._feed_task, self._refresh_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._feed_task = None
        self._refresh_task = None

        await self.position_manager.shutdown()
        self._stopped.set()
        logger.info("🛑 MomentumEngine: Остановлен")

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # ------------------------------------------------------------------
    # Tick batches
    # ------------------------------------------------------------------

    async def handle_batch(self, ticks: List[Tick]) -> Optional[Candidate]:
        """
        Обработать одну пачку тикеров.

        Returns:
            Кандидат, по которому открыта позиция, или None
        """
        active = self.position_manager.active_instrument
        if active is not None and self.config.position.observe_feed_ticks:
            price = None
            for tick in ticks:
                if tick.instrument == active:
                    price = tick.last_price
            if price is not None:
                await self.position_manager.observe(active, price)

        if self.halted:
            return None
        await self._check_halt()
        if self.halted:
            return None

        if self.position_manager.is_open:
            return None

        candidate = await self.scanner.scan(ticks)
        if candidate is None:
            return None

        position = await self.position_manager.open_position(candidate)
        return candidate if position is not None else None

    async def _consume_feed(self) -> None:
        try:
            async for batch in self.feed:
                if self._stopped.is_set():
                    break
                try:
                    await self.handle_batch(batch)
                except InvariantViolation as e:
                    self._fail(e)
                    return
                except Exception as e:
                    logger.error(f"❌ Error processing tick batch: {e}")
            else:
                logger.warning("⚠️ Tick feed ended")
                self._finish()
        except asyncio.CancelledError:
            logger.debug("Tick feed consumption cancelled")
            raise

    async def _refresh_loop(self) -> None:
        while self.is_running:
            await asyncio.sleep(self.config.engine.reference_refresh_seconds)
            await self.load_reference_prices()

    # ------------------------------------------------------------------
    # Halt
    # ------------------------------------------------------------------

    async def _on_event(self, event: EngineEvent) -> None:
        if not isinstance(event, PositionClosed):
            return
        await self._check_halt()
        if self.halted and not self.position_manager.is_open:
            self._finish()

    async def _check_halt(self) -> None:
        if self.halted:
            return
        reason = self.ledger.halt_reason()
        if reason is None:
            return

        self.halted = True
        self.halt_reason = reason
        logger.warning(f"🛑 Engine halt requested: {reason}")

        if self.config.position.liquidate_on_halt:
            self.position_manager.request_liquidation()

        await self.events.publish(EngineHalted(reason=reason, balance=self.ledger.balance))

        if not self.position_manager.is_open:
            self._finish()
        else:
            logger.info(
                f"Waiting for open position {self.position_manager.active_instrument} "
                f"to close before terminating"
            )

    def _finish(self) -> None:
        """Сигнал run() на завершение; задачи отменяет stop()"""
        self.is_running = False
        self._stopped.set()

    def _fail(self, error: BaseException) -> None:
        """Фатальное нарушение инварианта: run() завершится с этой ошибкой"""
        logger.critical(f"💥 Invariant violated, stopping engine: {error}")
        if self._fatal_error is None:
            self._fatal_error = error
        self._finish()
