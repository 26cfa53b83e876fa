"""
PositionManager - единственная активная позиция и её храповик выхода.

Состояния: IDLE -> OPEN -> (закрытие) -> IDLE.

Отвечает за:
- Открытие позиции из кандидата, если слот свободен (single active trade)
- Храповик: при достижении take-profit оба уровня сдвигаются в сторону
  прибыли, новый stop-loss = только что достигнутый take-profit
- Закрытие при пересечении stop-loss, по жёсткому таймауту или по
  запросу ликвидации при остановке движка
- Расчёт PnL, обновление PortfolioLedger, взвод cooldown

Все чтения и записи слота позиции сериализуются одним asyncio.Lock.
Закрытие идемпотентно: первый вызов выигрывает, остальные - no-op.
"""

import asyncio
import time
from dataclasses import replace
from typing import Callable, List, Optional

from loguru import logger

from ..config import PositionConfig
from ..errors import ConfigurationError, InvariantViolation, TransientFetchError
from ..events import (EngineEvent, EventBus, PositionClosed, PositionOpened,
                      PositionRatcheted)
from ..interfaces import LivePriceSource
from ..models import (Candidate, ClosedTrade, ExitOutcome, Position,
                      PositionState)
from .cooldown_registry import CooldownRegistry
from .portfolio_ledger import PortfolioLedger


class PositionManager:
    """
    Менеджер позиции.

    Слот позиции недоступен снаружи для записи: property position
    возвращает копию.
    """

    def __init__(
        self,
        config: PositionConfig,
        ledger: PortfolioLedger,
        cooldown: CooldownRegistry,
        events: EventBus,
        price_source: Optional[LivePriceSource] = None,
        clock: Callable[[], float] = time.time,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ):
        """
        Args:
            config: Параметры позиции (leverage, target/loss, таймаут, sizing)
            ledger: Баланс портфеля
            cooldown: Реестр cooldown
            events: Шина событий жизненного цикла
            price_source: Источник live цены для периодического опроса
                (None - цены приходят только через observe())
            clock: Часы для cooldown
            on_fatal: Вызывается с InvariantViolation из фонового опроса
                цены (иначе исключение остаётся в задаче)
        """
        self.config = config
        self.ledger = ledger
        self.cooldown = cooldown
        self.events = events
        self.price_source = price_source
        self.on_fatal = on_fatal
        self._clock = clock

        self._lock = asyncio.Lock()
        self._position: Optional[Position] = None
        self._liquidation_requested = False
        self._monitor_task: Optional[asyncio.Task] = None
        self._deadline_task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PositionState:
        return PositionState.OPEN if self._position is not None else PositionState.IDLE

    @property
    def is_open(self) -> bool:
        return self._position is not None

    @property
    def position(self) -> Optional[Position]:
        """Копия активной позиции (или None)"""
        return replace(self._position) if self._position is not None else None

    @property
    def active_instrument(self) -> Optional[str]:
        return self._position.instrument if self._position is not None else None

    async def wait_closed(self) -> None:
        """Дождаться возврата в IDLE"""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Idle -> Open
    # ------------------------------------------------------------------

    def position_size(self, balance: float, entry_price: float) -> float:
        """
        Размер позиции в единицах инструмента.

        full_portfolio: экспозиция = весь баланс
        fixed_fraction: экспозиция = баланс * risk_fraction_percent / 100
        Leverage применяется к PnL при закрытии, а не к размеру.

        Raises:
            ConfigurationError: Если размер получается <= 0
        """
        if entry_price <= 0:
            raise ConfigurationError(f"entry price must be positive, got {entry_price}")

        if self.config.sizing_mode == "fixed_fraction":
            exposure = balance * self.config.risk_fraction_percent / 100.0
        else:
            exposure = balance

        size = exposure / entry_price
        if size <= 0:
            raise ConfigurationError(
                f"non-positive position size {size} (balance={balance:.4f})"
            )
        return size

    async def open_position(self, candidate: Candidate) -> Optional[Position]:
        """
        Открыть позицию из кандидата.

        Проверка "слот свободен" и запись позиции выполняются атомарно
        под одним lock.

        Returns:
            Копия открытой позиции или None, если вход отклонён
        """
        async with self._lock:
            if self._position is not None:
                logger.debug(
                    f"Entry for {candidate.instrument} declined: "
                    f"{self._position.instrument} is already open"
                )
                return None

            try:
                size = self.position_size(self.ledger.balance, candidate.current_price)
            except ConfigurationError as e:
                logger.debug(f"Entry for {candidate.instrument} dropped: {e}")
                return None

            entry_price = candidate.current_price
            sign = candidate.direction.sign
            target = self.config.profit_target_percent / 100.0
            max_loss = self.config.max_loss_percent / 100.0

            position = Position(
                instrument=candidate.instrument,
                direction=candidate.direction,
                entry_price=entry_price,
                size=size,
                take_profit_price=entry_price * (1 + sign * target),
                stop_loss_price=entry_price * (1 - sign * max_loss),
            )
            self._store(position)

            event = PositionOpened(
                position_id=position.id,
                instrument=position.instrument,
                direction=position.direction,
                entry_price=position.entry_price,
                size=position.size,
                take_profit_price=position.take_profit_price,
                stop_loss_price=position.stop_loss_price,
                change_percent=candidate.change_percent,
            )
            snapshot = replace(position)

        logger.info(
            f"🚀 Entering {position.direction.value} position for {position.instrument} "
            f"at {entry_price:.6f}, size={size:.6f}, "
            f"TP={position.take_profit_price:.6f}, SL={position.stop_loss_price:.6f}"
        )
        await self.events.publish(event)
        return snapshot

    def _store(self, position: Position) -> None:
        if self._position is not None:
            raise InvariantViolation(
                f"second active position {position.instrument} while "
                f"{self._position.instrument} is open"
            )
        self._position = position
        self._liquidation_requested = False
        self._idle.clear()

        self._deadline_task = asyncio.create_task(self._deadline(position))
        if self.price_source is not None:
            self._monitor_task = asyncio.create_task(self._monitor_loop(position))

    # ------------------------------------------------------------------
    # Open -> Open (ratchet) / Open -> Closed
    # ------------------------------------------------------------------

    async def observe(self, instrument: str, price: float) -> Optional[ClosedTrade]:
        """
        Обработать наблюдение цены по активной позиции.

        Цены других инструментов и цены при пустом слоте игнорируются.

        Returns:
            ClosedTrade, если это наблюдение закрыло позицию
        """
        position = self._position
        if position is None or position.instrument != instrument:
            return None
        return await self._observe(position, price)

    async def _observe(self, position: Position, price: float) -> Optional[ClosedTrade]:
        if price <= 0:
            logger.warning(f"⚠️ Ignoring non-positive price {price} for {position.instrument}")
            return None

        events: List[EngineEvent] = []
        async with self._lock:
            if self._position is not position:
                return None
            trade = self._evaluate(position, price, events)

        for event in events:
            await self.events.publish(event)
        return trade

    def _evaluate(
        self, position: Position, price: float, events: List[EngineEvent]
    ) -> Optional[ClosedTrade]:
        position.last_price = price

        if self._liquidation_requested:
            return self._close_locked(position, price, ExitOutcome.HALT, events)

        if position.reached_target(price):
            if not self.config.ratchet_enabled:
                return self._close_locked(position, price, ExitOutcome.TARGET, events)
            # Stop только что поднят до уровня <= price: в этом же
            # наблюдении его не проверяем
            self._ratchet(position, price, events)
            return None

        if position.crossed_stop(price):
            return self._close_locked(position, price, ExitOutcome.TRAILING_STOP, events)
        return None

    def _ratchet(
        self, position: Position, price: float, events: List[EngineEvent]
    ) -> None:
        """
        Итеративный храповик: пока цена за take-profit, сдвигаем оба уровня.

        Повторная доставка той же цены шагов не добавляет: после цикла
        take-profit уже находится за ценой.
        """
        sign = position.direction.sign
        step = self.config.ratchet_step_percent / 100.0

        while position.reached_target(price):
            new_stop = position.take_profit_price
            new_target = position.take_profit_price * (1 + sign * step)

            if (new_stop - position.stop_loss_price) * sign < 0 or (
                new_target - position.take_profit_price
            ) * sign <= 0:
                raise InvariantViolation(
                    f"ratchet would move levels backwards for {position.instrument}: "
                    f"SL {position.stop_loss_price} -> {new_stop}, "
                    f"TP {position.take_profit_price} -> {new_target}"
                )

            position.stop_loss_price = new_stop
            position.take_profit_price = new_target
            position.ratchet_count += 1

            logger.info(
                f"📈 {position.instrument} reached target. "
                f"Updating TP to {new_target:.6f} and SL to {new_stop:.6f} "
                f"(step #{position.ratchet_count})"
            )
            events.append(
                PositionRatcheted(
                    position_id=position.id,
                    instrument=position.instrument,
                    ratchet_count=position.ratchet_count,
                    price=price,
                    take_profit_price=new_target,
                    stop_loss_price=new_stop,
                )
            )

    def _close_locked(
        self,
        position: Position,
        exit_price: float,
        outcome: ExitOutcome,
        events: List[EngineEvent],
    ) -> Optional[ClosedTrade]:
        """Единственный путь закрытия. Вызывается только под self._lock"""
        if self._position is not position:
            return None

        pnl = position.pnl_at(exit_price, self.config.leverage)
        trade = ClosedTrade(
            position_id=position.id,
            instrument=position.instrument,
            direction=position.direction,
            entry_price=position.entry_price,
            exit_price=exit_price,
            size=position.size,
            pnl=pnl,
            outcome=outcome,
            ratchet_count=position.ratchet_count,
            opened_at=position.opened_at,
        )

        balance = self.ledger.record(trade)
        self.cooldown.add(position.instrument, self._clock())

        self._position = None
        self._liquidation_requested = False
        self._cancel_tasks()
        self._idle.set()

        logger.info(
            f"{'✅' if pnl >= 0 else '❌'} {outcome.value} for {trade.instrument}: "
            f"exit={exit_price:.6f}, pnl={pnl:+.4f}, ratchets={trade.ratchet_count}, "
            f"balance={balance:.4f}"
        )
        events.append(PositionClosed(trade=trade, balance=balance))
        return trade

    def _cancel_tasks(self) -> List[asyncio.Task]:
        current = asyncio.current_task()
        cancelled = []
        for task in (self._monitor_task, self._deadline_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                cancelled.append(task)
        self._monitor_task = None
        self._deadline_task = None
        return cancelled

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _deadline(self, position: Position) -> None:
        """Жёсткий таймаут: принудительное закрытие по последней цене"""
        await asyncio.sleep(self.config.hard_timeout_seconds)

        events: List[EngineEvent] = []
        async with self._lock:
            if self._position is not position:
                return
            logger.warning(
                f"⏰ Force-closing {position.instrument} due to timeout "
                f"({self.config.hard_timeout_seconds:.0f}s)"
            )
            self._close_locked(position, position.last_price, ExitOutcome.TIMEOUT, events)

        for event in events:
            await self.events.publish(event)

    async def _monitor_loop(self, position: Position) -> None:
        """
        Периодический опрос live цены для храповика.

        Ошибка получения цены не закрывает позицию и не роняет цикл:
        следующая попытка через check_interval_seconds.
        """
        while self._position is position:
            try:
                price = await self.price_source.fetch_live_price(position.instrument)
            except TransientFetchError as e:
                logger.warning(f"⚠️ Error monitoring {position.instrument}: {e}")
            else:
                logger.debug(f"Monitoring {position.instrument}: price={price}")
                try:
                    await self._observe(position, price)
                except InvariantViolation as e:
                    if self.on_fatal is None:
                        raise
                    self.on_fatal(e)
                    return

            if self._position is not position:
                break
            await asyncio.sleep(self.config.check_interval_seconds)

    # ------------------------------------------------------------------
    # Halt / shutdown
    # ------------------------------------------------------------------

    def request_liquidation(self) -> bool:
        """
        Закрыть активную позицию по следующей наблюдаемой цене (outcome=halt).

        Returns:
            True, если запрос принят (позиция открыта)
        """
        if self._position is None:
            return False
        self._liquidation_requested = True
        logger.warning(
            f"🛑 Liquidation requested for {self._position.instrument} "
            f"at next observed price"
        )
        return True

    async def shutdown(self) -> None:
        """
        Остановка: фоновые задачи отменяются, открытая позиция
        брошена без ликвидации и без изменения баланса.
        """
        async with self._lock:
            if self._position is not None:
                logger.warning(
                    f"⚠️ Abandoning open position {self._position.instrument} on shutdown"
                )
            self._position = None
            self._liquidation_requested = False
            tasks = self._cancel_tasks()
            self._idle.set()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
