"""
Lifecycle events и EventBus.

Ядро не занимается логированием сделок, хранением истории или
дашбордами: оно публикует события, а интегратор подписывается на них.
"""

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List

from loguru import logger

from .models import ClosedTrade, Direction, ExitOutcome


@dataclass(frozen=True)
class EngineEvent:
    """Base class for lifecycle events"""

    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), kw_only=True
    )


@dataclass(frozen=True)
class PositionOpened(EngineEvent):
    position_id: str
    instrument: str
    direction: Direction
    entry_price: float
    size: float
    take_profit_price: float
    stop_loss_price: float
    change_percent: float


@dataclass(frozen=True)
class PositionRatcheted(EngineEvent):
    position_id: str
    instrument: str
    ratchet_count: int
    price: float
    take_profit_price: float
    stop_loss_price: float


@dataclass(frozen=True)
class PositionClosed(EngineEvent):
    trade: ClosedTrade
    balance: float

    @property
    def outcome(self) -> ExitOutcome:
        return self.trade.outcome

    @property
    def pnl(self) -> float:
        return self.trade.pnl


@dataclass(frozen=True)
class EngineHalted(EngineEvent):
    reason: str
    balance: float


EventCallback = Callable[[EngineEvent], Any]


class EventBus:
    """
    Наблюдаемый поток событий.

    Два способа подписки:
    - subscribe(callback): синхронный или async callback на каждое событие
    - listen(): отдельная asyncio.Queue для потребителя-корутины
    """

    def __init__(self):
        self._callbacks: List[EventCallback] = []
        self._queues: List[asyncio.Queue] = []
        self._pending: Deque[EngineEvent] = deque()
        self._dispatching = False

    def subscribe(self, callback: EventCallback) -> None:
        """Добавление callback для обработки событий"""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def listen(self) -> asyncio.Queue:
        """Новая очередь, в которую будут попадать все последующие события"""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    async def publish(self, event: EngineEvent) -> None:
        """
        Доставка события всем подписчикам.

        Событие, опубликованное из callback (например, EngineHalted в ответ
        на PositionClosed), ставится в очередь и доставляется после того,
        как текущее событие получат все подписчики.
        """
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                await self._dispatch(self._pending.popleft())
        finally:
            self._dispatching = False

    async def _dispatch(self, event: EngineEvent) -> None:
        for queue in self._queues:
            queue.put_nowait(event)

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"❌ Event callback error ({type(event).__name__}): {e}"
                )
