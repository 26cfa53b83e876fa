"""
Public WebSocket всего рынка (mini ticker array) как TickFeed
"""

import json
from typing import Any, AsyncIterator, List, Optional

import aiohttp
from loguru import logger

from momentum_engine.models import Tick


class MarketDataWebSocket:
    """
    Поток пачек тикеров из !miniTicker@arr.

    Итерация по объекту отдаёт List[Tick] на каждое сообщение.
    Переподключение не выполняется: при закрытии соединения итерация
    завершается, политика переподключения - забота интегратора.
    """

    def __init__(self, ws_url: str, quote_asset: Optional[str] = "USDT"):
        self.ws_url = ws_url
        self.quote_asset = quote_asset
        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.connected = False

    async def connect(self) -> bool:
        """Подключение к Public WebSocket (без аутентификации)"""
        try:
            if self.session is None:
                self.session = aiohttp.ClientSession()
            self.ws = await self.session.ws_connect(self.ws_url, heartbeat=30)
            self.connected = True
            logger.info("✅ Public WebSocket подключен (цены в реальном времени)")
            return True

        except (aiohttp.ClientError, OSError) as e:
            logger.error(f"❌ Ошибка подключения Public WebSocket: {e}")
            return False

    def parse_batch(self, payload: Any) -> List[Tick]:
        """
        Разбор массива mini ticker: s - символ, c - последняя цена.

        Битые записи и непозитивные цены пропускаются.
        """
        if not isinstance(payload, list):
            return []

        ticks: List[Tick] = []
        for item in payload:
            try:
                symbol = item["s"]
                price = float(item["c"])
            except (KeyError, TypeError, ValueError):
                continue
            if self.quote_asset and not symbol.endswith(self.quote_asset):
                continue
            if price <= 0:
                continue
            ticks.append(Tick(instrument=symbol, last_price=price))
        return ticks

    def __aiter__(self) -> AsyncIterator[List[Tick]]:
        return self.batches()

    async def batches(self) -> AsyncIterator[List[Tick]]:
        """Слушаем данные от WebSocket"""
        if not self.connected and not await self.connect():
            return

        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        payload = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        logger.error(f"❌ JSON decode error: {e}")
                        continue
                    batch = self.parse_batch(payload)
                    if batch:
                        yield batch
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {self.ws.exception()}")
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    logger.warning("WebSocket закрыт сервером")
                    break
        finally:
            self.connected = False

    async def disconnect(self):
        """Отключение от WebSocket"""
        self.connected = False
        if self.ws is not None:
            await self.ws.close()
            self.ws = None
        if self.session is not None:
            await self.session.close()
            self.session = None
        logger.info("🔌 Public WebSocket отключен")
