"""
Точка входа для запуска движка из командной строки.

EngineRunner связывает ядро с граничными адаптерами Binance
(REST клиент + WebSocket поток тикеров) и выводит события жизненного
цикла в лог.

--scan-once: без запуска движка печатает таблицу всех инструментов,
ушедших от open дальше порога, и завершается.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from momentum_engine.clients import BinanceClient
from momentum_engine.config import EngineConfig, load_config
from momentum_engine.core import (CooldownRegistry, ReferencePriceTable,
                                  SignalScanner)
from momentum_engine.engine import MomentumEngine
from momentum_engine.errors import TransientFetchError
from momentum_engine.events import (EngineEvent, EngineHalted, PositionClosed,
                                    PositionOpened, PositionRatcheted)
from momentum_engine.interfaces import MoverReportSource
from momentum_engine.market_data_websocket import MarketDataWebSocket
from momentum_engine.models import Candidate
from momentum_engine.utils.logging_setup import setup_logging


def log_event(event: EngineEvent) -> None:
    """Presenter: одна строка лога на событие"""
    if isinstance(event, PositionOpened):
        logger.info(
            f"OPEN {event.direction.value} {event.instrument} @ {event.entry_price:.6f} "
            f"(change {event.change_percent:+.2f}%, size {event.size:.6f})"
        )
    elif isinstance(event, PositionRatcheted):
        logger.info(
            f"RATCHET #{event.ratchet_count} {event.instrument}: "
            f"TP={event.take_profit_price:.6f} SL={event.stop_loss_price:.6f}"
        )
    elif isinstance(event, PositionClosed):
        trade = event.trade
        logger.info(
            f"CLOSE {trade.instrument} [{trade.outcome.value}] @ {trade.exit_price:.6f}: "
            f"{'Profit' if trade.pnl >= 0 else 'Loss'} {trade.pnl:+.4f} | "
            f"Current Portfolio: {event.balance:.2f}"
        )
    elif isinstance(event, EngineHalted):
        logger.warning(f"HALT: {event.reason} (balance {event.balance:.2f})")


class EngineRunner:
    """
    Управление жизненным циклом движка и его адаптеров.

    Attributes:
        config: Полная конфигурация
        client: REST клиент Binance
        feed: WebSocket поток тикеров
        engine: Ядро движка
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.client = BinanceClient(config.exchange, config.scanner)
        self.feed = MarketDataWebSocket(
            config.exchange.active_ws_url, quote_asset=config.exchange.quote_asset
        )
        self.engine = MomentumEngine(config, self.client, self.feed)
        self.engine.events.subscribe(log_event)

    async def run(self) -> None:
        await self.client.connect()
        try:
            await self.engine.run()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Закрывает все соединения; открытая позиция не ликвидируется"""
        logger.info("Shutting down engine...")
        await self.engine.stop()
        await self.feed.disconnect()
        await self.client.disconnect()

        stats = self.engine.ledger.stats()
        logger.info(
            f"Session summary: trades={stats['total_trades']}, "
            f"win rate={stats['win_rate']:.1f}%, "
            f"realized PnL={stats['realized_pnl']:+.4f}, "
            f"balance={stats['balance']:.2f}"
        )


def format_movers(
    candidates: List[Candidate], reference_prices: ReferencePriceTable, config: EngineConfig
) -> str:
    """Таблица инструментов, ушедших от open дальше порога"""
    threshold = config.scanner.entry_threshold_percent
    interval = config.exchange.reference_interval
    if not candidates:
        return f"No symbols found with more than {threshold}% difference from the {interval} open."

    reference = reference_prices.snapshot()
    lines = [
        f"Symbols with more than {threshold}% difference from the {interval} open "
        f"({config.exchange.market}):",
        f"{'Symbol':<16}{'Open':>16}{'Current':>16}{'Change %':>10}  Direction",
    ]
    for candidate in candidates:
        lines.append(
            f"{candidate.instrument:<16}"
            f"{reference[candidate.instrument]:>16.6f}"
            f"{candidate.current_price:>16.6f}"
            f"{candidate.change_percent:>+10.2f}  "
            f"{candidate.direction.value}"
        )
    return "\n".join(lines)


async def scan_once(config: EngineConfig, source: MoverReportSource) -> List[Candidate]:
    """
    Разовый отчёт: свежие reference prices + снимок цен через REST.

    Позиции не открываются, cooldown пуст.

    Returns:
        Все квалифицированные кандидаты в порядке tie-break
    """
    universe = await source.fetch_instrument_universe()
    reference_prices = ReferencePriceTable(await source.fetch_reference_prices())
    ticks = [
        tick for tick in await source.fetch_ticker_snapshot() if tick.instrument in universe
    ]
    logger.info(
        f"Scan once: {len(ticks)} tickers, {len(reference_prices)} reference prices"
    )

    scanner = SignalScanner(
        config.scanner,
        reference_prices,
        CooldownRegistry(config.cooldown.duration_seconds),
    )
    candidates = scanner.qualifying(ticks)
    print(format_movers(candidates, reference_prices, config))
    return candidates


async def run_scan_once(config: EngineConfig) -> List[Candidate]:
    async with BinanceClient(config.exchange, config.scanner) as client:
        return await scan_once(config, client)


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI: momentum-engine --config config/config.yaml [--scan-once]

    Raises:
        SystemExit: При ошибках запуска с кодом 1
    """
    parser = argparse.ArgumentParser(description="Momentum Engine CLI")
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override file log level from the configuration",
    )
    parser.add_argument(
        "--scan-once",
        action="store_true",
        help="Print the current movers above the entry threshold and exit",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except Exception as e:
        logger.error(f"Failed to load configuration {args.config}: {e}")
        sys.exit(1)

    setup_logging(log_level=args.log_level or config.engine.log_level)
    logger.info(f"Configuration loaded from {args.config}")

    if args.scan_once:
        try:
            asyncio.run(run_scan_once(config))
        except TransientFetchError as e:
            logger.error(f"❌ Scan failed: {e}")
            sys.exit(1)
        return

    runner = EngineRunner(config)
    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        logger.info("Engine stopped by user (Ctrl+C)")
        sys.exit(0)


if __name__ == "__main__":
    main()
