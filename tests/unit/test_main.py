"""
Unit тесты для CLI: разовый отчёт о движениях (--scan-once)
"""

from unittest.mock import AsyncMock, patch

import pytest

from momentum_engine.config import EngineConfig
from momentum_engine.core import ReferencePriceTable
from momentum_engine.errors import TransientFetchError
from momentum_engine.main import format_movers, main, scan_once
from momentum_engine.models import Direction, Tick


class FakeReportSource:
    """REST данные для отчёта без сети"""

    def __init__(self):
        self.fetch_instrument_universe = AsyncMock(
            return_value={"BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT"}
        )
        self.fetch_reference_prices = AsyncMock(
            return_value={"BTCUSDT": 100.0, "ETHUSDT": 100.0, "SOLUSDT": 20.0, "XRPUSDT": 100.0}
        )
        self.fetch_ticker_snapshot = AsyncMock(
            return_value=[
                Tick("BTCUSDT", 101.0),  # +1%: ниже порога
                Tick("ETHUSDT", 96.0),  # -4%
                Tick("SOLUSDT", 21.0),  # +5%
                Tick("XRPUSDT", 102.0),  # ровно +2%: порог исключающий
                Tick("BTCUSDT_250328", 120.0),  # не в universe
            ]
        )


class TestScanOnce:
    """Тесты разового отчёта"""

    def setup_method(self):
        """Настройка перед каждым тестом"""
        self.config = EngineConfig(scanner={"entry_threshold_percent": 2.0})
        self.source = FakeReportSource()

    @pytest.mark.asyncio
    async def test_reports_all_movers_above_threshold(self, capsys):
        candidates = await scan_once(self.config, self.source)

        assert [c.instrument for c in candidates] == ["ETHUSDT", "SOLUSDT"]
        assert candidates[0].direction is Direction.SHORT
        assert candidates[1].direction is Direction.LONG

        output = capsys.readouterr().out
        assert "ETHUSDT" in output
        assert "SOLUSDT" in output
        assert "-4.00" in output
        assert "+5.00" in output
        assert "XRPUSDT" not in output
        assert "BTCUSDT" not in output

    @pytest.mark.asyncio
    async def test_largest_selection_orders_report(self):
        self.config.scanner.selection = "largest"

        candidates = await scan_once(self.config, self.source)

        assert [c.instrument for c in candidates] == ["SOLUSDT", "ETHUSDT"]

    def test_empty_report(self):
        text = format_movers([], ReferencePriceTable(), self.config)
        assert text.startswith("No symbols found with more than 2.0%")

    def test_cli_scan_once_mode(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("exchange:\n  market: futures\n", encoding="utf-8")

        with patch("momentum_engine.main.setup_logging"), patch(
            "momentum_engine.main.run_scan_once", new_callable=AsyncMock
        ) as run_scan, patch("momentum_engine.main.EngineRunner") as runner:
            main(["--config", str(path), "--scan-once"])

        run_scan.assert_awaited_once()
        config = run_scan.await_args.args[0]
        assert config.exchange.market == "futures"
        runner.assert_not_called()

    def test_cli_scan_once_failure_exits_1(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        with patch("momentum_engine.main.setup_logging"), patch(
            "momentum_engine.main.run_scan_once",
            new_callable=AsyncMock,
            side_effect=TransientFetchError("HTTP 418"),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(path), "--scan-once"])

        assert exc_info.value.code == 1
