"""
Unit тесты для SignalScanner
"""

from unittest.mock import AsyncMock

import pytest

from momentum_engine.config import ScannerConfig
from momentum_engine.core.cooldown_registry import CooldownRegistry
from momentum_engine.core.reference_prices import ReferencePriceTable
from momentum_engine.core.signal_scanner import SignalScanner
from momentum_engine.errors import TransientFetchError
from momentum_engine.models import Candidate, Direction, Tick


class TestSignalScanner:
    """Тесты выбора кандидата"""

    def setup_method(self):
        """Настройка перед каждым тестом"""
        self.now = 0.0
        self.reference = ReferencePriceTable(
            {"AAAUSDT": 100.0, "BBBUSDT": 200.0, "CCCUSDT": 50.0, "DDDUSDT": 10.0}
        )
        self.cooldown = CooldownRegistry(duration_seconds=300, clock=lambda: self.now)
        self.indicator = AsyncMock()
        self.indicator.fetch_momentum_indicator.return_value = None
        self.scanner = self._make_scanner()

    def _make_scanner(self, **overrides) -> SignalScanner:
        config = ScannerConfig(**overrides)
        return SignalScanner(config, self.reference, self.cooldown, self.indicator)

    @pytest.mark.asyncio
    async def test_long_candidate_from_three_percent_move(self):
        """Reference 100, тик 103 -> Candidate{Long, 103}"""
        candidate = await self.scanner.scan([Tick("AAAUSDT", 103.0)])

        assert isinstance(candidate, Candidate)
        assert candidate.instrument == "AAAUSDT"
        assert candidate.direction is Direction.LONG
        assert candidate.current_price == 103.0
        assert candidate.change_percent == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_short_candidate_from_drop(self):
        candidate = await self.scanner.scan([Tick("BBBUSDT", 190.0)])

        assert candidate.direction is Direction.SHORT
        assert candidate.change_percent == pytest.approx(-5.0)

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self):
        """|change| ровно 2% исключается"""
        ticks = [Tick("AAAUSDT", 102.0), Tick("BBBUSDT", 196.0)]
        assert await self.scanner.scan(ticks) is None

    @pytest.mark.asyncio
    async def test_selects_smallest_qualifying_move(self):
        ticks = [
            Tick("AAAUSDT", 103.0),  # +3%
            Tick("BBBUSDT", 195.0),  # -2.5%
            Tick("CCCUSDT", 52.5),  # +5%
            Tick("DDDUSDT", 10.1),  # +1%, ниже порога
        ]

        candidate = await self.scanner.scan(ticks)

        assert candidate.instrument == "BBBUSDT"
        assert candidate.direction is Direction.SHORT

    @pytest.mark.asyncio
    async def test_selects_largest_when_configured(self):
        scanner = self._make_scanner(selection="largest")
        ticks = [Tick("AAAUSDT", 103.0), Tick("BBBUSDT", 195.0), Tick("CCCUSDT", 52.5)]

        candidate = await scanner.scan(ticks)

        assert candidate.instrument == "CCCUSDT"

    @pytest.mark.asyncio
    async def test_equal_moves_keep_batch_order(self):
        ticks = [Tick("CCCUSDT", 51.5), Tick("AAAUSDT", 103.0)]  # оба +3%
        candidate = await self.scanner.scan(ticks)
        assert candidate.instrument == "CCCUSDT"

    @pytest.mark.asyncio
    async def test_unknown_instruments_ignored(self):
        assert await self.scanner.scan([Tick("ZZZUSDT", 1_000.0)]) is None

    @pytest.mark.asyncio
    async def test_no_qualifying_instrument_returns_none(self):
        ticks = [Tick("AAAUSDT", 100.5), Tick("BBBUSDT", 199.0)]
        assert await self.scanner.scan(ticks) is None
        assert await self.scanner.scan([]) is None

    @pytest.mark.asyncio
    async def test_cooldown_excludes_instrument(self):
        self.cooldown.add("BBBUSDT", now=0.0)
        ticks = [Tick("AAAUSDT", 103.0), Tick("BBBUSDT", 195.0)]

        candidate = await self.scanner.scan(ticks, now=60.0)
        assert candidate.instrument == "AAAUSDT"

        candidate = await self.scanner.scan(ticks, now=301.0)
        assert candidate.instrument == "BBBUSDT"

    @pytest.mark.asyncio
    async def test_overbought_long_rejected_next_candidate_taken(self):
        rsi = {"BBBUSDT": 50.0, "AAAUSDT": 75.0, "CCCUSDT": 60.0}
        self.indicator.fetch_momentum_indicator.side_effect = lambda s: rsi[s]
        ticks = [Tick("AAAUSDT", 102.5), Tick("CCCUSDT", 52.0)]  # +2.5%, +4%

        candidate = await self.scanner.scan(ticks)

        assert candidate.instrument == "CCCUSDT"

    @pytest.mark.asyncio
    async def test_oversold_short_rejected(self):
        self.indicator.fetch_momentum_indicator.return_value = 30.0
        assert await self.scanner.scan([Tick("BBBUSDT", 190.0)]) is None

    @pytest.mark.asyncio
    async def test_rsi_between_bounds_accepted(self):
        self.indicator.fetch_momentum_indicator.return_value = 69.9
        candidate = await self.scanner.scan([Tick("AAAUSDT", 103.0)])
        assert candidate is not None

    @pytest.mark.asyncio
    async def test_unavailable_rsi_does_not_block_entry(self):
        self.indicator.fetch_momentum_indicator.return_value = None
        assert await self.scanner.scan([Tick("AAAUSDT", 103.0)]) is not None

    @pytest.mark.asyncio
    async def test_rsi_fetch_error_does_not_block_entry(self):
        self.indicator.fetch_momentum_indicator.side_effect = TransientFetchError("down")
        candidate = await self.scanner.scan([Tick("AAAUSDT", 103.0)])
        assert candidate.instrument == "AAAUSDT"

    @pytest.mark.asyncio
    async def test_rsi_queried_lazily(self):
        """RSI запрашивается только до первого прошедшего кандидата"""
        ticks = [Tick("AAAUSDT", 103.0), Tick("BBBUSDT", 195.0), Tick("CCCUSDT", 52.5)]

        await self.scanner.scan(ticks)

        self.indicator.fetch_momentum_indicator.assert_awaited_once_with("BBBUSDT")

    @pytest.mark.asyncio
    async def test_rsi_disabled_skips_collaborator(self):
        scanner = self._make_scanner(rsi_enabled=False)
        self.indicator.fetch_momentum_indicator.return_value = 99.0

        candidate = await scanner.scan([Tick("AAAUSDT", 103.0)])

        assert candidate is not None
        self.indicator.fetch_momentum_indicator.assert_not_awaited()

    def test_qualifying_is_pure(self):
        ticks = [Tick("AAAUSDT", 103.0), Tick("BBBUSDT", 195.0)]
        first = self.scanner.qualifying(ticks)
        second = self.scanner.qualifying(ticks)
        assert first == second
        assert len(self.cooldown) == 0
