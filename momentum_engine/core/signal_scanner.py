"""
SignalScanner - выбор одного кандидата из пачки тикеров.

Для каждого тикера с известной reference price и без активного cooldown:
    change_percent = (last_price - reference_price) / reference_price * 100

Кандидаты с |change_percent| <= порога отбрасываются (порог исключающий).
Из оставшихся выбирается ОДИН по правилу tie-break:
- "smallest" (по умолчанию): наименьший |change_percent|, т.е. самый
  скромный из квалифицированных движений, чтобы не догонять уже
  растянутые движения
- "largest": наибольший |change_percent|

RSI фильтр необязателен: long отклоняется при RSI >= overbought,
short при RSI <= oversold. Недоступный RSI означает "нет фильтра".
"""

from typing import Iterable, List, Optional

from loguru import logger

from ..config import ScannerConfig
from ..errors import TransientFetchError
from ..interfaces import MomentumIndicatorSource
from ..models import Candidate, Direction, Tick
from .cooldown_registry import CooldownRegistry
from .reference_prices import ReferencePriceTable


class SignalScanner:
    """
    Сканер сигналов.

    Не имеет побочных эффектов: результат зависит только от входных
    данных и ответа RSI коллаборатора.
    """

    def __init__(
        self,
        config: ScannerConfig,
        reference_prices: ReferencePriceTable,
        cooldown: CooldownRegistry,
        indicator_source: Optional[MomentumIndicatorSource] = None,
    ):
        self.config = config
        self.reference_prices = reference_prices
        self.cooldown = cooldown
        self.indicator_source = indicator_source if config.rsi_enabled else None

    @staticmethod
    def change_percent(last_price: float, reference_price: float) -> float:
        return (last_price - reference_price) / reference_price * 100.0

    def qualifying(
        self, ticks: Iterable[Tick], now: Optional[float] = None
    ) -> List[Candidate]:
        """Все кандидаты, прошедшие порог, в порядке предпочтения tie-break"""
        threshold = self.config.entry_threshold_percent
        candidates: List[Candidate] = []

        for tick in ticks:
            reference_price = self.reference_prices.get(tick.instrument)
            if reference_price is None or tick.last_price <= 0:
                continue
            if self.cooldown.is_active(tick.instrument, now):
                continue

            change = self.change_percent(tick.last_price, reference_price)
            if abs(change) <= threshold:
                continue

            candidates.append(
                Candidate(
                    instrument=tick.instrument,
                    current_price=tick.last_price,
                    change_percent=change,
                    direction=Direction.from_change(change),
                )
            )

        # sorted() стабилен: при равных |change| побеждает первый в пачке
        candidates.sort(
            key=lambda c: abs(c.change_percent),
            reverse=self.config.selection == "largest",
        )
        return candidates

    async def scan(
        self, ticks: Iterable[Tick], now: Optional[float] = None
    ) -> Optional[Candidate]:
        """
        Выбрать не более одного кандидата из пачки тикеров.

        RSI запрашивается лениво, в порядке предпочтения, до первого
        прошедшего фильтр кандидата.

        Returns:
            Candidate или None, если ничего не подходит
        """
        for candidate in self.qualifying(ticks, now):
            logger.debug(
                f"Candidate {candidate.instrument}: price={candidate.current_price}, "
                f"change={candidate.change_percent:+.2f}%"
            )
            if await self._passes_momentum_filter(candidate):
                return candidate
        return None

    async def _passes_momentum_filter(self, candidate: Candidate) -> bool:
        if self.indicator_source is None:
            return True

        try:
            rsi = await self.indicator_source.fetch_momentum_indicator(
                candidate.instrument
            )
        except TransientFetchError as e:
            logger.warning(
                f"⚠️ RSI unavailable for {candidate.instrument}, filter skipped: {e}"
            )
            return True

        if rsi is None:
            return True

        if candidate.direction is Direction.LONG and rsi >= self.config.rsi_overbought:
            logger.info(
                f"Skipping long for {candidate.instrument}: RSI {rsi:.2f} (overbought)"
            )
            return False
        if candidate.direction is Direction.SHORT and rsi <= self.config.rsi_oversold:
            logger.info(
                f"Skipping short for {candidate.instrument}: RSI {rsi:.2f} (oversold)"
            )
            return False
        return True
