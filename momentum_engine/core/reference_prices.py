"""
ReferencePriceTable - снимок базовых цен инструментов.

Заполняется один раз при старте (и при необязательном периодическом
обновлении) и заменяется целиком; во время сканирования только читается.
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional

from loguru import logger


class ReferencePriceTable:
    """Снимок instrument -> reference price"""

    def __init__(self, prices: Optional[Mapping[str, float]] = None):
        self._prices: Mapping[str, float] = MappingProxyType({})
        if prices:
            self.replace(prices)

    def replace(self, prices: Mapping[str, float]) -> int:
        """
        Заменить снимок целиком.

        Непозитивные и нечисловые цены отбрасываются.

        Returns:
            Количество инструментов в новом снимке
        """
        snapshot: Dict[str, float] = {}
        for instrument, price in prices.items():
            try:
                value = float(price)
            except (TypeError, ValueError):
                logger.warning(f"⚠️ Reference price for {instrument} is not a number: {price!r}")
                continue
            if value <= 0:
                logger.warning(f"⚠️ Reference price for {instrument} is not positive: {value}")
                continue
            snapshot[instrument] = value

        self._prices = MappingProxyType(snapshot)
        logger.debug(f"ReferencePriceTable: {len(snapshot)} instruments loaded")
        return len(snapshot)

    def get(self, instrument: str) -> Optional[float]:
        return self._prices.get(instrument)

    def snapshot(self) -> Mapping[str, float]:
        """Read-only view of the current table"""
        return self._prices

    def __contains__(self, instrument: str) -> bool:
        return instrument in self._prices

    def __len__(self) -> int:
        return len(self._prices)
