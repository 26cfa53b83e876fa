"""
Contracts of the external collaborators consumed by the engine core.

All fetch methods raise TransientFetchError on network/parse failures,
except fetch_momentum_indicator which reports Unavailable as None.
"""
from typing import AsyncIterator, Dict, List, Optional, Protocol, Set

from .models import Tick


class ReferencePriceSource(Protocol):
    async def fetch_reference_prices(self) -> Dict[str, float]:
        ...


class InstrumentUniverseSource(Protocol):
    async def fetch_instrument_universe(self) -> Set[str]:
        ...


class MomentumIndicatorSource(Protocol):
    async def fetch_momentum_indicator(self, instrument: str) -> Optional[float]:
        ...


class LivePriceSource(Protocol):
    async def fetch_live_price(self, instrument: str) -> float:
        ...


class MarketDataSource(
    ReferencePriceSource, MomentumIndicatorSource, LivePriceSource, Protocol
):
    """Everything the engine needs from the REST side of the venue"""


class TickerSnapshotSource(Protocol):
    async def fetch_ticker_snapshot(self) -> List[Tick]:
        ...


class MoverReportSource(
    ReferencePriceSource, InstrumentUniverseSource, TickerSnapshotSource, Protocol
):
    """REST data for the one-shot mover report"""


class TickFeed(Protocol):
    """Lazy, unordered, unbounded sequence of tick batches"""

    def __aiter__(self) -> AsyncIterator[List[Tick]]:
        ...
