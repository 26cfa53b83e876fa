"""
Core модули - ядро движка.

Модули:
- reference_prices: Снимок базовых цен
- cooldown_registry: Cooldown после закрытия позиции
- portfolio_ledger: Баланс портфеля и kill-switch
- signal_scanner: Выбор одного кандидата из пачки тикеров
- position_manager: Единственная активная позиция и её храповик выхода
"""

from .cooldown_registry import CooldownRegistry
from .portfolio_ledger import PortfolioLedger
from .position_manager import PositionManager
from .reference_prices import ReferencePriceTable
from .signal_scanner import SignalScanner

__all__ = [
    "CooldownRegistry",
    "PortfolioLedger",
    "PositionManager",
    "ReferencePriceTable",
    "SignalScanner",
]
