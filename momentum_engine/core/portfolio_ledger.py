"""
PortfolioLedger - баланс портфеля и kill-switch движка.

Баланс изменяется только PositionManager при закрытии сделки и ничем
не ограничивается; решение об остановке - это только чтение баланса.
"""

from typing import Dict, List, Optional

from loguru import logger

from ..models import ClosedTrade


class PortfolioLedger:
    """Единый текущий баланс + история закрытых сделок текущего запуска"""

    def __init__(self, starting_balance: float, upper_bound_multiplier: float = 10.0):
        self.starting_balance = starting_balance
        self.upper_bound = starting_balance * upper_bound_multiplier
        self.balance = starting_balance
        self.trades: List[ClosedTrade] = []

    def apply(self, delta: float) -> float:
        """balance += delta (без ограничений сверху и снизу)"""
        self.balance += delta
        return self.balance

    def record(self, trade: ClosedTrade) -> float:
        """Применить realized PnL закрытой сделки и сохранить её"""
        self.trades.append(trade)
        balance = self.apply(trade.pnl)
        logger.debug(
            f"PortfolioLedger: {trade.instrument} pnl={trade.pnl:+.4f}, "
            f"balance={balance:.4f}"
        )
        return balance

    def halt_reason(self, balance: Optional[float] = None) -> Optional[str]:
        """
        Причина остановки движка или None.

        Останавливаемся, если баланс <= 0 или превышает верхнюю границу.
        """
        balance = self.balance if balance is None else balance
        if balance <= 0:
            return f"balance depleted ({balance:.2f} <= 0)"
        if balance > self.upper_bound:
            return f"balance exceeded upper bound ({balance:.2f} > {self.upper_bound:.2f})"
        return None

    def halt_condition(self, balance: Optional[float] = None) -> bool:
        return self.halt_reason(balance) is not None

    @property
    def realized_pnl(self) -> float:
        return sum(trade.pnl for trade in self.trades)

    def stats(self) -> Dict[str, float]:
        """Сводная статистика текущего запуска"""
        wins = sum(1 for trade in self.trades if trade.is_win)
        total = len(self.trades)
        return {
            "balance": self.balance,
            "starting_balance": self.starting_balance,
            "realized_pnl": self.realized_pnl,
            "total_trades": total,
            "winning_trades": wins,
            "losing_trades": total - wins,
            "win_rate": (wins / total) * 100.0 if total else 0.0,
        }
