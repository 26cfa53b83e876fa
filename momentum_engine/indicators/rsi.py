"""
Relative Strength Index для фильтра входа
"""
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


@dataclass
class IndicatorResult:
    """Result container for indicator calculations"""

    name: str
    value: Optional[float]
    signal: Optional[str] = None  # 'BUY', 'SELL', 'NEUTRAL'
    metadata: dict = field(default_factory=dict)


class RSI:
    """Relative Strength Index indicator"""

    def __init__(self, period: int = 14, overbought: float = 70, oversold: float = 30):
        self.period = period
        self.overbought = overbought
        self.oversold = oversold

    def validate_data(self, data: List[float]) -> bool:
        """Нужно минимум period изменений, т.е. period + 1 цен"""
        return len(data) > self.period

    def calculate(self, data: List[float]) -> IndicatorResult:
        """
        Расчёт RSI по ценам закрытия (старые первыми).

        Если данных недостаточно, value=None: вызывающая сторона
        трактует это как "RSI недоступен".
        """
        if not self.validate_data(data):
            return IndicatorResult(f"RSI_{self.period}", None, "NEUTRAL")

        # Шаг 1: изменения цены
        prices = np.asarray(data, dtype=float)
        deltas = np.diff(prices)

        # Шаг 2: прибыльные и убыточные движения
        gains = np.where(deltas > 0, deltas, 0.0)
        losses = np.where(deltas < 0, -deltas, 0.0)

        # Шаг 3: первое значение - простое среднее за period,
        # далее сглаживание Wilder: avg = (prev * (period - 1) + current) / period
        avg_gain = float(np.mean(gains[: self.period]))
        avg_loss = float(np.mean(losses[: self.period]))
        for i in range(self.period, len(gains)):
            avg_gain = (avg_gain * (self.period - 1) + gains[i]) / self.period
            avg_loss = (avg_loss * (self.period - 1) + losses[i]) / self.period

        # Шаг 4: RSI = 100 - 100 / (1 + RS)
        if avg_loss == 0:
            rsi_value = 100.0 if avg_gain > 0 else 50.0
        else:
            rs = avg_gain / avg_loss
            rsi_value = 100.0 - (100.0 / (1.0 + rs))

        signal = "NEUTRAL"
        if rsi_value >= self.overbought:
            signal = "SELL"
        elif rsi_value <= self.oversold:
            signal = "BUY"

        return IndicatorResult(
            name=f"RSI_{self.period}",
            value=rsi_value,
            signal=signal,
            metadata={
                "period": self.period,
                "overbought": self.overbought,
                "oversold": self.oversold,
            },
        )
