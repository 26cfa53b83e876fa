"""
Indicators module - momentum filter indicators
"""

from momentum_engine.indicators.rsi import RSI, IndicatorResult

__all__ = ["RSI", "IndicatorResult"]
