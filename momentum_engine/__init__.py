"""
Momentum Engine - single-position momentum trading engine.

Сканирует поток тикеров, выбирает не более одной возможности за раз,
открывает симулированную позицию и ведёт её выход через храповик
take-profit / stop-loss до закрытия.
"""

__version__ = "0.1.0"
