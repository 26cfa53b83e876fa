"""
Boundary adapters to the venue (REST and streaming).
"""

from .binance_client import BinanceClient

__all__ = ["BinanceClient"]
