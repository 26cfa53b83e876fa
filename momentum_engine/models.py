"""
Data models for the momentum engine
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Direction(Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short"""
        return 1 if self is Direction.LONG else -1

    @classmethod
    def from_change(cls, change_percent: float) -> "Direction":
        """Direction that follows the move: up -> long, down -> short"""
        return cls.LONG if change_percent > 0 else cls.SHORT


class ExitOutcome(Enum):
    TARGET = "target"
    TRAILING_STOP = "trailing_stop"
    TIMEOUT = "timeout"
    HALT = "halt"


class PositionState(Enum):
    IDLE = "idle"
    OPEN = "open"


@dataclass(frozen=True)
class Tick:
    """Last traded price of one instrument from a feed batch"""

    instrument: str
    last_price: float


@dataclass(frozen=True)
class Candidate:
    """Single trading opportunity selected by the scanner"""

    instrument: str
    current_price: float
    change_percent: float
    direction: Direction


@dataclass
class Position:
    """
    Active simulated position.

    take_profit_price / stop_loss_price are only ever moved by the
    PositionManager exit ladder, and only in the favorable direction.
    """

    instrument: str
    direction: Direction
    entry_price: float
    size: float
    take_profit_price: float
    stop_loss_price: float
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_price: Optional[float] = None
    ratchet_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.last_price is None:
            self.last_price = self.entry_price

    def reached_target(self, price: float) -> bool:
        """Price has reached or passed take-profit in the favorable direction"""
        if self.direction is Direction.LONG:
            return price >= self.take_profit_price
        return price <= self.take_profit_price

    def crossed_stop(self, price: float) -> bool:
        """Price has reached or passed stop-loss against the position"""
        if self.direction is Direction.LONG:
            return price <= self.stop_loss_price
        return price >= self.stop_loss_price

    def pnl_at(self, exit_price: float, leverage: float) -> float:
        """Realized profit/loss if closed at exit_price"""
        return (
            (exit_price - self.entry_price)
            * self.direction.sign
            * self.size
            * leverage
        )


@dataclass(frozen=True)
class ClosedTrade:
    """Completed trade record (in-memory only)"""

    position_id: str
    instrument: str
    direction: Direction
    entry_price: float
    exit_price: float
    size: float
    pnl: float
    outcome: ExitOutcome
    ratchet_count: int
    opened_at: datetime
    closed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_win(self) -> bool:
        return self.pnl > 0
