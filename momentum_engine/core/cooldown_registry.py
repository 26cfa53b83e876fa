"""
CooldownRegistry - временное исключение инструментов из входа.

После закрытия позиции по инструменту он не может быть выбран
сканером в течение duration секунд. Истёкшие записи удаляются лениво
при проверке (без таймеров-колбэков).
"""

import time
from typing import Callable, Dict, List, Optional

from loguru import logger


class CooldownRegistry:
    """Реестр instrument -> expires_at"""

    def __init__(
        self,
        duration_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.duration_seconds = duration_seconds
        self._clock = clock
        self._expires_at: Dict[str, float] = {}

    def add(self, instrument: str, now: Optional[float] = None) -> float:
        """
        Добавить или продлить cooldown для инструмента.

        Returns:
            Время истечения cooldown
        """
        now = self._clock() if now is None else now
        expires_at = now + self.duration_seconds
        self._expires_at[instrument] = expires_at
        logger.debug(
            f"🧊 Cooldown armed for {instrument} ({self.duration_seconds:.0f}s)"
        )
        return expires_at

    def is_active(self, instrument: str, now: Optional[float] = None) -> bool:
        """True, если запись есть и now < expires_at"""
        expires_at = self._expires_at.get(instrument)
        if expires_at is None:
            return False

        now = self._clock() if now is None else now
        if now < expires_at:
            return True

        del self._expires_at[instrument]
        logger.debug(f"Cooldown expired for {instrument}")
        return False

    def purge(self, now: Optional[float] = None) -> int:
        """Удалить все истёкшие записи. Возвращает количество удалённых"""
        now = self._clock() if now is None else now
        expired = [
            instrument
            for instrument, expires_at in self._expires_at.items()
            if now >= expires_at
        ]
        for instrument in expired:
            del self._expires_at[instrument]
        return len(expired)

    def active_instruments(self, now: Optional[float] = None) -> List[str]:
        self.purge(now)
        return sorted(self._expires_at)

    def __len__(self) -> int:
        return len(self._expires_at)
