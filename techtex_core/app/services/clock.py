"""
Injectable clock so the store and the notification pass never call
``datetime.now()`` directly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current, timezone-aware time."""
        ...

    def today(self) -> date:
        return self.now().date()

    def epoch_millis(self) -> int:
        return int(self.now().timestamp() * 1000)


class SystemClock(Clock):
    """Wall-clock time in the server's local timezone."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone()


class FixedClock(Clock):
    """Test clock that returns the same instant until advanced."""

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time

    def advance(self, **kwargs) -> None:
        """Advance by a ``timedelta(**kwargs)``, e.g. ``advance(days=3)``."""
        self._fixed_time = self._fixed_time + timedelta(**kwargs)
