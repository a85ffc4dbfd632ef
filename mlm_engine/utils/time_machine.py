# mlm_engine/utils/time_machine.py
"""
Engine clock. Real UTC time by default; tests and admins can pin a virtual time
so monthly and weekly earning windows can be checked deterministically.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class TimeMachine:
    """Singleton for the engine clock."""

    _instance = None
    _virtualTime: Optional[datetime] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def isVirtual(self) -> bool:
        return self._virtualTime is not None

    @property
    def now(self) -> datetime:
        if self._virtualTime is not None:
            return self._virtualTime
        return datetime.now(timezone.utc)

    @property
    def startOfMonth(self) -> datetime:
        return self.now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    @property
    def startOfWeek(self) -> datetime:
        """Midnight of the last Sunday."""
        current = self.now
        daysSinceSunday = (current.weekday() + 1) % 7
        return (current - timedelta(days=daysSinceSunday)).replace(hour=0, minute=0, second=0, microsecond=0)

    def startOfMonthsAgo(self, months: int) -> datetime:
        """First day of the month `months` before the current one."""
        start = self.startOfMonth
        year, month = divmod(start.year * 12 + start.month - 1 - months, 12)
        return start.replace(year=year, month=month + 1)

    def setTime(self, newTime: datetime, actor=None):
        """Pin the clock to a virtual time."""
        self._virtualTime = newTime
        logger.info(f"Virtual time set to {newTime} by {actor}")

    def advanceTime(self, days: int = 0, hours: int = 0):
        if self._virtualTime is None:
            raise ValueError("Cannot advance time when not in test mode")

        self._virtualTime += timedelta(days=days, hours=hours)
        logger.info(f"Time advanced to {self._virtualTime}")

    def resetToRealTime(self):
        self._virtualTime = None
        logger.debug("Returned to real time")


# Global instance
timeMachine = TimeMachine()
