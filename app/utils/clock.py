"""Clock used to read the current time and resolve studio-local date/times."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import config


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Wall clock bound to the studio timezone."""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name or config.APP_TIMEZONE)

    def now(self) -> datetime:
        """Current instant in UTC."""
        return datetime.now(timezone.utc)

    def today(self) -> date:
        """Current calendar date in the studio timezone."""
        return self.now().astimezone(self.tz).date()

    def to_utc(self, local_date: date, local_time: time) -> datetime:
        """Resolve a studio-local date and time of day to a UTC instant."""
        local = datetime.combine(local_date, local_time.replace(tzinfo=None), tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def to_local(self, value: datetime) -> datetime:
        return as_utc(value).astimezone(self.tz)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant; advance it explicitly."""

    def __init__(self, frozen_at: datetime, tz_name: Optional[str] = None):
        super().__init__(tz_name)
        self.frozen_at = as_utc(frozen_at)

    def now(self) -> datetime:
        return self.frozen_at

    def advance(self, **kwargs) -> None:
        self.frozen_at = self.frozen_at + timedelta(**kwargs)


default_clock = Clock()
