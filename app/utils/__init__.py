from app.utils.clock import Clock, FrozenClock, as_utc, default_clock
from app.utils.locks import KeyedLockRegistry, occurrence_locks, template_locks

__all__ = [
    "Clock",
    "FrozenClock",
    "as_utc",
    "default_clock",
    "KeyedLockRegistry",
    "occurrence_locks",
    "template_locks",
]
