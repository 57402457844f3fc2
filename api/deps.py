from app.utils.clock import Clock, default_clock
from core.config import config
from core.db import get_db


async def get_clock() -> Clock:
    """Clock used by the request; tests override this to freeze time."""
    return default_clock


async def get_class_capacity() -> int:
    """Seats per occurrence, read at decision time."""
    return config.CLASS_CAPACITY


__all__ = ["get_class_capacity", "get_clock", "get_db"]
