from core.db.base import Base
from core.db.mixins import TimestampMixin
from core.db.session import async_session_factory, engine, get_db
from core.db.types import UTCDateTime

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "async_session_factory",
    "engine",
    "get_db",
]
