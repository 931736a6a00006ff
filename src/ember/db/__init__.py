"""Database layer."""

from ember.db.engine import Database
from ember.db.models import Base, HistoryRecord, MemoryRecord

__all__ = [
    # Engine
    "Database",
    # Models
    "Base",
    "HistoryRecord",
    "MemoryRecord",
]
