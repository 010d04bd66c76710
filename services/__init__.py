"""
Tourney Progression Services

Storage, signalling and locking services used by the progression engine.
"""

from services.event_bus import EventBus
from services.locks import KeyedLock
from services.storage import ProgressionStore, SqlAlchemyStore

__all__ = ["EventBus", "KeyedLock", "ProgressionStore", "SqlAlchemyStore"]
