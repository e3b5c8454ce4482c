"""
Persistence package for ClipTrail.

Provides the key-value backends and the history repository built on them.
"""

from cliptrail.database.history_repository import HistoryRepository
from cliptrail.database.kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    RedisConfig,
    RedisKeyValueStore,
)

__all__ = [
    'HistoryRepository',
    'KeyValueStore',
    'MemoryKeyValueStore',
    'RedisConfig',
    'RedisKeyValueStore',
]
