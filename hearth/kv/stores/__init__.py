"""Key-value store backends."""

from hearth.kv.stores.inmemory import InMemoryKeyValueStore
from hearth.kv.stores.redis import RedisKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
]
