"""Shared key-value store used as the cross-instance coordination primitive."""

from hearth.kv.store import KeyValueStore, join_path
from hearth.kv.stores.inmemory import InMemoryKeyValueStore
from hearth.kv.stores.redis import RedisKeyValueStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "join_path",
]
