"""In-memory implementation of KeyValueStore."""

import json
from typing import Any

from hearth.kv.store import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory implementation of KeyValueStore for testing and development.

    Values are stored as JSON text so callers get the same copy semantics
    as with a remote store.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._data: dict[str, str] = {}

    async def get(self, path: str) -> Any | None:
        raw = self._data.get(path)
        return json.loads(raw) if raw is not None else None

    async def set(self, path: str, value: Any) -> None:
        self._data[path] = json.dumps(value)

    async def remove(self, path: str) -> None:
        prefix = f"{path}/"
        for stored in [p for p in self._data if p == path or p.startswith(prefix)]:
            del self._data[stored]

    async def list_children(self, path: str) -> dict[str, Any]:
        prefix = f"{path}/"
        children: dict[str, Any] = {}
        for stored, raw in self._data.items():
            if not stored.startswith(prefix):
                continue
            name = stored[len(prefix):]
            if "/" not in name:
                children[name] = json.loads(raw)
        return children

    async def set_if_absent(self, path: str, value: Any) -> bool:
        if path in self._data:
            return False
        self._data[path] = json.dumps(value)
        return True

    def __len__(self) -> int:
        return len(self._data)
