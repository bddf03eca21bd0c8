"""KeyValueStore abstract interface."""

from abc import ABC, abstractmethod
from typing import Any


def join_path(*parts: str) -> str:
    """Join path segments into a hierarchical store path."""
    return "/".join(part.strip("/") for part in parts if part)


class KeyValueStore(ABC):
    """Abstract interface for the shared, multi-writer key-value store.

    Paths are hierarchical strings such as ``idempotency/keys/{key}``.
    Values must be JSON-serializable. Implementations give read-your-writes
    within one invocation but no cross-invocation locking beyond
    ``set_if_absent``.
    """

    @abstractmethod
    async def get(self, path: str) -> Any | None:
        """Get the value stored at path, or None."""
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Store value at path, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Remove path and every path below it."""
        pass

    @abstractmethod
    async def list_children(self, path: str) -> dict[str, Any]:
        """Return the direct children of path as {child_name: value}."""
        pass

    @abstractmethod
    async def set_if_absent(self, path: str, value: Any) -> bool:
        """Store value only if path holds nothing.

        Returns:
            True if the value was written, False if path was already set
        """
        pass
