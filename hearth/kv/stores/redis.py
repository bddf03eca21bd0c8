"""Redis implementation of KeyValueStore.

Each store path maps to one Redis string key ``{prefix}:{path}`` holding
JSON. ``set_if_absent`` uses ``SET NX``, which makes fingerprint
registration a true check-and-set across instances.
"""

import json
import re
from typing import Any

import redis.asyncio as redis

from hearth.exceptions import StoreUnavailableError
from hearth.kv.store import KeyValueStore
from hearth.observability.logging import get_logger

logger = get_logger(__name__)

# SCAN MATCH metacharacters
_GLOB_CHARS = re.compile(r"([*?\[\]\\])")


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed key-value store shared by every serverless instance."""

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "hearth",
        scan_count: int = 500,
    ) -> None:
        """Initialize Redis store.

        Args:
            client: Redis client instance
            key_prefix: Prefix for Redis keys
            scan_count: COUNT hint for SCAN during sweeps and subtree removal
        """
        self._client = client
        self._prefix = key_prefix
        self._scan_count = scan_count

    @classmethod
    def from_url(
        cls,
        url: str,
        key_prefix: str = "hearth",
        socket_timeout: float = 5.0,
    ) -> "RedisKeyValueStore":
        """Create a store with a new client for url."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, path: str) -> str:
        return f"{self._prefix}:{path}"

    def _path(self, key: str | bytes) -> str:
        if isinstance(key, bytes):
            key = key.decode()
        return key[len(self._prefix) + 1:]

    def _unavailable(self, operation: str, path: str, error: Exception) -> StoreUnavailableError:
        logger.error(
            "kv_store_unavailable",
            operation=operation,
            path=path,
            error=str(error),
        )
        return StoreUnavailableError(f"Key-value store {operation} failed for {path}: {error}")

    def _subtree_pattern(self, path: str) -> str:
        """MATCH pattern for every key strictly below path."""
        escaped = _GLOB_CHARS.sub(r"\\\1", self._key(path))
        return escaped + "/*"

    async def _scan(self, pattern: str) -> list[str]:
        keys: list[str] = []
        async for key in self._client.scan_iter(match=pattern, count=self._scan_count):
            keys.append(key.decode() if isinstance(key, bytes) else key)
        return keys

    async def get(self, path: str) -> Any | None:
        try:
            raw = await self._client.get(self._key(path))
        except redis.RedisError as e:
            raise self._unavailable("get", path, e) from e
        return json.loads(raw) if raw is not None else None

    async def set(self, path: str, value: Any) -> None:
        try:
            await self._client.set(self._key(path), json.dumps(value))
        except redis.RedisError as e:
            raise self._unavailable("set", path, e) from e

    async def remove(self, path: str) -> None:
        try:
            keys = [self._key(path), *await self._scan(self._subtree_pattern(path))]
            await self._client.delete(*keys)
        except redis.RedisError as e:
            raise self._unavailable("remove", path, e) from e

    async def list_children(self, path: str) -> dict[str, Any]:
        try:
            keys = await self._scan(self._subtree_pattern(path))
            prefix_len = len(path) + 1
            direct = [k for k in keys if "/" not in self._path(k)[prefix_len:]]
            if not direct:
                return {}
            values = await self._client.mget(direct)
        except redis.RedisError as e:
            raise self._unavailable("list_children", path, e) from e

        children: dict[str, Any] = {}
        for key, raw in zip(direct, values, strict=True):
            # Removed between SCAN and MGET
            if raw is None:
                continue
            children[self._path(key)[prefix_len:]] = json.loads(raw)
        return children

    async def set_if_absent(self, path: str, value: Any) -> bool:
        try:
            written = await self._client.set(self._key(path), json.dumps(value), nx=True)
        except redis.RedisError as e:
            raise self._unavailable("set_if_absent", path, e) from e
        return bool(written)
