"""Persisted records and result models of the resilience components.

Persisted records use camelCase aliases so every instance reads and
writes the same document shape regardless of language.
"""

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class StoredRecord(BaseModel):
    """Base for records written to the key-value store."""

    model_config = ConfigDict(populate_by_name=True)

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class IdempotencyKeyRecord(StoredRecord):
    """Idempotency key issued for one (endpoint, body) fingerprint."""

    key: str
    endpoint: str
    body_hash: str = Field(alias="bodyHash")
    created_at: int = Field(alias="createdAt")
    expires_at: int = Field(alias="expiresAt")


class LookupRecord(StoredRecord):
    """Fingerprint -> key index, written together with the key record."""

    key: str
    expires_at: int = Field(alias="expiresAt")


class RateLimitWindowRecord(StoredRecord):
    """Fixed-window counter for one (user, endpoint class)."""

    window_start: int = Field(alias="windowStart")
    count: int = 0
    suppressed_count: int = Field(default=0, alias="suppressedCount")


class CacheEntry(StoredRecord, Generic[T]):
    """Cached payload with the time it was fetched."""

    data: T
    timestamp: int


class RateLimitResult(BaseModel):
    """Outcome of a rate limit check."""

    allowed: bool
    suppressed_count: int = 0
    next_allowed_in: int = Field(default=0, description="Milliseconds until the window rolls over")


class RateLimitStatus(BaseModel):
    """Current window state for debugging and UI."""

    current_count: int
    max_allowed: int
    window_minutes: float
    next_reset_in: int = Field(description="Milliseconds until the window rolls over")


class CachedResult(BaseModel, Generic[T]):
    """Cache-aside read with provenance."""

    data: T
    source: Literal["cache", "api"]
    age_seconds: float | None = None
