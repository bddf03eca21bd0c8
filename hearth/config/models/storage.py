"""Key-value store backend configuration."""

from typing import Literal

from pydantic import BaseModel, Field

StoreBackend = Literal["inmemory", "redis"]


class StorageConfig(BaseModel):
    """Configuration for the shared key-value store.

    The store is the only coordination primitive between serverless
    instances, so every instance of a deployment must point at the same
    backend.
    """

    backend: StoreBackend = Field(
        default="inmemory",
        description="Backend type",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (used when backend = redis)",
    )
    key_prefix: str = Field(
        default="hearth",
        description="Prefix applied to every stored path",
    )
    socket_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Redis socket timeout in seconds",
    )
