"""Configuration models for Hearth."""

from hearth.config.models.observability import LoggingConfig, ObservabilityConfig
from hearth.config.models.resilience import (
    CacheConfig,
    DedupConfig,
    IdempotencyConfig,
    RateLimitConfig,
    ResilienceConfig,
    RetryConfig,
    TimeoutConfig,
)
from hearth.config.models.storage import StorageConfig

__all__ = [
    "CacheConfig",
    "DedupConfig",
    "IdempotencyConfig",
    "LoggingConfig",
    "ObservabilityConfig",
    "RateLimitConfig",
    "ResilienceConfig",
    "RetryConfig",
    "StorageConfig",
    "TimeoutConfig",
]
