"""Resilience tuning for the device-command pipeline.

All windows, TTLs and retry parameters live here so a deployment (or a
test) can shorten them without touching component code.
"""

from pydantic import BaseModel, Field, model_validator


class RetryConfig(BaseModel):
    """Exponential backoff parameters."""

    max_attempts: int = Field(default=3, ge=1, le=10, description="Total attempts per call")
    initial_delay_ms: int = Field(default=1000, ge=0, description="Delay before the first retry")
    max_delay_ms: int = Field(default=10000, ge=0, description="Upper bound for the base delay")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Growth factor per attempt")
    jitter_ratio: float = Field(
        default=0.3,
        ge=0.0,
        lt=1.0,
        description="Uniform multiplicative jitter applied to each delay (+/-)",
    )

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryConfig":
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        return self


class TimeoutConfig(BaseModel):
    """Per-call timeouts for outbound HTTP."""

    default_ms: int = Field(default=15000, gt=0, description="General request timeout")
    health_ms: int = Field(default=10000, gt=0, description="Health and login call timeout")


class IdempotencyConfig(BaseModel):
    """Idempotency key lifetime."""

    ttl_ms: int = Field(default=3_600_000, gt=0, description="Key lifetime (1 hour)")
    header_name: str = Field(default="Idempotency-Key", description="Outbound header name")


class DedupConfig(BaseModel):
    """Double-submit suppression window."""

    window_ms: int = Field(default=2000, gt=0, description="Suppression window")


class CacheConfig(BaseModel):
    """Cache-aside TTL for polling endpoints."""

    ttl_ms: int = Field(default=60000, gt=0, description="Entry freshness window")


class RateLimitConfig(BaseModel):
    """Fixed-window limit for one endpoint class."""

    window_minutes: float = Field(default=1, gt=0, description="Window length in minutes")
    max_per_window: int = Field(default=10, ge=1, description="Calls admitted per window")

    @property
    def window_ms(self) -> int:
        """Window length in milliseconds."""
        return int(self.window_minutes * 60_000)


class ResilienceConfig(BaseModel):
    """All tunables of the command pipeline, passed to each component."""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limits: dict[str, RateLimitConfig] = Field(
        default_factory=dict,
        description="Overrides per endpoint class, merged over the built-in defaults",
    )
