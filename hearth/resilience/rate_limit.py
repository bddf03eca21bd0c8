"""Persistent fixed-window rate limiting per user and endpoint class.

Window state lives in the shared store so the budget survives cold
starts and is shared by every serverless instance. Each endpoint class
(devices, bandwidth, wan, ...) has its own window; exhausting one never
blocks another.

Store layout:
    ratelimit/{user_id}/{endpoint_key}   RateLimitWindowRecord
"""

from pydantic import ValidationError

from hearth.config.models.resilience import RateLimitConfig
from hearth.kv.store import KeyValueStore, join_path
from hearth.observability.logging import get_logger
from hearth.observability.metrics import RATE_LIMIT_DECISIONS
from hearth.resilience.models import RateLimitResult, RateLimitStatus, RateLimitWindowRecord
from hearth.utils.clock import Clock, SystemClock

logger = get_logger(__name__)

RATE_LIMIT_PATH = "ratelimit"

DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    # Router endpoints
    "devices": RateLimitConfig(window_minutes=1, max_per_window=10),
    "bandwidth": RateLimitConfig(window_minutes=1, max_per_window=10),
    "wan": RateLimitConfig(window_minutes=1, max_per_window=10),
    # Thermostat vendor allows 500/hour; keep a 20% buffer
    "thermostat": RateLimitConfig(window_minutes=60, max_per_window=400),
    "camera": RateLimitConfig(window_minutes=60, max_per_window=400),
    "lights": RateLimitConfig(window_minutes=1, max_per_window=60),
    "stove": RateLimitConfig(window_minutes=1, max_per_window=20),
    "default": RateLimitConfig(window_minutes=1, max_per_window=10),
}


class RateLimiter:
    """Fixed-window request counter persisted in the key-value store.

    The read-modify-write of a window is not atomic across instances; under
    a concurrent burst a window may admit slightly more than its budget.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        limits: dict[str, RateLimitConfig] | None = None,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            store: Shared key-value store
            clock: Time source (system clock if omitted)
            limits: Per endpoint class overrides, merged over DEFAULT_RATE_LIMITS
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._limits = {**DEFAULT_RATE_LIMITS, **(limits or {})}

    def limits_for(self, endpoint_key: str) -> RateLimitConfig:
        """Configured limit for an endpoint class, or the default."""
        return self._limits.get(endpoint_key, self._limits["default"])

    def _path(self, user_id: str, endpoint_key: str) -> str:
        return join_path(RATE_LIMIT_PATH, user_id, endpoint_key)

    async def _read_window(self, path: str) -> RateLimitWindowRecord | None:
        raw = await self._store.get(path)
        if raw is None:
            return None
        try:
            return RateLimitWindowRecord.model_validate(raw)
        except ValidationError:
            logger.warning("rate_limit_window_corrupted", path=path)
            return None

    async def check_rate_limit(
        self,
        user_id: str,
        endpoint_key: str,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult:
        """Count one call against the window and decide whether to admit it.

        Args:
            user_id: Authenticated user
            endpoint_key: Endpoint class (devices, bandwidth, wan, ...)
            config: Explicit limit; falls back to the endpoint class default

        Returns:
            RateLimitResult; a rejection carries the milliseconds until the
            window rolls over and the number of calls rejected so far in it
        """
        limits = config or self.limits_for(endpoint_key)
        window_ms = limits.window_ms
        path = self._path(user_id, endpoint_key)
        now = self._clock.now_ms()

        window = await self._read_window(path)
        if window is None or now - window.window_start >= window_ms:
            window = RateLimitWindowRecord(window_start=now, count=1)
            await self._store.set(path, window.to_store())
            RATE_LIMIT_DECISIONS.labels(endpoint_key=endpoint_key, decision="allowed").inc()
            return RateLimitResult(allowed=True)

        window.count += 1
        if window.count <= limits.max_per_window:
            await self._store.set(path, window.to_store())
            RATE_LIMIT_DECISIONS.labels(endpoint_key=endpoint_key, decision="allowed").inc()
            return RateLimitResult(allowed=True, suppressed_count=window.suppressed_count)

        window.suppressed_count += 1
        await self._store.set(path, window.to_store())

        next_allowed_in = window.window_start + window_ms - now
        RATE_LIMIT_DECISIONS.labels(endpoint_key=endpoint_key, decision="rejected").inc()
        logger.warning(
            "rate_limit_exceeded",
            user_id=user_id,
            endpoint_key=endpoint_key,
            limit=limits.max_per_window,
            suppressed_count=window.suppressed_count,
            next_allowed_in_ms=next_allowed_in,
        )
        return RateLimitResult(
            allowed=False,
            suppressed_count=window.suppressed_count,
            next_allowed_in=next_allowed_in,
        )

    async def get_status(
        self,
        user_id: str,
        endpoint_key: str,
        config: RateLimitConfig | None = None,
    ) -> RateLimitStatus:
        """Read the current window without counting a call."""
        limits = config or self.limits_for(endpoint_key)
        now = self._clock.now_ms()
        window = await self._read_window(self._path(user_id, endpoint_key))

        if window is None or now - window.window_start >= limits.window_ms:
            return RateLimitStatus(
                current_count=0,
                max_allowed=limits.max_per_window,
                window_minutes=limits.window_minutes,
                next_reset_in=0,
            )

        return RateLimitStatus(
            current_count=min(window.count, limits.max_per_window),
            max_allowed=limits.max_per_window,
            window_minutes=limits.window_minutes,
            next_reset_in=window.window_start + limits.window_ms - now,
        )

    async def clear_for_user(self, user_id: str) -> None:
        """Remove every window of a user."""
        await self._store.remove(join_path(RATE_LIMIT_PATH, user_id))
        logger.info("rate_limit_cleared", user_id=user_id)
