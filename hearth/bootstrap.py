"""Wire the command pipeline from configuration.

Each serverless instance builds one set of components at startup and
passes it by reference; nothing is kept in module-level singletons.

Example usage:

    from hearth.bootstrap import build_components
    from hearth.config import get_settings

    components = build_components(get_settings())
    executor = components.executor()
    outcome = await executor.execute(
        "stove", "ignite", "https://stove.example/api/ignite",
        body={"power": 3}, user_id=user_id, endpoint_key="stove",
    )
"""

from dataclasses import dataclass

import httpx

from hearth.commands.executor import DeviceCommandExecutor
from hearth.config.settings import Settings
from hearth.jobs.workflows.idempotency_cleanup import IdempotencyCleanupWorkflow
from hearth.kv.store import KeyValueStore
from hearth.kv.stores.inmemory import InMemoryKeyValueStore
from hearth.kv.stores.redis import RedisKeyValueStore
from hearth.observability.logging import get_logger, setup_logging
from hearth.resilience.cache import CacheAside
from hearth.resilience.dedup import DeduplicationManager
from hearth.resilience.idempotency import IdempotencyManager
from hearth.resilience.rate_limit import RateLimiter
from hearth.resilience.retry import RetryClient
from hearth.utils.clock import Clock, SystemClock

logger = get_logger(__name__)


@dataclass
class ResilienceComponents:
    """One instance of each pipeline component sharing a store and clock."""

    store: KeyValueStore
    clock: Clock
    retry_client: RetryClient
    idempotency: IdempotencyManager
    dedup_window_ms: int
    rate_limiter: RateLimiter
    cache: CacheAside

    def executor(self) -> DeviceCommandExecutor:
        """Create an executor for one user session.

        Each session gets its own DeduplicationManager: double-submit
        suppression is local to one client, never shared between users.
        """
        return DeviceCommandExecutor(
            retry_client=self.retry_client,
            idempotency=self.idempotency,
            dedup=DeduplicationManager(clock=self.clock, window_ms=self.dedup_window_ms),
            rate_limiter=self.rate_limiter,
            cache=self.cache,
        )

    def cleanup_workflow(self) -> IdempotencyCleanupWorkflow:
        return IdempotencyCleanupWorkflow(self.idempotency)


def build_store(settings: Settings) -> KeyValueStore:
    """Create the configured key-value store backend."""
    storage = settings.storage
    if storage.backend == "redis":
        logger.info("kv_store_selected", backend="redis", key_prefix=storage.key_prefix)
        return RedisKeyValueStore.from_url(
            storage.redis_url,
            key_prefix=storage.key_prefix,
            socket_timeout=storage.socket_timeout,
        )

    logger.info("kv_store_selected", backend="inmemory")
    return InMemoryKeyValueStore()


def build_components(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    clock: Clock | None = None,
    store: KeyValueStore | None = None,
    configure_logging: bool = False,
) -> ResilienceComponents:
    """Build every pipeline component from settings.

    Args:
        settings: Loaded settings
        http_client: Shared httpx client (a new one if omitted)
        clock: Time source (system clock if omitted)
        store: Key-value store (built from settings if omitted)
        configure_logging: Also configure structlog from settings
    """
    if configure_logging:
        log_config = settings.observability.logging
        setup_logging(
            level=log_config.level,
            format=log_config.format,
            redact_pii=log_config.redact_pii,
        )

    resilience = settings.resilience
    clock = clock or SystemClock()
    if store is None:
        store = build_store(settings)

    return ResilienceComponents(
        store=store,
        clock=clock,
        retry_client=RetryClient(http_client or httpx.AsyncClient(), config=resilience),
        idempotency=IdempotencyManager(store, clock=clock, config=resilience.idempotency),
        dedup_window_ms=resilience.dedup.window_ms,
        rate_limiter=RateLimiter(store, clock=clock, limits=resilience.rate_limits),
        cache=CacheAside(store, clock=clock, ttl_ms=resilience.cache.ttl_ms),
    )
