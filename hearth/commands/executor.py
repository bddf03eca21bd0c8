"""Device command executor.

The single integration point for device commands. Callers say "ignite
the stove" and the executor applies, in order:

1. Deduplication: drop an immediate repeat of the same device action
2. Idempotency: attach the key for this (endpoint, body) fingerprint
3. Rate limiting: admit or reject against the endpoint class budget
4. Retry: send the call, backing off on transient failures

Reads go through rate limiting and the cache-aside layer instead. Writes
are never cached.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from hearth.exceptions import DeviceCommandError, HearthError, RateLimitedError, RetryError
from hearth.observability.logging import get_logger
from hearth.observability.metrics import COMMAND_OUTCOMES
from hearth.resilience.cache import CacheAside
from hearth.resilience.dedup import DeduplicationManager, create_request_key
from hearth.resilience.errors import ERROR_MESSAGES, ErrorCode, message_for_code
from hearth.resilience.idempotency import IdempotencyManager
from hearth.resilience.models import CachedResult
from hearth.resilience.rate_limit import RateLimiter
from hearth.resilience.retry import RetryClient, RetryOptions

logger = get_logger(__name__)

RETRY_EXHAUSTED_MESSAGE = "Command failed after several attempts. Try again."


class CommandStatus(str, Enum):
    """Outcome of a device command."""

    EXECUTED = "executed"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass
class CommandOutcome:
    """Result of DeviceCommandExecutor.execute."""

    status: CommandStatus
    response: httpx.Response | None = None
    error: HearthError | None = None
    attempts: int = 0
    idempotency_key: str | None = None
    next_allowed_in_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status is CommandStatus.EXECUTED


@dataclass
class StoredCommand:
    """A command kept for manual retry."""

    device: str
    action: str
    url: str
    body: Any
    user_id: str
    endpoint_key: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)


def user_message(error: Exception) -> str:
    """User-facing message for a failed command.

    Blocking states (maintenance, offline) get their specific message so
    the UI can offer a manual retry rather than retrying on its own.
    """
    if isinstance(error, RetryError):
        return RETRY_EXHAUSTED_MESSAGE
    if isinstance(error, RateLimitedError):
        return ERROR_MESSAGES[ErrorCode.RATE_LIMITED]
    if isinstance(error, HearthError):
        return message_for_code(error.error_code)
    return "Command failed. Try again."


class DeviceCommandExecutor:
    """Runs device commands through dedup, idempotency, rate limit and retry.

    One executor serves one user session; it remembers the last failed
    command so the UI can offer a manual retry.
    """

    def __init__(
        self,
        retry_client: RetryClient,
        idempotency: IdempotencyManager,
        dedup: DeduplicationManager,
        rate_limiter: RateLimiter,
        cache: CacheAside,
    ) -> None:
        self._retry_client = retry_client
        self._idempotency = idempotency
        self._dedup = dedup
        self._rate_limiter = rate_limiter
        self._cache = cache

        self.last_error: HearthError | None = None
        self.attempt_count = 0
        self._last_failed: StoredCommand | None = None

    async def execute(
        self,
        device: str,
        action: str,
        url: str,
        *,
        body: Any = None,
        user_id: str,
        endpoint_key: str,
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> CommandOutcome:
        """Send one device command.

        Raises:
            StoreUnavailableError: If the idempotency key cannot be
                registered; the command is not sent
        """
        command = StoredCommand(
            device=device,
            action=action,
            url=url,
            body=body,
            user_id=user_id,
            endpoint_key=endpoint_key,
            method=method,
            headers=dict(headers or {}),
        )

        dedup_key = create_request_key(device, action)
        if self._dedup.is_duplicate(dedup_key):
            logger.info("command_suppressed_duplicate", device=device, action=action)
            return self._finish(command, CommandOutcome(status=CommandStatus.DUPLICATE))

        try:
            return await self._send(command)
        finally:
            self._dedup.clear(dedup_key)

    async def retry_last(self) -> CommandOutcome | None:
        """Re-execute the last failed command, if any."""
        command = self._last_failed
        if command is None:
            return None

        logger.info("command_manual_retry", device=command.device, action=command.action)
        self.last_error = None
        return await self.execute(
            command.device,
            command.action,
            command.url,
            body=command.body,
            user_id=command.user_id,
            endpoint_key=command.endpoint_key,
            method=command.method,
            headers=command.headers,
        )

    def clear_error(self) -> None:
        """Reset error state, forgetting the failed command."""
        self.last_error = None
        self.attempt_count = 0
        self._last_failed = None

    async def poll(
        self,
        user_id: str,
        endpoint_key: str,
        cache_key: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> CachedResult[Any]:
        """Read a polling endpoint through the rate limiter and the cache.

        Raises:
            RateLimitedError: When the endpoint class budget is exhausted
            DeviceCommandError: For a permanent read failure
            RetryError: When every read attempt failed
        """
        decision = await self._rate_limiter.check_rate_limit(user_id, endpoint_key)
        if not decision.allowed:
            raise RateLimitedError(
                f"Rate limit exceeded for {endpoint_key}",
                next_allowed_in_ms=decision.next_allowed_in,
            )

        async def fetch() -> Any:
            response = await self._retry_client.retry_fetch(url, "GET", headers=headers)
            return response.json()

        return await self._cache.get_cached(cache_key, fetch)

    async def refresh(self, cache_key: str) -> None:
        """Invalidate a cached read for a user-triggered refresh."""
        await self._cache.invalidate_cache(cache_key)

    async def _send(self, command: StoredCommand) -> CommandOutcome:
        body = command.body if command.body is not None else {}
        key = await self._idempotency.register_key(command.url, body)

        decision = await self._rate_limiter.check_rate_limit(command.user_id, command.endpoint_key)
        if not decision.allowed:
            error = RateLimitedError(
                f"Rate limit exceeded for {command.endpoint_key}",
                next_allowed_in_ms=decision.next_allowed_in,
            )
            return self._finish(
                command,
                CommandOutcome(
                    status=CommandStatus.RATE_LIMITED,
                    error=error,
                    idempotency_key=key,
                    next_allowed_in_ms=decision.next_allowed_in,
                ),
            )

        attempts = 0

        def count_retry(attempt: int, error: Exception) -> None:
            nonlocal attempts
            attempts = attempt
            logger.info(
                "command_retrying",
                device=command.device,
                action=command.action,
                attempt=attempt,
                error=str(error),
            )

        options = self._retry_client.default_options
        options.on_retry = count_retry
        headers = {**command.headers, self._idempotency.header_name: key}

        try:
            response = await self._retry_client.retry_fetch(
                command.url,
                command.method,
                json=command.body,
                headers=headers,
                options=options,
            )
        except RetryError as e:
            outcome = CommandOutcome(
                status=CommandStatus.FAILED,
                error=e,
                attempts=e.attempts,
                idempotency_key=key,
            )
        except DeviceCommandError as e:
            outcome = CommandOutcome(
                status=CommandStatus.FAILED,
                error=e,
                attempts=attempts + 1,
                idempotency_key=key,
            )
        else:
            outcome = CommandOutcome(
                status=CommandStatus.EXECUTED,
                response=response,
                attempts=attempts + 1,
                idempotency_key=key,
            )
        return self._finish(command, outcome)

    def _finish(self, command: StoredCommand, outcome: CommandOutcome) -> CommandOutcome:
        COMMAND_OUTCOMES.labels(
            device=command.device,
            action=command.action,
            status=outcome.status.value,
        ).inc()

        if outcome.status is CommandStatus.EXECUTED:
            if self.last_error is not None or self._last_failed is not None:
                logger.info("command_recovered", device=command.device, action=command.action)
            self.clear_error()
        elif outcome.status in (CommandStatus.FAILED, CommandStatus.RATE_LIMITED):
            self.last_error = outcome.error
            self.attempt_count = outcome.attempts
            self._last_failed = command
            logger.warning(
                "command_failed",
                device=command.device,
                action=command.action,
                status=outcome.status.value,
                error_code=outcome.error.error_code if outcome.error else None,
                attempts=outcome.attempts,
            )
        return outcome
