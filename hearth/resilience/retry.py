"""HTTP retry client with exponential backoff and jitter.

Retries device API calls that fail with a transient error (network blip,
timeout, upstream 503, stove timeout). Permanent errors such as
validation failures, auth errors or a stove that needs maintenance are
raised on the first attempt: retrying them cannot succeed and would hide
a real blocking condition from the user.

Usage:
    client = RetryClient(httpx.AsyncClient(), config=settings.resilience)
    response = await client.retry_fetch(
        "https://stove.example/api/ignite",
        method="POST",
        json={"power": 3},
    )
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from hearth.config.models.resilience import ResilienceConfig, RetryConfig
from hearth.exceptions import DeviceCommandError, RetryError
from hearth.observability.logging import get_logger
from hearth.observability.metrics import (
    HTTP_ATTEMPTS,
    RETRIES_EXHAUSTED,
    RETRIES_SCHEDULED,
    RETRY_DELAY,
)
from hearth.resilience.errors import (
    ErrorCode,
    code_for_status,
    is_transient_error,
)

logger = get_logger(__name__)

OnRetry = Callable[[int, Exception], None]


@dataclass
class RetryOptions:
    """Per-call retry behaviour.

    ``on_retry`` is called with the 1-based number of the attempt that just
    failed and its error, before the client waits.
    """

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.3
    on_retry: OnRetry | None = None

    @classmethod
    def from_config(cls, config: RetryConfig, on_retry: OnRetry | None = None) -> "RetryOptions":
        return cls(
            max_attempts=config.max_attempts,
            initial_delay_ms=config.initial_delay_ms,
            max_delay_ms=config.max_delay_ms,
            backoff_multiplier=config.backoff_multiplier,
            jitter_ratio=config.jitter_ratio,
            on_retry=on_retry,
        )


def compute_backoff_delay(
    attempt: int,
    options: RetryOptions,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in milliseconds to wait after a failed attempt.

    ``min(initial * multiplier^(attempt-1), max)`` scaled by a uniform
    factor in ``[1 - jitter, 1 + jitter]``.

    Args:
        attempt: 1-based number of the attempt that failed
        options: Retry parameters
        rng: Source of uniform values in [0, 1)
    """
    base = options.initial_delay_ms * options.backoff_multiplier ** (attempt - 1)
    capped = min(base, options.max_delay_ms)
    factor = 1 + options.jitter_ratio * (2 * rng() - 1)
    return capped * factor


def error_from_response(response: httpx.Response) -> DeviceCommandError | None:
    """Classify a response, returning None for 2xx.

    The error payload contract is ``{"code": str, "error": str}``; bodies
    without a code are classified from the HTTP status.
    """
    if response.is_success:
        return None

    code: str | None = None
    message: str | None = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        if isinstance(payload.get("code"), str):
            code = payload["code"]
        raw_message = payload.get("error") or payload.get("message")
        if isinstance(raw_message, str):
            message = raw_message

    return DeviceCommandError(
        code=code or code_for_status(response.status_code),
        message=message or f"HTTP {response.status_code}",
        status_code=response.status_code,
    )


class RetryClient:
    """Outbound HTTP client for device APIs with bounded retries.

    Attempts within one call are strictly sequential. Backoff waits go
    through the injected ``sleep`` so they suspend only the calling task.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: ResilienceConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the client.

        Args:
            http_client: Shared httpx client
            config: Retry and timeout tuning (defaults if omitted)
            sleep: Coroutine used for backoff waits, in seconds
            rng: Source of uniform values in [0, 1) for jitter
        """
        self._client = http_client
        self._config = config or ResilienceConfig()
        self._sleep = sleep
        self._rng = rng

    @property
    def default_options(self) -> RetryOptions:
        return RetryOptions.from_config(self._config.retry)

    async def fetch_with_timeout(
        self,
        url: str,
        method: str = "GET",
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        """Perform one HTTP call bounded by an explicit timeout.

        Raises:
            DeviceCommandError: TIMEOUT when the call exceeds timeout_ms,
                NETWORK_ERROR when the connection fails
        """
        timeout_ms = timeout_ms or self._config.timeouts.default_ms
        try:
            return await self._client.request(
                method,
                url,
                json=json,
                headers=headers,
                timeout=timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            raise DeviceCommandError(
                ErrorCode.TIMEOUT.value,
                f"{method} {url} timed out after {timeout_ms}ms",
                status_code=504,
            ) from e
        except httpx.TransportError as e:
            raise DeviceCommandError(
                ErrorCode.NETWORK_ERROR.value,
                f"{method} {url} failed: {e}",
                status_code=503,
            ) from e

    async def retry_fetch(
        self,
        url: str,
        method: str = "GET",
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        options: RetryOptions | None = None,
    ) -> httpx.Response:
        """Perform an HTTP call, retrying transient failures with backoff.

        Returns:
            The first 2xx response

        Raises:
            DeviceCommandError: Immediately, for a permanent error
            RetryError: When every attempt failed with a transient error
        """
        opts = options or self.default_options
        last_error: DeviceCommandError | None = None

        for attempt in range(1, opts.max_attempts + 1):
            try:
                response = await self.fetch_with_timeout(
                    url, method, json=json, headers=headers, timeout_ms=timeout_ms
                )
                error = error_from_response(response)
            except DeviceCommandError as e:
                error = e

            if error is None:
                HTTP_ATTEMPTS.labels(outcome="success").inc()
                if attempt > 1:
                    logger.info("device_call_recovered", url=url, attempt=attempt)
                return response

            if not is_transient_error(error.code):
                HTTP_ATTEMPTS.labels(outcome="permanent").inc()
                logger.warning(
                    "device_call_permanent_failure",
                    url=url,
                    attempt=attempt,
                    error_code=error.code,
                    status_code=error.status_code,
                )
                raise error

            HTTP_ATTEMPTS.labels(outcome="transient").inc()
            last_error = error

            # No wait after the final attempt
            if attempt < opts.max_attempts:
                delay_ms = compute_backoff_delay(attempt, opts, self._rng)
                if opts.on_retry is not None:
                    opts.on_retry(attempt, error)
                RETRIES_SCHEDULED.labels(error_code=error.code).inc()
                RETRY_DELAY.observe(delay_ms / 1000)
                logger.warning(
                    "retry_scheduled",
                    url=url,
                    attempt=attempt,
                    max_attempts=opts.max_attempts,
                    error_code=error.code,
                    delay_ms=round(delay_ms),
                )
                await self._sleep(delay_ms / 1000)

        RETRIES_EXHAUSTED.inc()
        logger.error(
            "retries_exhausted",
            url=url,
            attempts=opts.max_attempts,
            error_code=last_error.code if last_error else None,
        )
        raise RetryError(
            f"Request failed after {opts.max_attempts} attempts",
            attempts=opts.max_attempts,
            last_error=last_error or DeviceCommandError(ErrorCode.INTERNAL_ERROR.value, "Unknown error"),
        )

    async def fetch_health(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        options: RetryOptions | None = None,
    ) -> httpx.Response:
        """GET a health or login endpoint with the shorter health timeout."""
        return await self.retry_fetch(
            url,
            "GET",
            headers=headers,
            timeout_ms=self._config.timeouts.health_ms,
            options=options,
        )
