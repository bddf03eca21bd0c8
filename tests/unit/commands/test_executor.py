"""Unit tests for DeviceCommandExecutor."""

import asyncio
import itertools

import httpx
import pytest

from hearth.commands.executor import (
    RETRY_EXHAUSTED_MESSAGE,
    CommandStatus,
    DeviceCommandExecutor,
    user_message,
)
from hearth.config.models.resilience import RateLimitConfig
from hearth.exceptions import (
    DeviceCommandError,
    RateLimitedError,
    RetryError,
    StoreUnavailableError,
)
from hearth.kv.stores.inmemory import InMemoryKeyValueStore
from hearth.resilience.cache import CacheAside
from hearth.resilience.dedup import DeduplicationManager
from hearth.resilience.idempotency import IdempotencyManager
from hearth.resilience.rate_limit import RateLimiter
from hearth.resilience.retry import RetryClient

IGNITE_URL = "https://stove.example/api/ignite"
DEVICES_URL = "https://router.example/api/devices"


class DeviceApi:
    """Scripted device API recording every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.script: list[httpx.Response] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.script:
            return self.script.pop(0)
        return httpx.Response(200, json={"status": "ok", "call": len(self.requests)})


class FlakyStore(InMemoryKeyValueStore):
    """In-memory store that fails every call while down."""

    def __init__(self) -> None:
        super().__init__()
        self.down = True

    def _check(self) -> None:
        if self.down:
            raise StoreUnavailableError("store unreachable")

    async def get(self, path: str):
        self._check()
        return await super().get(path)

    async def set(self, path: str, value) -> None:
        self._check()
        await super().set(path, value)

    async def set_if_absent(self, path: str, value) -> bool:
        self._check()
        return await super().set_if_absent(path, value)


def failure(status: int, code: str) -> httpx.Response:
    return httpx.Response(status, json={"code": code, "error": code.lower()})


@pytest.fixture
def api() -> DeviceApi:
    return DeviceApi()


@pytest.fixture
def make_executor(api: DeviceApi, store: InMemoryKeyValueStore, clock, recording_sleep):
    counter = itertools.count(1)

    def _make(limits: dict[str, RateLimitConfig] | None = None) -> DeviceCommandExecutor:
        return DeviceCommandExecutor(
            retry_client=RetryClient(
                httpx.AsyncClient(transport=httpx.MockTransport(api)),
                sleep=recording_sleep,
                rng=lambda: 0.5,
            ),
            idempotency=IdempotencyManager(
                store, clock=clock, key_factory=lambda: f"key-{next(counter)}"
            ),
            dedup=DeduplicationManager(clock=clock),
            rate_limiter=RateLimiter(store, clock=clock, limits=limits),
            cache=CacheAside(store, clock=clock),
        )

    return _make


@pytest.fixture
def executor(make_executor) -> DeviceCommandExecutor:
    return make_executor()


async def ignite(executor: DeviceCommandExecutor, power: int = 3):
    return await executor.execute(
        "stove",
        "ignite",
        IGNITE_URL,
        body={"power": power},
        user_id="user-1",
        endpoint_key="stove",
    )


class TestExecute:
    """Tests for DeviceCommandExecutor.execute."""

    @pytest.mark.asyncio
    async def test_success(self, executor: DeviceCommandExecutor, api: DeviceApi) -> None:
        outcome = await ignite(executor)

        assert outcome.ok
        assert outcome.status is CommandStatus.EXECUTED
        assert outcome.attempts == 1
        assert outcome.response is not None
        assert outcome.response.json()["status"] == "ok"
        assert api.requests[0].headers["Idempotency-Key"] == outcome.idempotency_key
        assert executor.last_error is None

    @pytest.mark.asyncio
    async def test_retries_carry_same_key(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        api.script = [failure(500, "STOVE_TIMEOUT"), failure(503, "SERVICE_UNAVAILABLE")]

        outcome = await ignite(executor)

        assert outcome.status is CommandStatus.EXECUTED
        assert outcome.attempts == 3
        keys = {r.headers["Idempotency-Key"] for r in api.requests}
        assert keys == {outcome.idempotency_key}

    @pytest.mark.asyncio
    async def test_extra_headers_are_kept(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        await executor.execute(
            "lights",
            "on",
            "https://bridge.example/api/lights/1",
            body={"on": True},
            user_id="user-1",
            endpoint_key="lights",
            method="PUT",
            headers={"Authorization": "Bearer abc"},
        )

        assert api.requests[0].method == "PUT"
        assert api.requests[0].headers["Authorization"] == "Bearer abc"
        assert "Idempotency-Key" in api.requests[0].headers

    @pytest.mark.asyncio
    async def test_double_tap_is_suppressed(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        api.gate = asyncio.Event()

        first = asyncio.create_task(ignite(executor))
        await asyncio.sleep(0)
        second = await ignite(executor)
        api.gate.set()
        first_outcome = await first

        assert second.status is CommandStatus.DUPLICATE
        assert first_outcome.status is CommandStatus.EXECUTED
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_completed_command_can_be_sent_again(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        """The dedup guard is released once the command finishes."""
        first = await ignite(executor)
        second = await ignite(executor)

        assert first.ok and second.ok
        assert len(api.requests) == 2
        # Same fingerprint within the TTL reuses the key
        assert first.idempotency_key == second.idempotency_key

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        api.script = [failure(409, "MAINTENANCE_REQUIRED")]

        outcome = await ignite(executor)

        assert outcome.status is CommandStatus.FAILED
        assert outcome.attempts == 1
        assert isinstance(outcome.error, DeviceCommandError)
        assert outcome.error.code == "MAINTENANCE_REQUIRED"
        assert len(api.requests) == 1
        assert executor.last_error is outcome.error
        assert "Maintenance" in user_message(executor.last_error)

    @pytest.mark.asyncio
    async def test_exhausted_retries(
        self, executor: DeviceCommandExecutor, api: DeviceApi, recording_sleep
    ) -> None:
        api.script = [failure(503, "SERVICE_UNAVAILABLE")] * 3

        outcome = await ignite(executor)

        assert outcome.status is CommandStatus.FAILED
        assert outcome.attempts == 3
        assert isinstance(outcome.error, RetryError)
        assert executor.attempt_count == 3
        assert len(recording_sleep.delays) == 2
        assert user_message(outcome.error) == RETRY_EXHAUSTED_MESSAGE

    @pytest.mark.asyncio
    async def test_rate_limited_command_is_not_sent(
        self, make_executor, api: DeviceApi
    ) -> None:
        executor = make_executor({"stove": RateLimitConfig(window_minutes=1, max_per_window=1)})

        first = await ignite(executor, power=1)
        second = await ignite(executor, power=2)

        assert first.ok
        assert second.status is CommandStatus.RATE_LIMITED
        assert isinstance(second.error, RateLimitedError)
        assert 0 < second.next_allowed_in_ms <= 60_000
        assert len(api.requests) == 1


class TestStoreUnavailable:
    """A store outage during key registration stops the command."""

    @pytest.mark.asyncio
    async def test_command_not_sent_without_key(
        self, api: DeviceApi, clock, recording_sleep
    ) -> None:
        store = FlakyStore()
        executor = DeviceCommandExecutor(
            retry_client=RetryClient(
                httpx.AsyncClient(transport=httpx.MockTransport(api)),
                sleep=recording_sleep,
                rng=lambda: 0.5,
            ),
            idempotency=IdempotencyManager(store, clock=clock),
            dedup=DeduplicationManager(clock=clock),
            rate_limiter=RateLimiter(store, clock=clock),
            cache=CacheAside(store, clock=clock),
        )

        with pytest.raises(StoreUnavailableError):
            await ignite(executor)

        assert api.requests == []

        # The dedup entry was released, so the next tap is a new command
        store.down = False
        outcome = await ignite(executor)

        assert outcome.status is CommandStatus.EXECUTED
        assert len(api.requests) == 1


class TestManualRetry:
    """Tests for retry_last and clear_error."""

    @pytest.mark.asyncio
    async def test_retry_last_resends_failed_command(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        api.script = [failure(409, "STOVE_OFFLINE")]
        failed = await ignite(executor)

        outcome = await executor.retry_last()

        assert outcome is not None
        assert outcome.ok
        assert outcome.idempotency_key == failed.idempotency_key
        assert executor.last_error is None
        assert await executor.retry_last() is None

    @pytest.mark.asyncio
    async def test_retry_last_without_failure(self, executor: DeviceCommandExecutor) -> None:
        assert await executor.retry_last() is None

    @pytest.mark.asyncio
    async def test_clear_error(self, executor: DeviceCommandExecutor, api: DeviceApi) -> None:
        api.script = [failure(400, "VALIDATION_ERROR")]
        await ignite(executor)

        executor.clear_error()

        assert executor.last_error is None
        assert executor.attempt_count == 0
        assert await executor.retry_last() is None


class TestPoll:
    """Tests for cached, rate-limited reads."""

    @pytest.mark.asyncio
    async def test_second_poll_served_from_cache(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        first = await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)
        second = await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        assert first.source == "api"
        assert second.source == "cache"
        assert second.data == first.data
        assert len(api.requests) == 1
        assert api.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_refresh_forces_fetch(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        await executor.refresh("devices:user-1")
        result = await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        assert result.source == "api"
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limited_poll_raises(self, make_executor, api: DeviceApi) -> None:
        executor = make_executor({"devices": RateLimitConfig(window_minutes=1, max_per_window=1)})
        await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        with pytest.raises(RateLimitedError) as exc_info:
            await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        assert exc_info.value.next_allowed_in_ms > 0
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_failed_poll_is_not_cached(
        self, executor: DeviceCommandExecutor, api: DeviceApi
    ) -> None:
        api.script = [failure(401, "UNAUTHORIZED")]

        with pytest.raises(DeviceCommandError):
            await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)

        result = await executor.poll("user-1", "devices", "devices:user-1", DEVICES_URL)
        assert result.source == "api"


class TestUserMessage:
    def test_rate_limited(self) -> None:
        assert "Too many requests" in user_message(RateLimitedError("slow down", 1000))

    def test_unknown_exception(self) -> None:
        assert user_message(ValueError("boom")) == "Command failed. Try again."
