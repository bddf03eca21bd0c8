"""Cross-instance idempotency keys for device commands.

A key is issued per (endpoint, canonical body) fingerprint and reused for
the lifetime of the key, so a retried "ignite" carries the same
Idempotency-Key header and the receiving handler can answer the replay
without igniting twice.

Store layout:
    idempotency/keys/{key}      IdempotencyKeyRecord
    idempotency/lookup/{hash}   LookupRecord (fingerprint -> key)
"""

import hashlib
import json
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from hearth.config.models.resilience import IdempotencyConfig
from hearth.kv.store import KeyValueStore, join_path
from hearth.observability.logging import get_logger
from hearth.observability.metrics import IDEMPOTENCY_KEYS, IDEMPOTENCY_SWEPT
from hearth.resilience.models import IdempotencyKeyRecord, LookupRecord
from hearth.utils.clock import Clock, SystemClock

logger = get_logger(__name__)

KEYS_PATH = "idempotency/keys"
LOOKUP_PATH = "idempotency/lookup"


def canonical_json(body: Any) -> str:
    """Serialize body with sorted keys and no insignificant whitespace."""
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def fingerprint(endpoint: str, body: Any) -> str:
    """Stable SHA-256 of the endpoint and canonicalized body."""
    content = f"{endpoint}\n{canonical_json(body)}"
    return hashlib.sha256(content.encode()).hexdigest()


class IdempotencyManager:
    """Issues and reuses idempotency keys through the shared store.

    Registration is a check-and-set on the lookup record, so two instances
    racing on the same fingerprint converge on one key when the store
    supports conditional writes. Store errors propagate: a command must not
    be sent without a key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        config: IdempotencyConfig | None = None,
        key_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Shared key-value store
            clock: Time source (system clock if omitted)
            config: Key TTL and header name
            key_factory: Key generator (UUIDv4 if omitted)
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or IdempotencyConfig()
        self._key_factory = key_factory or (lambda: str(uuid4()))

    @property
    def header_name(self) -> str:
        return self._config.header_name

    def generate_key(self) -> str:
        """Mint a fresh UUIDv4 key."""
        return self._key_factory()

    async def register_key(self, endpoint: str, body: Any) -> str:
        """Return the live key for (endpoint, body), minting one if needed.

        Calling this twice within the TTL returns the same key; after the
        key expires a new one is issued.
        """
        body_hash = fingerprint(endpoint, body)
        lookup_path = join_path(LOOKUP_PATH, body_hash)
        now = self._clock.now_ms()

        existing = await self._read_lookup(lookup_path)
        if existing is not None:
            if now <= existing.expires_at:
                IDEMPOTENCY_KEYS.labels(result="reused").inc()
                logger.debug("idempotency_key_reused", endpoint=endpoint, key=existing.key)
                return existing.key
            # Expired: drop the stale pair so the conditional write can succeed
            await self._store.remove(lookup_path)
            await self._store.remove(join_path(KEYS_PATH, existing.key))

        record = IdempotencyKeyRecord(
            key=self.generate_key(),
            endpoint=endpoint,
            body_hash=body_hash,
            created_at=now,
            expires_at=now + self._config.ttl_ms,
        )
        lookup = LookupRecord(key=record.key, expires_at=record.expires_at)
        key_path = join_path(KEYS_PATH, record.key)

        # Every lookup has a key record, so cleanup_expired can reach it
        await self._store.set(key_path, record.to_store())

        if not await self._store.set_if_absent(lookup_path, lookup.to_store()):
            winner = await self._read_lookup(lookup_path)
            if winner is not None:
                await self._store.remove(key_path)
                IDEMPOTENCY_KEYS.labels(result="reused").inc()
                logger.info(
                    "idempotency_registration_race_lost",
                    endpoint=endpoint,
                    key=winner.key,
                )
                return winner.key
            # Winner vanished between the two reads; take the slot
            await self._store.set(lookup_path, lookup.to_store())

        IDEMPOTENCY_KEYS.labels(result="issued").inc()
        logger.info(
            "idempotency_key_issued",
            endpoint=endpoint,
            key=record.key,
            expires_at=record.expires_at,
        )
        return record.key

    async def cleanup_expired(self) -> int:
        """Delete every key record (and its lookup) with ``now > expiresAt``.

        Intended for a periodic sweep, not per request.

        Returns:
            Number of key records removed
        """
        now = self._clock.now_ms()
        records = await self._store.list_children(KEYS_PATH)
        removed = 0

        for key, raw in records.items():
            try:
                record = IdempotencyKeyRecord.model_validate(raw)
            except ValidationError:
                logger.warning("idempotency_record_corrupted", key=key)
                continue
            if now <= record.expires_at:
                continue

            lookup_path = join_path(LOOKUP_PATH, record.body_hash)
            lookup = await self._read_lookup(lookup_path)
            # Only drop the lookup if it still points at this key
            if lookup is not None and lookup.key == record.key:
                await self._store.remove(lookup_path)
            await self._store.remove(join_path(KEYS_PATH, key))
            removed += 1

        if removed:
            IDEMPOTENCY_SWEPT.inc(removed)
        logger.info("idempotency_cleanup_completed", removed=removed, scanned=len(records))
        return removed

    async def _read_lookup(self, lookup_path: str) -> LookupRecord | None:
        raw = await self._store.get(lookup_path)
        if raw is None:
            return None
        try:
            return LookupRecord.model_validate(raw)
        except ValidationError:
            logger.warning("idempotency_lookup_corrupted", path=lookup_path)
            return None
