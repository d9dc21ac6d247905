"""
Redis storage adapter.

Redis is authoritative for records and locks. The local dict only serves
reads when Redis itself cannot be read; writes never fall back to it.
"""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError, WatchError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..ports import OptimisticOutcome, RecordMutation, StorageCoordinator
from ...config import get_settings
from ...contracts import ClaimKey, TicketClaimRecord
from ...errors import StorageError


class RemoteCoordinatedStore(StorageCoordinator):
    """
    Claim store shared by every bot process pointing at the same Redis.

    Handles:
    - Lock acquisition with SET NX EX
    - Watched MULTI/EXEC transactions for optimistic updates
    - Last-known-value reads while Redis is unreachable
    """

    is_distributed = True

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        db: int | None = None,
        password: str | None = None,
        connect_timeout: float | None = None,
        operation_timeout: float | None = None,
        optimistic_attempts: int | None = None,
        client: Optional[aioredis.Redis] = None,
    ):
        """
        Initialize the adapter. No connection is made until first use.

        Args:
            host: Redis host. Defaults to settings.
            port: Redis port. Defaults to settings.
            db: Database index. Defaults to settings.
            password: Redis password. Defaults to settings.
            connect_timeout: Connect timeout in seconds. Defaults to settings.
            operation_timeout: Per-command timeout in seconds. Defaults to settings.
            optimistic_attempts: Watched transaction attempts. Defaults to settings.
            client: Pre-built client, mainly for tests.
        """
        settings = get_settings()
        self._host = host or settings.REDIS_HOST
        self._port = port or settings.REDIS_PORT
        self._db = settings.REDIS_DB if db is None else db
        self._password = password or settings.REDIS_PASSWORD
        self._connect_timeout = connect_timeout or settings.REDIS_CONNECT_TIMEOUT_SECONDS
        self._operation_timeout = operation_timeout or settings.REDIS_OPERATION_TIMEOUT_SECONDS
        self._optimistic_attempts = optimistic_attempts or settings.CLAIM_OPTIMISTIC_ATTEMPTS
        self._client = client
        self._cache: Dict[str, TicketClaimRecord] = {}

    @property
    def endpoint(self) -> str:
        return f"{self._host}:{self._port}"

    def _get_client(self) -> aioredis.Redis:
        """Get or create the Redis client."""
        if self._client is None:
            self._client = aioredis.Redis(
                host=self._host,
                port=self._port,
                db=self._db,
                password=self._password,
                socket_connect_timeout=self._connect_timeout,
                socket_timeout=self._operation_timeout,
                decode_responses=True,
            )
            logger.info(f"Initialized Redis client: {self.endpoint}")
        return self._client

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        """Translate Redis and socket failures into StorageError."""
        try:
            yield
        except (RedisError, OSError) as e:
            logger.error(f"Redis {operation} failed on {self.endpoint}: {e}")
            raise StorageError(f"Redis {operation} failed: {e}", endpoint=self.endpoint) from e

    async def get(self, key: ClaimKey) -> Optional[TicketClaimRecord]:
        client = self._get_client()
        try:
            raw = await client.get(key.record_key)
        except (RedisError, OSError) as e:
            cached = self._cache.get(key.record_key)
            if cached is None:
                logger.error(f"Redis read failed for {key} with nothing cached: {e}")
                raise StorageError(f"Redis read failed: {e}", endpoint=self.endpoint) from e
            logger.warning(f"Redis read failed for {key}, serving last known record: {e}")
            return cached

        if raw is None:
            self._cache.pop(key.record_key, None)
            return None

        record = TicketClaimRecord.from_json(key.record_key, raw)
        self._cache[key.record_key] = record
        return record

    async def put(self, key: ClaimKey, record: TicketClaimRecord) -> None:
        client = self._get_client()
        with self._storage_errors("write"):
            await client.set(key.record_key, record.to_json())
        self._cache[key.record_key] = record

    async def acquire_lock(self, key: ClaimKey, holder: str, ttl_seconds: int) -> bool:
        client = self._get_client()
        with self._storage_errors("lock acquire"):
            created = await client.set(key.lock_key, holder, ex=ttl_seconds, nx=True)
        return bool(created)

    async def release_lock(self, key: ClaimKey) -> None:
        client = self._get_client()
        with self._storage_errors("lock release"):
            await client.delete(key.lock_key)

    async def lock_holder(self, key: ClaimKey) -> Optional[str]:
        client = self._get_client()
        with self._storage_errors("lock read"):
            return await client.get(key.lock_key)

    async def optimistic_update(
        self,
        key: ClaimKey,
        mutate: RecordMutation,
        *,
        release_lock: bool = False,
    ) -> OptimisticOutcome:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._optimistic_attempts),
            retry=retry_if_exception_type(WatchError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    updated = await self._watched_write(key, mutate, release_lock)
        except WatchError:
            logger.info(
                f"Record {key} kept changing during {self._optimistic_attempts} "
                "watched attempts, reporting latest state"
            )
            return OptimisticOutcome(committed=False, record=await self.get(key))
        except (RedisError, OSError) as e:
            logger.error(f"Redis transaction failed on {self.endpoint}: {e}")
            raise StorageError(f"Redis transaction failed: {e}", endpoint=self.endpoint) from e

        return OptimisticOutcome(committed=True, record=updated)

    async def _watched_write(
        self,
        key: ClaimKey,
        mutate: RecordMutation,
        release_lock: bool,
    ) -> TicketClaimRecord:
        """One WATCH / read / MULTI / EXEC round. Raises WatchError on conflict."""
        client = self._get_client()
        async with client.pipeline(transaction=True) as pipe:
            await pipe.watch(key.record_key)
            raw = await pipe.get(key.record_key)
            current = None if raw is None else TicketClaimRecord.from_json(key.record_key, raw)

            updated = mutate(current)

            pipe.multi()
            pipe.set(key.record_key, updated.to_json())
            if release_lock:
                pipe.delete(key.lock_key)
            await pipe.execute()

        self._cache[key.record_key] = updated
        return updated

    async def ping(self) -> bool:
        try:
            return bool(await self._get_client().ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed on {self.endpoint}: {e}")
            return False

    def describe(self) -> str:
        return f"redis://{self.endpoint}/{self._db}"

    async def close(self) -> None:
        """Close the Redis client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
