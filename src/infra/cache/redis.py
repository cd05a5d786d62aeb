"""Redis implementation of LocalStatePort.

- One namespace per client session, so two users never share a cached
  "current user" object
- JSON values, optional TTL
- Losable: the cache only feeds context recovery
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

from src.ports.local_state import LocalStatePort


class RedisLocalStateStore(LocalStatePort):
    """Redis adapter implementing the LocalStatePort interface.

    Keys are stored as "<namespace>:<key>". The underlying client is shared
    between stores created with for_namespace(), so one connection pool
    serves every session in the process.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        *,
        namespace: str = "erp",
        client: aioredis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._client = client

    @property
    def namespace(self) -> str:
        return self._namespace

    def for_namespace(self, namespace: str) -> RedisLocalStateStore:
        """Return a store sharing this connection under another namespace."""
        if self._client is None:
            self._client = aioredis.from_url(self._redis_url, decode_responses=False)  # type: ignore[no-untyped-call]
        return RedisLocalStateStore(
            self._redis_url,
            namespace=namespace,
            client=self._client,
        )

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self._redis_url, decode_responses=False)  # type: ignore[no-untyped-call]
        return self._client

    async def put(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> None:
        client = await self._get_client()
        encoded = json.dumps(value).encode("utf-8")
        if ttl is not None:
            await client.set(self._key(key), encoded, ex=ttl)
        else:
            await client.set(self._key(key), encoded)

    async def get(self, key: str) -> Any | None:
        client = await self._get_client()
        raw = await client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def delete(self, key: str) -> None:
        client = await self._get_client()
        await client.delete(self._key(key))

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
