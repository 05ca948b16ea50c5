"""Redis manager for the flag definition cache.

Key patterns:
  - financbase:flag:{flag_key}   — serialized flag definition (JSON)
  - financbase:flag:{flag_key} = "null" marks a known-missing flag

One pool per manager; values are stored with EX so a stale definition
disappears on its own after the TTL.
"""

from __future__ import annotations

from dataclasses import dataclass

import redis.asyncio as aioredis


@dataclass
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    db: int = 0
    max_connections: int = 20
    key_prefix: str = "financbase"


class RedisManager:
    """Owns the Redis connection pool used for flag caching."""

    def __init__(self, config: RedisConfig) -> None:
        self.config = config
        self._client: aioredis.Redis | None = None

    def get_url(self) -> str:
        auth = f":{self.config.password}@" if self.config.password else ""
        return f"redis://{auth}{self.config.host}:{self.config.port}/{self.config.db}"

    async def get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.get_url(),
                max_connections=self.config.max_connections,
                decode_responses=False,
            )
        return self._client

    def build_flag_key(self, flag_key: str) -> str:
        return f"{self.config.key_prefix}:flag:{flag_key}"

    async def flag_set(self, flag_key: str, payload: str, ttl_seconds: int = 30) -> None:
        client = await self.get_client()
        await client.set(self.build_flag_key(flag_key), payload, ex=ttl_seconds)

    async def flag_get(self, flag_key: str) -> bytes | None:
        client = await self.get_client()
        return await client.get(self.build_flag_key(flag_key))

    async def flag_delete(self, flag_key: str) -> None:
        client = await self.get_client()
        await client.delete(self.build_flag_key(flag_key))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
