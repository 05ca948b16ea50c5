"""Read-through caches for flag definitions.

Evaluation itself never blocks on anything but the lookup; these wrappers
keep that lookup cheap. Both cache misses ("flag does not exist") too, so an
unknown key doesn't hit the database on every request.

  TTLFlagCache   — in-process, monotonic-clock TTL + LRU eviction
  RedisFlagCache — shared across workers, TTL via Redis EX
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass

from redis.exceptions import RedisError

from financbase.flags.models import FeatureFlag
from financbase.flags.store import FlagStore
from financbase.redis.client import RedisManager

logger = logging.getLogger(__name__)

_MISSING_MARKER = "null"


@dataclass
class _Entry:
    flag: FeatureFlag | None
    expires_at: float


class TTLFlagCache:
    def __init__(self, store: FlagStore, ttl_seconds: float = 30.0, max_entries: int = 1024) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._max = max_entries
        self._data: OrderedDict[str, _Entry] = OrderedDict()

    async def get_flag(self, key: str) -> FeatureFlag | None:
        entry = self._data.get(key)
        if entry is not None:
            if time.monotonic() <= entry.expires_at:
                self._data.move_to_end(key)
                return entry.flag
            del self._data[key]

        flag = await self._store.get_flag(key)
        self._put(key, flag)
        return flag

    def _put(self, key: str, flag: FeatureFlag | None) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = _Entry(flag=flag, expires_at=time.monotonic() + self._ttl)
        while len(self._data) > self._max:
            self._data.popitem(last=False)

    async def invalidate(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisFlagCache:
    def __init__(self, store: FlagStore, redis: RedisManager, ttl_seconds: int = 30) -> None:
        self._store = store
        self._redis = redis
        self._ttl = ttl_seconds

    async def get_flag(self, key: str) -> FeatureFlag | None:
        try:
            cached = await self._redis.flag_get(key)
        except RedisError:
            logger.warning("Redis unavailable reading flag %r, using store", key, exc_info=True)
            return await self._store.get_flag(key)

        if cached is not None:
            data = json.loads(cached)
            return FeatureFlag.from_dict(data) if data is not None else None

        flag = await self._store.get_flag(key)
        payload = json.dumps(flag.to_dict()) if flag is not None else _MISSING_MARKER
        try:
            await self._redis.flag_set(key, payload, ttl_seconds=self._ttl)
        except RedisError:
            logger.warning("Redis unavailable caching flag %r", key, exc_info=True)
        return flag

    async def invalidate(self, key: str) -> None:
        try:
            await self._redis.flag_delete(key)
        except RedisError:
            logger.warning("Redis unavailable invalidating flag %r", key, exc_info=True)

    async def close(self) -> None:
        await self._redis.close()
