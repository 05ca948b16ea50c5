"""Flag service — management operations plus evaluation over one repository.

Writes go to the repository and then invalidate the cache entry for the key,
so the next evaluation on this worker sees the new definition. Other workers
see it once their cache TTL expires.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from financbase.flags.context import EvaluationContext
from financbase.flags.errors import FlagNotFoundError
from financbase.flags.evaluator import FlagEvaluator
from financbase.flags.models import FeatureFlag, FlagEvaluation
from financbase.flags.store import FlagRepository

logger = logging.getLogger(__name__)


class FlagCache(Protocol):
    async def get_flag(self, key: str) -> FeatureFlag | None: ...

    async def invalidate(self, key: str) -> None: ...

    async def close(self) -> None: ...


class FlagService:
    def __init__(
        self,
        repository: FlagRepository,
        cache: FlagCache | None = None,
        lookup_timeout: float | None = None,
        fail_open: bool = False,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.fail_open = fail_open
        self.evaluator = FlagEvaluator(cache if cache is not None else repository, lookup_timeout=lookup_timeout)

    async def list_flags(self) -> list[FeatureFlag]:
        return await self.repository.list_flags()

    async def get_flag(self, key: str) -> FeatureFlag | None:
        return await self.repository.get_flag(key)

    async def require_flag(self, key: str) -> FeatureFlag:
        flag = await self.repository.get_flag(key)
        if flag is None:
            raise FlagNotFoundError(key)
        return flag

    async def create_flag(self, flag: FeatureFlag, created_by: str | None = None) -> FeatureFlag:
        created = await self.repository.create_flag(flag, created_by=created_by)
        await self._invalidate(flag.key)
        return created

    async def update_flag(self, key: str, **changes: Any) -> FeatureFlag:
        updated = await self.repository.update_flag(key, **changes)
        await self._invalidate(key)
        return updated

    async def delete_flag(self, key: str) -> bool:
        deleted = await self.repository.delete_flag(key)
        await self._invalidate(key)
        return deleted

    async def enable_flag(self, key: str) -> FeatureFlag:
        flag = await self.repository.set_enabled(key, True)
        await self._invalidate(key)
        return flag

    async def disable_flag(self, key: str) -> FeatureFlag:
        flag = await self.repository.set_enabled(key, False)
        await self._invalidate(key)
        return flag

    async def evaluate(self, key: str, context: EvaluationContext) -> FlagEvaluation:
        """Detailed evaluation; raises EvaluationUnavailable when the store is down."""
        return await self.evaluator.evaluate_detailed(key, context)

    async def is_enabled(self, key: str, context: EvaluationContext) -> bool:
        """Evaluation with the configured fail-open/fail-closed policy applied."""
        return await self.evaluator.is_enabled(key, context, default=self.fail_open)

    async def close(self) -> None:
        """Release the cache and repository connections."""
        if self.cache is not None:
            await self.cache.close()
        await self.repository.close()
        logger.info("Flag service closed")

    async def _invalidate(self, key: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate(key)
