"""SQL-backed flag repository.

Every method runs in its own session/transaction. Read failures are
re-raised as EvaluationUnavailable so evaluation callers see a single error
kind for "store down" whatever the backend.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from financbase.db.models import FeatureFlagRecord
from financbase.flags.errors import EvaluationUnavailable, FlagAlreadyExistsError, FlagNotFoundError
from financbase.flags.models import FeatureFlag
from financbase.flags.store import check_changes

logger = logging.getLogger(__name__)


class SqlFlagRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Set when this repository owns the engine and must dispose it.
        self._engine = engine

    async def get_flag(self, key: str) -> FeatureFlag | None:
        try:
            async with self._session_factory() as session:
                record = await self._find(session, key)
                return record.to_flag() if record else None
        except SQLAlchemyError as exc:
            logger.error("Failed to read feature flag %r: %s", key, exc)
            raise EvaluationUnavailable(key, str(exc)) from exc

    async def list_flags(self) -> list[FeatureFlag]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(FeatureFlagRecord).order_by(FeatureFlagRecord.key))
                return [record.to_flag() for record in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to list feature flags: %s", exc)
            raise EvaluationUnavailable("*", str(exc)) from exc

    async def create_flag(self, flag: FeatureFlag, created_by: str | None = None) -> FeatureFlag:
        async with self._session_factory() as session:
            async with session.begin():
                if await self._find(session, flag.key) is not None:
                    raise FlagAlreadyExistsError(flag.key)
                record = FeatureFlagRecord.from_flag(flag, created_by=created_by)
                session.add(record)
                try:
                    await session.flush()
                except IntegrityError:
                    raise FlagAlreadyExistsError(flag.key) from None
            logger.info("Created feature flag %r", flag.key)
            return record.to_flag()

    async def update_flag(self, key: str, **changes: Any) -> FeatureFlag:
        check_changes(changes)
        async with self._session_factory() as session:
            async with session.begin():
                record = await self._find(session, key)
                if record is None:
                    raise FlagNotFoundError(key)
                for name, value in changes.items():
                    if name == "targeting_rules":
                        record.targeting_rules_json = json.dumps([r.to_dict() for r in value])
                    else:
                        setattr(record, name, value)
                record.updated_at = datetime.now(timezone.utc)
            logger.info("Updated feature flag %r: %s", key, ", ".join(sorted(changes)))
            return record.to_flag()

    async def delete_flag(self, key: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(FeatureFlagRecord).where(FeatureFlagRecord.key == key)
                )
        deleted = result.rowcount > 0
        if deleted:
            logger.info("Deleted feature flag %r", key)
        return deleted

    async def set_enabled(self, key: str, enabled: bool) -> FeatureFlag:
        return await self.update_flag(key, enabled=enabled)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def _find(self, session: AsyncSession, key: str) -> FeatureFlagRecord | None:
        result = await session.execute(select(FeatureFlagRecord).where(FeatureFlagRecord.key == key))
        return result.scalar_one_or_none()
