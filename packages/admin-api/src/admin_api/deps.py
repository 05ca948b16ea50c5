"""Shared dependencies -- settings, sessions and the flag service."""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import FastAPI, Request

from admin_api.sessions import Principal, SessionRegistry
from financbase.config import FlagSettings
from financbase.db.engine import create_engine, get_session_factory
from financbase.db.models import Base
from financbase.db.repository import SqlFlagRepository
from financbase.flags.cache import RedisFlagCache, TTLFlagCache
from financbase.flags.service import FlagService
from financbase.redis.client import RedisManager

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> FlagSettings:
    return FlagSettings()


def get_session_registry(request: Request) -> SessionRegistry:
    """Return the app-wide registry, seeding it with the configured admin token."""
    registry = getattr(request.app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry()
        registry.register(get_settings().admin_token, Principal(user_id="admin", is_admin=True))
        request.app.state.sessions = registry
    return registry


async def build_flag_service(settings: FlagSettings) -> FlagService:
    """Wire repository, cache and evaluator from settings."""
    engine = create_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    repository = SqlFlagRepository(get_session_factory(engine), engine=engine)

    if settings.cache_backend == "redis":
        cache = RedisFlagCache(
            repository,
            RedisManager(settings.redis_config()),
            ttl_seconds=settings.cache_ttl_seconds,
        )
    elif settings.cache_backend == "memory":
        cache = TTLFlagCache(repository, ttl_seconds=settings.cache_ttl_seconds)
    else:
        cache = None

    logger.info("Flag service ready (cache=%s)", settings.cache_backend)
    return FlagService(
        repository,
        cache=cache,
        lookup_timeout=settings.lookup_timeout_seconds,
        fail_open=settings.fail_open,
    )


async def get_flag_service(request: Request) -> FlagService:
    service = getattr(request.app.state, "flag_service", None)
    if service is None:
        service = await build_flag_service(get_settings())
        request.app.state.flag_service = service
    return service


async def close_flag_service(app: FastAPI) -> None:
    """Dispose the flag service built by get_flag_service, if any."""
    service = getattr(app.state, "flag_service", None)
    if service is not None:
        await service.close()
        del app.state.flag_service
