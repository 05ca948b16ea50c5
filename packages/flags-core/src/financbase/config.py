"""Feature flag service configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from financbase.redis.client import RedisConfig


class FlagSettings(BaseSettings):
    """All configuration loaded from FLAGS_* env vars or .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///data/flags.db"

    # Cache: "memory", "redis" or "none"
    cache_backend: str = "memory"
    cache_ttl_seconds: int = 30
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Evaluation
    lookup_timeout_seconds: float = 2.0
    fail_open: bool = False  # value returned by flag checks when the store is down

    # Admin API
    admin_token: str = "dev-token-change-me"
    admin_user_ids: str = ""  # comma-separated

    model_config = {
        "env_prefix": "FLAGS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def admin_ids(self) -> set[str]:
        if not self.admin_user_ids:
            return set()
        return {x.strip() for x in self.admin_user_ids.split(",") if x.strip()}

    def redis_config(self) -> RedisConfig:
        return RedisConfig(
            host=self.redis_host,
            port=self.redis_port,
            password=self.redis_password,
            db=self.redis_db,
        )
