"""Flag stores — where flag definitions are read from.

FlagStore is the only thing the evaluator needs. FlagRepository adds the
management queries used by the admin API, one method per query.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Protocol

from financbase.flags.errors import FlagAlreadyExistsError, FlagNotFoundError, InvalidRuleError
from financbase.flags.models import FeatureFlag, validate_percentage

# Fields a caller may change through update_flag().
UPDATABLE_FIELDS = frozenset({"name", "description", "enabled", "rollout_percentage", "targeting_rules"})


class FlagStore(Protocol):
    async def get_flag(self, key: str) -> FeatureFlag | None: ...


class FlagRepository(FlagStore, Protocol):
    async def list_flags(self) -> list[FeatureFlag]: ...

    async def create_flag(self, flag: FeatureFlag, created_by: str | None = None) -> FeatureFlag: ...

    async def update_flag(self, key: str, **changes: Any) -> FeatureFlag: ...

    async def delete_flag(self, key: str) -> bool: ...

    async def set_enabled(self, key: str, enabled: bool) -> FeatureFlag: ...

    async def close(self) -> None: ...


def check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidRuleError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if "rollout_percentage" in changes:
        validate_percentage(changes["rollout_percentage"])


class InMemoryFlagStore:
    """Dict-backed flag store for tests and local development.

    Returns copies so callers can't mutate stored definitions in place.
    """

    def __init__(self, flags: list[FeatureFlag] | None = None) -> None:
        self._flags: dict[str, FeatureFlag] = {}
        for flag in flags or []:
            self._flags[flag.key] = flag

    async def get_flag(self, key: str) -> FeatureFlag | None:
        flag = self._flags.get(key)
        return copy.deepcopy(flag) if flag else None

    async def list_flags(self) -> list[FeatureFlag]:
        return [copy.deepcopy(f) for f in sorted(self._flags.values(), key=lambda f: f.key)]

    async def create_flag(self, flag: FeatureFlag, created_by: str | None = None) -> FeatureFlag:
        if flag.key in self._flags:
            raise FlagAlreadyExistsError(flag.key)
        self._flags[flag.key] = copy.deepcopy(flag)
        return copy.deepcopy(flag)

    async def update_flag(self, key: str, **changes: Any) -> FeatureFlag:
        flag = self._flags.get(key)
        if flag is None:
            raise FlagNotFoundError(key)
        check_changes(changes)
        for name, value in changes.items():
            setattr(flag, name, value)
        flag.updated_at = datetime.now(timezone.utc)
        return copy.deepcopy(flag)

    async def delete_flag(self, key: str) -> bool:
        return self._flags.pop(key, None) is not None

    async def set_enabled(self, key: str, enabled: bool) -> FeatureFlag:
        return await self.update_flag(key, enabled=enabled)

    async def close(self) -> None:
        pass
