"""Evaluation context — caller-supplied facts about the request.

Built explicitly by the caller (usually from the authenticated session) and
passed into evaluation. Never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

Scalar = Union[str, int, float, bool]

# Attribute names that resolve to built-in context fields when a rule's key
# is not present in custom_attributes.
_BUILTIN_ATTRIBUTES = {
    "userId": "user_id",
    "user_id": "user_id",
    "organizationId": "organization_id",
    "organization_id": "organization_id",
    "plan": "plan",
    "region": "region",
    "accountAgeDays": "account_age_days",
    "account_age_days": "account_age_days",
}

_MISSING = object()


@dataclass(frozen=True)
class EvaluationContext:
    user_id: str | None = None
    organization_id: str | None = None
    plan: str | None = None
    region: str | None = None
    account_age_days: int | None = None
    custom_attributes: dict[str, Scalar] = field(default_factory=dict)

    @property
    def identity(self) -> str | None:
        """Bucketing identity: user id, else organization id, else None."""
        if self.user_id:
            return self.user_id
        if self.organization_id:
            return self.organization_id
        return None

    def attribute(self, key: str, default: Any = _MISSING) -> Any:
        if key in self.custom_attributes:
            return self.custom_attributes[key]
        field_name = _BUILTIN_ATTRIBUTES.get(key)
        if field_name is not None:
            value = getattr(self, field_name)
            if value is not None:
                return value
        if default is _MISSING:
            raise KeyError(key)
        return default

    def has_attribute(self, key: str) -> bool:
        return self.attribute(key, None) is not None
