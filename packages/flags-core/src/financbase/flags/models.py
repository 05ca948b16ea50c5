"""Feature flag definitions and evaluation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from financbase.flags.errors import InvalidRuleError
from financbase.flags.rules import TargetingRule, rule_from_dict


class EvaluationReason(Enum):
    FLAG_NOT_FOUND = "flag_not_found"
    FLAG_DISABLED = "flag_disabled"
    RULE_MATCH = "rule_match"
    ROLLOUT = "rollout"
    FULLY_ENABLED = "fully_enabled"
    NO_MATCH = "no_match"


class ErrorKind(Enum):
    FLAG_NOT_FOUND = "flag_not_found"
    INVALID_CONTEXT = "invalid_context"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_percentage(value: int | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise InvalidRuleError(f"rolloutPercentage must be an integer in 0..100, got {value!r}")


@dataclass
class FeatureFlag:
    key: str
    enabled: bool = False
    name: str = ""
    description: str = ""
    rollout_percentage: int | None = None  # 0-100, None = not set
    targeting_rules: list[TargetingRule] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.key:
            raise InvalidRuleError("Feature flag key must be a non-empty string")
        validate_percentage(self.rollout_percentage)
        if not self.name:
            self.name = self.key

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "rolloutPercentage": self.rollout_percentage,
            "targetingRules": [rule.to_dict() for rule in self.targeting_rules],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeatureFlag:
        """Build a flag from its camelCase wire shape.

        Timestamps are optional; missing ones default to now.
        """
        if "key" not in data:
            raise InvalidRuleError("Feature flag is missing 'key'")
        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise InvalidRuleError(f"'enabled' must be a boolean, got {enabled!r}")
        flag = cls(
            key=data["key"],
            enabled=enabled,
            name=data.get("name") or "",
            description=data.get("description") or "",
            rollout_percentage=data.get("rolloutPercentage"),
            targeting_rules=[rule_from_dict(r) for r in data.get("targetingRules") or []],
        )
        if data.get("createdAt"):
            flag.created_at = datetime.fromisoformat(data["createdAt"])
        if data.get("updatedAt"):
            flag.updated_at = datetime.fromisoformat(data["updatedAt"])
        return flag


@dataclass
class FlagEvaluation:
    flag_key: str
    enabled: bool
    reason: EvaluationReason
    rule_index: int | None = None
    error_kind: ErrorKind | None = None
