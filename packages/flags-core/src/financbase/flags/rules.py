"""Targeting rules — individual enrollment conditions.

Rules are allow-only: a match enrolls the context into the feature, and the
only deny is the absence of a match. The evaluator walks rules in declared
order and stops at the first match.

Wire shape (camelCase, as stored and served over HTTP):
  {"type": "user", "userIds": [...]}
  {"type": "organization", "organizationIds": [...]}
  {"type": "plan", "plans": [...]}
  {"type": "percentage", "value": 0..100}
  {"type": "attribute", "key": "...", "operator": "equals", "value": ...}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from financbase.flags.bucketing import is_in_rollout
from financbase.flags.context import EvaluationContext
from financbase.flags.errors import InvalidRuleError


class RuleType(Enum):
    USER = "user"
    ORGANIZATION = "organization"
    PLAN = "plan"
    PERCENTAGE = "percentage"
    ATTRIBUTE = "attribute"


class AttributeOperator(Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IN = "in"
    NOT_IN = "notIn"


_LIST_OPERATORS = (AttributeOperator.IN, AttributeOperator.NOT_IN)


def _same_kind(actual: Any, expected: Any) -> bool:
    return isinstance(actual, bool) == isinstance(expected, bool)


def _id_set(values, field_name: str) -> frozenset[str]:
    if isinstance(values, str) or not hasattr(values, "__iter__"):
        raise InvalidRuleError(f"'{field_name}' must be a list of strings")
    return frozenset(str(v) for v in values)


class TargetingRule(ABC):
    """Base class for all targeting rules."""

    rule_type: RuleType
    # True when the rule can only be decided for a context with an identity.
    requires_identity: bool = False

    @abstractmethod
    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        ...

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetingRule):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"


class UserRule(TargetingRule):
    rule_type = RuleType.USER

    def __init__(self, user_ids) -> None:
        self.user_ids = _id_set(user_ids, "userIds")

    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        return context.user_id is not None and context.user_id in self.user_ids

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.rule_type.value, "userIds": sorted(self.user_ids)}


class OrganizationRule(TargetingRule):
    rule_type = RuleType.ORGANIZATION

    def __init__(self, organization_ids) -> None:
        self.organization_ids = _id_set(organization_ids, "organizationIds")

    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        return (
            context.organization_id is not None
            and context.organization_id in self.organization_ids
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.rule_type.value, "organizationIds": sorted(self.organization_ids)}


class PlanRule(TargetingRule):
    rule_type = RuleType.PLAN

    def __init__(self, plans) -> None:
        self.plans = _id_set(plans, "plans")

    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        return context.plan is not None and context.plan in self.plans

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.rule_type.value, "plans": sorted(self.plans)}


class PercentageRule(TargetingRule):
    rule_type = RuleType.PERCENTAGE
    requires_identity = True

    def __init__(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
            raise InvalidRuleError(f"Percentage must be an integer in 0..100, got {value!r}")
        self.value = value

    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        identity = context.identity
        if identity is None:
            return False
        return is_in_rollout(flag_key, identity, self.value)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.rule_type.value, "value": self.value}


class AttributeRule(TargetingRule):
    rule_type = RuleType.ATTRIBUTE

    def __init__(self, key: str, operator: AttributeOperator | str, value: Any) -> None:
        if not key:
            raise InvalidRuleError("Attribute rule requires a key")
        try:
            self.operator = AttributeOperator(operator)
        except ValueError:
            raise InvalidRuleError(f"Unknown attribute operator: {operator!r}") from None
        if self.operator in _LIST_OPERATORS:
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise InvalidRuleError(f"Operator '{self.operator.value}' requires a list value")
            value = tuple(value)
        self.key = key
        self.value = value

    def matches(self, flag_key: str, context: EvaluationContext) -> bool:
        if not context.has_attribute(self.key):
            return False
        actual = context.attribute(self.key)

        op = self.operator
        if op in _LIST_OPERATORS:
            candidates = [v for v in self.value if _same_kind(actual, v)]
            if not candidates:
                return False
            found = actual in candidates
            return found if op == AttributeOperator.IN else not found
        # bool is an int subclass; True must not compare equal to 1.
        if not _same_kind(actual, self.value):
            return False
        if op == AttributeOperator.EQUALS:
            return actual == self.value
        if op == AttributeOperator.NOT_EQUALS:
            return actual != self.value

        try:
            if op == AttributeOperator.GREATER_THAN:
                return actual > self.value
            return actual < self.value
        except TypeError:
            return False

    def to_dict(self) -> dict[str, Any]:
        value = list(self.value) if self.operator in _LIST_OPERATORS else self.value
        return {
            "type": self.rule_type.value,
            "key": self.key,
            "operator": self.operator.value,
            "value": value,
        }


def _require(data: dict[str, Any], name: str) -> Any:
    if name not in data:
        raise InvalidRuleError(f"Rule of type '{data.get('type')}' is missing '{name}'")
    return data[name]


def rule_from_dict(data: dict[str, Any]) -> TargetingRule:
    """Build a rule from its camelCase wire shape."""
    try:
        rule_type = RuleType(data.get("type"))
    except ValueError:
        raise InvalidRuleError(f"Unknown rule type: {data.get('type')!r}") from None

    if rule_type == RuleType.USER:
        return UserRule(_require(data, "userIds"))
    if rule_type == RuleType.ORGANIZATION:
        return OrganizationRule(_require(data, "organizationIds"))
    if rule_type == RuleType.PLAN:
        return PlanRule(_require(data, "plans"))
    if rule_type == RuleType.PERCENTAGE:
        return PercentageRule(_require(data, "value"))
    return AttributeRule(
        key=_require(data, "key"),
        operator=_require(data, "operator"),
        value=_require(data, "value"),
    )
