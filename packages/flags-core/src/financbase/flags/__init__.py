"""Feature flags — targeting rules, stable rollout buckets, evaluation."""

from financbase.flags.context import EvaluationContext
from financbase.flags.errors import (
    EvaluationUnavailable,
    FlagAlreadyExistsError,
    FlagError,
    FlagNotFoundError,
    InvalidRuleError,
    StoreUnavailable,
)
from financbase.flags.evaluator import FlagEvaluator, evaluate_flag
from financbase.flags.models import ErrorKind, EvaluationReason, FeatureFlag, FlagEvaluation
from financbase.flags.rules import (
    AttributeOperator,
    AttributeRule,
    OrganizationRule,
    PercentageRule,
    PlanRule,
    RuleType,
    TargetingRule,
    UserRule,
    rule_from_dict,
)
from financbase.flags.service import FlagService
from financbase.flags.store import FlagRepository, FlagStore, InMemoryFlagStore

__all__ = [
    "AttributeOperator",
    "AttributeRule",
    "ErrorKind",
    "EvaluationContext",
    "EvaluationReason",
    "EvaluationUnavailable",
    "FeatureFlag",
    "FlagAlreadyExistsError",
    "FlagError",
    "FlagEvaluation",
    "FlagEvaluator",
    "FlagNotFoundError",
    "FlagRepository",
    "FlagService",
    "FlagStore",
    "InMemoryFlagStore",
    "InvalidRuleError",
    "OrganizationRule",
    "PercentageRule",
    "PlanRule",
    "RuleType",
    "StoreUnavailable",
    "TargetingRule",
    "UserRule",
    "evaluate_flag",
    "rule_from_dict",
]
