"""Flag evaluator — decides whether a feature is enabled for a context.

Decision order (first applicable step wins):
  1. Unknown flag key        -> disabled (FLAG_NOT_FOUND surfaced, not raised)
  2. enabled == False        -> disabled, regardless of targeting rules
  3. Targeting rules in order -> first match enables (OR semantics)
  4. Fall-through:
       rollout_percentage set  -> stable bucket < rollout_percentage
       no rules, no rollout    -> enabled for everyone
       otherwise               -> disabled

evaluate_flag() is pure. FlagEvaluator adds the single store lookup, which
is the only suspension point and may be bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging

from financbase.flags.bucketing import is_in_rollout
from financbase.flags.context import EvaluationContext
from financbase.flags.errors import EvaluationUnavailable
from financbase.flags.models import ErrorKind, EvaluationReason, FeatureFlag, FlagEvaluation
from financbase.flags.store import FlagStore

logger = logging.getLogger(__name__)


def evaluate_flag(
    flag: FeatureFlag | None,
    context: EvaluationContext,
    flag_key: str | None = None,
) -> FlagEvaluation:
    """Evaluate an already-fetched flag definition against a context."""
    if flag is None:
        return FlagEvaluation(
            flag_key=flag_key or "",
            enabled=False,
            reason=EvaluationReason.FLAG_NOT_FOUND,
            error_kind=ErrorKind.FLAG_NOT_FOUND,
        )

    key = flag.key
    if not flag.enabled:
        return FlagEvaluation(flag_key=key, enabled=False, reason=EvaluationReason.FLAG_DISABLED)

    error_kind = None
    for index, rule in enumerate(flag.targeting_rules):
        if rule.requires_identity and context.identity is None:
            error_kind = ErrorKind.INVALID_CONTEXT
            continue
        if rule.matches(key, context):
            return FlagEvaluation(
                flag_key=key,
                enabled=True,
                reason=EvaluationReason.RULE_MATCH,
                rule_index=index,
            )

    if flag.rollout_percentage is not None:
        if flag.rollout_percentage >= 100:
            return FlagEvaluation(flag_key=key, enabled=True, reason=EvaluationReason.ROLLOUT)
        identity = context.identity
        if identity is None:
            return FlagEvaluation(
                flag_key=key,
                enabled=False,
                reason=EvaluationReason.ROLLOUT,
                error_kind=ErrorKind.INVALID_CONTEXT,
            )
        return FlagEvaluation(
            flag_key=key,
            enabled=is_in_rollout(key, identity, flag.rollout_percentage),
            reason=EvaluationReason.ROLLOUT,
        )

    if not flag.targeting_rules:
        return FlagEvaluation(flag_key=key, enabled=True, reason=EvaluationReason.FULLY_ENABLED)

    return FlagEvaluation(
        flag_key=key,
        enabled=False,
        reason=EvaluationReason.NO_MATCH,
        error_kind=error_kind,
    )


class FlagEvaluator:
    """Evaluates flags by key, reading definitions from an injected store."""

    def __init__(self, store: FlagStore, lookup_timeout: float | None = None) -> None:
        self._store = store
        self._lookup_timeout = lookup_timeout

    async def _lookup(self, flag_key: str) -> FeatureFlag | None:
        try:
            if self._lookup_timeout is None:
                return await self._store.get_flag(flag_key)
            return await asyncio.wait_for(self._store.get_flag(flag_key), self._lookup_timeout)
        except EvaluationUnavailable:
            raise
        except asyncio.TimeoutError:
            raise EvaluationUnavailable(flag_key, f"lookup timed out after {self._lookup_timeout}s") from None
        except Exception as exc:
            raise EvaluationUnavailable(flag_key, str(exc)) from exc

    async def evaluate_detailed(self, flag_key: str, context: EvaluationContext) -> FlagEvaluation:
        if not flag_key:
            raise ValueError("flag_key must be a non-empty string")

        flag = await self._lookup(flag_key)
        result = evaluate_flag(flag, context, flag_key=flag_key)

        if result.error_kind == ErrorKind.FLAG_NOT_FOUND:
            logger.info("Feature flag %r not found, treating as disabled", flag_key)
        elif result.error_kind == ErrorKind.INVALID_CONTEXT:
            logger.debug("Feature flag %r: context has no identity for percentage targeting", flag_key)
        logger.debug(
            "Feature flag %r evaluated: enabled=%s reason=%s",
            flag_key, result.enabled, result.reason.value,
        )
        return result

    async def evaluate(self, flag_key: str, context: EvaluationContext) -> bool:
        """Return whether the flag is enabled; raises EvaluationUnavailable on store failure."""
        result = await self.evaluate_detailed(flag_key, context)
        return result.enabled

    async def is_enabled(
        self, flag_key: str, context: EvaluationContext, default: bool = False
    ) -> bool:
        """Like evaluate(), but returns `default` when the store is unavailable.

        default=False is fail-closed; pass True to fail open.
        """
        try:
            return await self.evaluate(flag_key, context)
        except EvaluationUnavailable as exc:
            logger.warning("%s; falling back to enabled=%s", exc, default)
            return default
