"""Tests for flag evaluation — kill switch, rule precedence, rollout."""

import asyncio

import pytest

from financbase.flags.bucketing import bucket_for
from financbase.flags.context import EvaluationContext
from financbase.flags.errors import EvaluationUnavailable
from financbase.flags.evaluator import FlagEvaluator, evaluate_flag
from financbase.flags.models import ErrorKind, EvaluationReason, FeatureFlag
from financbase.flags.rules import (
    AttributeRule,
    OrganizationRule,
    PercentageRule,
    PlanRule,
    UserRule,
)
from financbase.flags.store import InMemoryFlagStore

USER_IDS = [f"user-{i}" for i in range(300)]


def _new_ui_flag() -> FeatureFlag:
    return FeatureFlag(
        key="new-ui",
        enabled=True,
        targeting_rules=[OrganizationRule(["org_42"]), PercentageRule(25)],
    )


class _FailingStore:
    async def get_flag(self, key):
        raise ConnectionError("database is down")


class _SlowStore:
    async def get_flag(self, key):
        await asyncio.sleep(1)
        return FeatureFlag(key=key, enabled=True)


class TestKillSwitch:
    def test_disabled_flag_ignores_rules(self):
        flag = FeatureFlag(key="beta", enabled=False, targeting_rules=[UserRule(["u1"])])
        result = evaluate_flag(flag, EvaluationContext(user_id="u1"))
        assert result.enabled is False
        assert result.reason == EvaluationReason.FLAG_DISABLED

    def test_disabled_flag_ignores_full_rollout(self):
        flag = FeatureFlag(key="beta", enabled=False, rollout_percentage=100)
        for user_id in USER_IDS[:20]:
            assert evaluate_flag(flag, EvaluationContext(user_id=user_id)).enabled is False

    def test_disabled_flag_for_every_context_shape(self):
        flag = FeatureFlag(
            key="beta",
            enabled=False,
            targeting_rules=[
                UserRule(["u1"]),
                OrganizationRule(["org-1"]),
                PlanRule(["enterprise"]),
                PercentageRule(100),
                AttributeRule("region", "equals", "eu"),
            ],
        )
        contexts = [
            EvaluationContext(),
            EvaluationContext(user_id="u1"),
            EvaluationContext(organization_id="org-1"),
            EvaluationContext(plan="enterprise", region="eu"),
        ]
        for ctx in contexts:
            assert evaluate_flag(flag, ctx).enabled is False


class TestUnknownFlag:
    def test_missing_flag_is_disabled(self):
        result = evaluate_flag(None, EvaluationContext(user_id="u1"), flag_key="does-not-exist")
        assert result.enabled is False
        assert result.flag_key == "does-not-exist"
        assert result.reason == EvaluationReason.FLAG_NOT_FOUND
        assert result.error_kind == ErrorKind.FLAG_NOT_FOUND

    async def test_evaluator_returns_false_for_unknown_key(self):
        evaluator = FlagEvaluator(InMemoryFlagStore())
        assert await evaluator.evaluate("does-not-exist", EvaluationContext(user_id="u1")) is False

    async def test_evaluator_surfaces_not_found_kind(self):
        evaluator = FlagEvaluator(InMemoryFlagStore())
        result = await evaluator.evaluate_detailed("does-not-exist", EvaluationContext())
        assert result.error_kind == ErrorKind.FLAG_NOT_FOUND


class TestRulePrecedence:
    def test_user_rule_wins_over_later_percentage(self):
        # A 0% rule never enrolls anyone; the earlier user rule must still win.
        flag = FeatureFlag(
            key="checkout-v2",
            enabled=True,
            targeting_rules=[UserRule(["u1"]), PercentageRule(0)],
        )
        result = evaluate_flag(flag, EvaluationContext(user_id="u1"))
        assert result.enabled is True
        assert result.reason == EvaluationReason.RULE_MATCH
        assert result.rule_index == 0

    def test_first_matching_rule_index_is_reported(self):
        flag = FeatureFlag(
            key="reports",
            enabled=True,
            targeting_rules=[UserRule(["someone-else"]), PlanRule(["pro"]), OrganizationRule(["org-1"])],
        )
        result = evaluate_flag(flag, EvaluationContext(user_id="u1", plan="pro", organization_id="org-1"))
        assert result.enabled is True
        assert result.rule_index == 1

    def test_org_match_short_circuits(self):
        result = evaluate_flag(_new_ui_flag(), EvaluationContext(organization_id="org_42"))
        assert result.enabled is True
        assert result.rule_index == 0

    def test_percentage_decides_when_org_does_not_match(self):
        ctx = EvaluationContext(user_id="u1", organization_id="org_99")
        expected = bucket_for("new-ui", "u1") < 25
        assert evaluate_flag(_new_ui_flag(), ctx).enabled is expected

    def test_no_rule_matched_is_disabled(self):
        flag = FeatureFlag(key="reports", enabled=True, targeting_rules=[PlanRule(["enterprise"])])
        result = evaluate_flag(flag, EvaluationContext(user_id="u1", plan="free"))
        assert result.enabled is False
        assert result.reason == EvaluationReason.NO_MATCH

    def test_attribute_rule_enrolls(self):
        flag = FeatureFlag(
            key="payroll-eu",
            enabled=True,
            targeting_rules=[AttributeRule("accountAgeDays", "greaterThan", 30)],
        )
        assert evaluate_flag(flag, EvaluationContext(user_id="u1", account_age_days=45)).enabled is True
        assert evaluate_flag(flag, EvaluationContext(user_id="u1", account_age_days=10)).enabled is False


class TestFallThrough:
    def test_enabled_without_rules_or_rollout_is_on_for_everyone(self):
        flag = FeatureFlag(key="global", enabled=True)
        for ctx in (EvaluationContext(), EvaluationContext(user_id="u1")):
            result = evaluate_flag(flag, ctx)
            assert result.enabled is True
            assert result.reason == EvaluationReason.FULLY_ENABLED

    def test_rollout_percentage_buckets_identity(self):
        flag = FeatureFlag(key="gradual", enabled=True, rollout_percentage=40)
        for user_id in USER_IDS[:50]:
            expected = bucket_for("gradual", user_id) < 40
            assert evaluate_flag(flag, EvaluationContext(user_id=user_id)).enabled is expected

    def test_rollout_applies_after_unmatched_rules(self):
        flag = FeatureFlag(
            key="gradual",
            enabled=True,
            rollout_percentage=100,
            targeting_rules=[PlanRule(["enterprise"])],
        )
        result = evaluate_flag(flag, EvaluationContext(user_id="u1", plan="free"))
        assert result.enabled is True
        assert result.reason == EvaluationReason.ROLLOUT

    def test_zero_rollout_enrolls_nobody(self):
        flag = FeatureFlag(key="dark-launch", enabled=True, rollout_percentage=0)
        assert not any(evaluate_flag(flag, EvaluationContext(user_id=u)).enabled for u in USER_IDS)

    def test_full_rollout_enrolls_anonymous(self):
        flag = FeatureFlag(key="gradual", enabled=True, rollout_percentage=100)
        assert evaluate_flag(flag, EvaluationContext()).enabled is True

    def test_partial_rollout_anonymous_is_invalid_context(self):
        flag = FeatureFlag(key="gradual", enabled=True, rollout_percentage=50)
        result = evaluate_flag(flag, EvaluationContext())
        assert result.enabled is False
        assert result.error_kind == ErrorKind.INVALID_CONTEXT

    def test_rollout_falls_back_to_organization_identity(self):
        flag = FeatureFlag(key="gradual", enabled=True, rollout_percentage=50)
        expected = bucket_for("gradual", "org-7") < 50
        assert evaluate_flag(flag, EvaluationContext(organization_id="org-7")).enabled is expected


class TestPercentageRule:
    def test_anonymous_context_is_not_enrolled(self):
        flag = FeatureFlag(key="beta", enabled=True, targeting_rules=[PercentageRule(100)])
        result = evaluate_flag(flag, EvaluationContext())
        assert result.enabled is False
        assert result.error_kind == ErrorKind.INVALID_CONTEXT

    def test_anonymous_context_still_reaches_later_rules(self):
        flag = FeatureFlag(
            key="beta",
            enabled=True,
            targeting_rules=[PercentageRule(100), PlanRule(["pro"])],
        )
        result = evaluate_flag(flag, EvaluationContext(plan="pro"))
        assert result.enabled is True
        assert result.rule_index == 1

    def test_deterministic_for_same_user(self):
        flag = FeatureFlag(key="beta", enabled=True, targeting_rules=[PercentageRule(50)])
        for user_id in USER_IDS[:50]:
            ctx = EvaluationContext(user_id=user_id)
            assert evaluate_flag(flag, ctx).enabled == evaluate_flag(flag, ctx).enabled

    def test_monotonic_as_percentage_grows(self):
        for p1, p2 in [(0, 10), (10, 25), (25, 40), (40, 99), (99, 100)]:
            low = FeatureFlag(key="beta", enabled=True, targeting_rules=[PercentageRule(p1)])
            high = FeatureFlag(key="beta", enabled=True, targeting_rules=[PercentageRule(p2)])
            for user_id in USER_IDS:
                ctx = EvaluationContext(user_id=user_id)
                if evaluate_flag(low, ctx).enabled:
                    assert evaluate_flag(high, ctx).enabled

    def test_monotonic_rollout_percentage(self):
        for p1, p2 in [(5, 6), (30, 60), (60, 95)]:
            low = FeatureFlag(key="gradual", enabled=True, rollout_percentage=p1)
            high = FeatureFlag(key="gradual", enabled=True, rollout_percentage=p2)
            enabled_low = {u for u in USER_IDS if evaluate_flag(low, EvaluationContext(user_id=u)).enabled}
            enabled_high = {u for u in USER_IDS if evaluate_flag(high, EvaluationContext(user_id=u)).enabled}
            assert enabled_low <= enabled_high


class TestFlagEvaluator:
    async def test_evaluate_reads_from_store(self):
        store = InMemoryFlagStore([FeatureFlag(key="beta", enabled=True, targeting_rules=[UserRule(["u1"])])])
        evaluator = FlagEvaluator(store)
        assert await evaluator.evaluate("beta", EvaluationContext(user_id="u1")) is True
        assert await evaluator.evaluate("beta", EvaluationContext(user_id="u2")) is False

    async def test_empty_key_rejected(self):
        evaluator = FlagEvaluator(InMemoryFlagStore())
        with pytest.raises(ValueError):
            await evaluator.evaluate("", EvaluationContext())

    async def test_store_failure_raises_unavailable(self):
        evaluator = FlagEvaluator(_FailingStore())
        with pytest.raises(EvaluationUnavailable) as exc_info:
            await evaluator.evaluate("beta", EvaluationContext(user_id="u1"))
        assert exc_info.value.flag_key == "beta"

    async def test_lookup_timeout_raises_unavailable(self):
        evaluator = FlagEvaluator(_SlowStore(), lookup_timeout=0.01)
        with pytest.raises(EvaluationUnavailable) as exc_info:
            await evaluator.evaluate("beta", EvaluationContext(user_id="u1"))
        assert "timed out" in str(exc_info.value)

    async def test_is_enabled_fails_closed_by_default(self):
        evaluator = FlagEvaluator(_FailingStore())
        assert await evaluator.is_enabled("beta", EvaluationContext(user_id="u1")) is False

    async def test_is_enabled_can_fail_open(self):
        evaluator = FlagEvaluator(_FailingStore())
        assert await evaluator.is_enabled("beta", EvaluationContext(user_id="u1"), default=True) is True

    async def test_concurrent_evaluations_agree(self):
        store = InMemoryFlagStore([FeatureFlag(key="beta", enabled=True, rollout_percentage=50)])
        evaluator = FlagEvaluator(store)
        ctx = EvaluationContext(user_id="u1")
        results = await asyncio.gather(*(evaluator.evaluate("beta", ctx) for _ in range(20)))
        assert len(set(results)) == 1
