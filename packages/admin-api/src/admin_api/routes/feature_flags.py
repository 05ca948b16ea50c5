"""Feature flag management and check endpoints."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from admin_api.auth import get_principal, require_admin
from admin_api.deps import get_flag_service
from admin_api.sessions import Principal
from financbase.flags.models import FeatureFlag
from financbase.flags.rules import TargetingRule, rule_from_dict
from financbase.flags.service import FlagService

router = APIRouter(prefix="/api/feature-flags", tags=["feature-flags"])

FLAG_KEY_PATTERN = r"^[a-z0-9][a-z0-9._-]*$"

AttributeScalar = Union[str, int, float, bool]


# ── Request bodies ────────────────────────────────────────────────────────


class _RuleBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class UserRuleBody(_RuleBody):
    type: Literal["user"]
    user_ids: list[str] = Field(alias="userIds", min_length=1)


class OrganizationRuleBody(_RuleBody):
    type: Literal["organization"]
    organization_ids: list[str] = Field(alias="organizationIds", min_length=1)


class PlanRuleBody(_RuleBody):
    type: Literal["plan"]
    plans: list[str] = Field(min_length=1)


class PercentageRuleBody(_RuleBody):
    type: Literal["percentage"]
    value: int = Field(ge=0, le=100)


class AttributeRuleBody(_RuleBody):
    type: Literal["attribute"]
    key: str = Field(min_length=1)
    operator: Literal["equals", "notEquals", "greaterThan", "lessThan", "in", "notIn"]
    value: Union[list[AttributeScalar], AttributeScalar]


RuleBody = Annotated[
    Union[UserRuleBody, OrganizationRuleBody, PlanRuleBody, PercentageRuleBody, AttributeRuleBody],
    Field(discriminator="type"),
]


def _to_rules(bodies: list[Any]) -> list[TargetingRule]:
    return [rule_from_dict(body.model_dump(by_alias=True)) for body in bodies]


class FlagCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(min_length=1, max_length=128, pattern=FLAG_KEY_PATTERN)
    name: str | None = Field(default=None, max_length=256)
    description: str = ""
    enabled: bool = False
    rollout_percentage: int | None = Field(default=None, alias="rolloutPercentage", ge=0, le=100)
    targeting_rules: list[RuleBody] = Field(default_factory=list, alias="targetingRules")


class FlagUpdate(BaseModel):
    """Partial update -- only fields present in the body are changed."""
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    enabled: bool | None = None
    rollout_percentage: int | None = Field(default=None, alias="rolloutPercentage", ge=0, le=100)
    targeting_rules: list[RuleBody] | None = Field(default=None, alias="targetingRules")


# ── Endpoints ─────────────────────────────────────────────────────────────


@router.get("")
async def list_flags(
    _: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    """List every feature flag (admin only)."""
    flags = await service.list_flags()
    return {"success": True, "data": [f.to_dict() for f in flags]}


@router.post("", status_code=201)
async def create_flag(
    body: FlagCreate,
    principal: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    flag = FeatureFlag(
        key=body.key,
        name=body.name or body.key,
        description=body.description,
        enabled=body.enabled,
        rollout_percentage=body.rollout_percentage,
        targeting_rules=_to_rules(body.targeting_rules),
    )
    created = await service.create_flag(flag, created_by=principal.user_id)
    return {"success": True, "data": created.to_dict()}


@router.get("/check")
async def check_flag(
    key: str | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    service: FlagService = Depends(get_flag_service),
):
    """Evaluate one flag for the calling user.

    A store outage does not fail the request; the configured fail-open or
    fail-closed value is returned instead.
    """
    if not key:
        return JSONResponse(status_code=400, content={"error": "Feature flag key is required"})
    enabled = await service.is_enabled(key, principal.evaluation_context())
    return {"key": key, "enabled": enabled}


@router.get("/{key}")
async def get_flag(
    key: str,
    principal: Principal = Depends(get_principal),
    service: FlagService = Depends(get_flag_service),
):
    """Return a flag definition plus whether it is enabled for the caller."""
    flag = await service.require_flag(key)
    enabled = await service.is_enabled(key, principal.evaluation_context())
    return {"success": True, "data": {**flag.to_dict(), "enabledForUser": enabled}}


@router.patch("/{key}")
async def update_flag(
    key: str,
    body: FlagUpdate,
    _: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    changes = body.model_dump(exclude_unset=True, by_alias=False)
    if "targeting_rules" in changes:
        if body.targeting_rules is None:
            raise HTTPException(status_code=400, detail="targetingRules cannot be null")
        changes["targeting_rules"] = _to_rules(body.targeting_rules)
    for name in ("name", "enabled"):
        if name in changes and changes[name] is None:
            raise HTTPException(status_code=400, detail=f"{name} cannot be null")
    if changes.get("description", "") is None:
        changes["description"] = ""
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = await service.update_flag(key, **changes)
    return {"success": True, "data": updated.to_dict()}


@router.delete("/{key}")
async def delete_flag(
    key: str,
    _: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    if not await service.delete_flag(key):
        raise HTTPException(status_code=404, detail=f"Feature flag '{key}' not found")
    return {"success": True, "message": f"Feature flag '{key}' deleted successfully"}


@router.post("/{key}/enable")
async def enable_flag(
    key: str,
    _: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    flag = await service.enable_flag(key)
    return {"success": True, "data": flag.to_dict(), "message": f"Feature flag '{key}' enabled"}


@router.post("/{key}/disable")
async def disable_flag(
    key: str,
    _: Principal = Depends(require_admin),
    service: FlagService = Depends(get_flag_service),
):
    flag = await service.disable_flag(key)
    return {"success": True, "data": flag.to_dict(), "message": f"Feature flag '{key}' disabled"}
