"""Authenticated principals and the token -> principal registry."""
from __future__ import annotations

from dataclasses import dataclass, field

from financbase.flags.context import EvaluationContext, Scalar


@dataclass(frozen=True)
class Principal:
    user_id: str
    organization_id: str | None = None
    plan: str | None = None
    region: str | None = None
    account_age_days: int | None = None
    attributes: dict[str, Scalar] = field(default_factory=dict)
    is_admin: bool = False

    def evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(
            user_id=self.user_id,
            organization_id=self.organization_id,
            plan=self.plan,
            region=self.region,
            account_age_days=self.account_age_days,
            custom_attributes=dict(self.attributes),
        )


class SessionRegistry:
    """Maps bearer tokens to principals."""

    def __init__(self) -> None:
        self._sessions: dict[str, Principal] = {}

    def register(self, token: str, principal: Principal) -> None:
        self._sessions[token] = principal

    def revoke(self, token: str) -> None:
        self._sessions.pop(token, None)

    def resolve(self, token: str) -> Principal | None:
        return self._sessions.get(token)
