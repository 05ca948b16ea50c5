"""SQLAlchemy models for feature flag persistence.

Targeting rules are stored as a JSON array in their camelCase wire shape;
rule order in the array is evaluation order.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import String, Text, Boolean, Integer, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from financbase.flags.models import FeatureFlag
from financbase.flags.rules import rule_from_dict


class Base(DeclarativeBase):
    pass


class FeatureFlagRecord(Base):
    __tablename__ = "feature_flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rollout_percentage: Mapped[int | None] = mapped_column(Integer)
    targeting_rules_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_feature_flags_key", "key", unique=True),
    )

    def to_flag(self) -> FeatureFlag:
        return FeatureFlag(
            key=self.key,
            name=self.name,
            description=self.description or "",
            enabled=self.enabled,
            rollout_percentage=self.rollout_percentage,
            targeting_rules=[rule_from_dict(r) for r in json.loads(self.targeting_rules_json or "[]")],
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )

    @classmethod
    def from_flag(cls, flag: FeatureFlag, created_by: str | None = None) -> FeatureFlagRecord:
        return cls(
            key=flag.key,
            name=flag.name,
            description=flag.description,
            enabled=flag.enabled,
            rollout_percentage=flag.rollout_percentage,
            targeting_rules_json=json.dumps([r.to_dict() for r in flag.targeting_rules]),
            created_by=created_by,
            created_at=flag.created_at,
            updated_at=flag.updated_at,
        )


def _as_utc(value: datetime | None) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
