from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Union

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import PointsActionType, PointsConfig, PointsRuleKind
from services.exceptions import BusinessRuleError
from utils.clock import utcnow


@dataclass(frozen=True)
class Bracket:
    min_order_value: Decimal
    max_order_value: Decimal | None
    points: int

    def matches(self, value: Decimal) -> bool:
        return self.min_order_value <= value and (self.max_order_value is None or value <= self.max_order_value)


@dataclass(frozen=True)
class FixedRule:
    amount: int

    def points_for(self, order_value: Decimal | None) -> int:
        return self.amount


@dataclass(frozen=True)
class TieredRule:
    brackets: tuple[Bracket, ...] = field(default_factory=tuple)

    def points_for(self, order_value: Decimal | None) -> int:
        if order_value is None:
            return 0
        for bracket in self.brackets:
            if bracket.matches(order_value):
                return bracket.points
        return 0


PointsRule = Union[FixedRule, TieredRule]


def parse_brackets(raw: list[dict] | None) -> tuple[Bracket, ...]:
    """Validates stored/submitted brackets and returns them sorted by lower bound."""
    brackets = []
    for item in raw or []:
        try:
            low = Decimal(str(item["min_order_value"]))
            high = item.get("max_order_value")
            high = None if high is None else Decimal(str(high))
            points = int(item["points"])
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise BusinessRuleError(f"Invalid tier bracket {item!r}: {e}")
        if high is not None and high < low:
            raise BusinessRuleError("Tier bracket max_order_value must not be below min_order_value")
        if points < 0:
            raise BusinessRuleError("Tier bracket points must not be negative")
        brackets.append(Bracket(low, high, points))
    return tuple(sorted(brackets, key=lambda b: b.min_order_value))


def rule_from_config(config: PointsConfig) -> PointsRule:
    if config.rule_kind == PointsRuleKind.TIERED:
        return TieredRule(parse_brackets(config.tiers))
    return FixedRule(config.points_amount or 0)


def _decimal(value) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class PointsPolicy:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def select_config(self, action_type: PointsActionType, now: datetime | None = None) -> PointsConfig | None:
        now = now or utcnow()
        return await self.session.scalar(
            select(PointsConfig)
            .where(
                PointsConfig.action_type == action_type,
                PointsConfig.is_active == True,  # noqa: E712
                PointsConfig.valid_from <= now,
                or_(PointsConfig.valid_until.is_(None), PointsConfig.valid_until >= now),
            )
            .order_by(PointsConfig.created_at.desc())
            .limit(1)
        )

    async def calculate_points(
        self,
        action_type: PointsActionType,
        order_value=None,
        now: datetime | None = None,
    ) -> int:
        config = await self.select_config(action_type, now)
        if not config:
            logging.warning(f"No active points configuration for {action_type.value}")
            return 0
        return points_for_config(config, order_value)


def points_for_config(config: PointsConfig, order_value=None) -> int:
    value = _decimal(order_value)
    if config.min_order_value is not None and value is not None and value < config.min_order_value:
        return 0

    points = rule_from_config(config).points_for(value)
    # 0 means no cap
    if config.max_points_per_transaction:
        points = min(points, config.max_points_per_transaction)
    return max(points, 0)
