import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import PointsActionType, PointsConfig, PointsRuleKind
from services.audit import AuditTrail
from services.exceptions import BusinessRuleError, NotFoundError
from .policy import parse_brackets


def _normalize(data: dict) -> dict:
    """TIERED when brackets are given, FIXED otherwise; brackets are stored sorted."""
    data = dict(data)
    tiers = data.get("tiers")
    if tiers:
        brackets = parse_brackets(tiers)
        data["tiers"] = [
            {
                "min_order_value": str(b.min_order_value),
                "max_order_value": None if b.max_order_value is None else str(b.max_order_value),
                "points": b.points,
            }
            for b in brackets
        ]
        data["rule_kind"] = PointsRuleKind.TIERED
        if data.get("points_amount") is None:
            data["points_amount"] = 0
    elif "tiers" in data or "points_amount" in data:
        data["tiers"] = None
        data["rule_kind"] = PointsRuleKind.FIXED
        if data.get("points_amount") is None or data["points_amount"] < 0:
            raise BusinessRuleError("pointsAmount must be a non-negative number for a fixed rule")
    if data.get("max_points_per_transaction") is not None and data["max_points_per_transaction"] < 0:
        raise BusinessRuleError("maxPointsPerTransaction must not be negative")
    return data


class PointsConfigService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)

    async def list_configs(self, action_type: PointsActionType | None = None) -> list[PointsConfig]:
        stmt = select(PointsConfig).order_by(PointsConfig.created_at.desc())
        if action_type:
            stmt = stmt.where(PointsConfig.action_type == action_type)
        return list((await self.session.execute(stmt)).scalars().all())

    async def get(self, config_id: uuid.UUID) -> PointsConfig:
        config = await self.session.get(PointsConfig, config_id)
        if not config:
            raise NotFoundError("Points configuration not found")
        return config

    async def create(self, data: dict, admin_id: uuid.UUID) -> PointsConfig:
        data = _normalize({"tiers": None, **data})
        if data.get("valid_from") is None:
            data.pop("valid_from", None)
        config = PointsConfig(**data)
        self.session.add(config)
        await self.session.flush()
        await self.audit.record(admin_id, "CREATE", "PointsConfig", config.id, {"actionType": config.action_type.value})
        await self.session.commit()
        await self.session.refresh(config)
        logging.info(f"Points config {config.id} for {config.action_type.value} created")
        return config

    async def update(self, config_id: uuid.UUID, data: dict, admin_id: uuid.UUID) -> PointsConfig:
        config = await self.get(config_id)
        for key, value in _normalize(data).items():
            setattr(config, key, value)
        await self.audit.record(admin_id, "UPDATE", "PointsConfig", config.id, {"fields": sorted(data)})
        await self.session.commit()
        await self.session.refresh(config)
        return config

    async def delete(self, config_id: uuid.UUID, admin_id: uuid.UUID) -> None:
        config = await self.get(config_id)
        await self.session.delete(config)
        await self.audit.record(admin_id, "DELETE", "PointsConfig", config_id, None)
        await self.session.commit()
        logging.info(f"Points config {config_id} deleted")
