import logging
import uuid

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import PointsRedemption, Reward
from services.exceptions import BusinessRuleError, NotFoundError


class RewardCatalog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, reward_id: uuid.UUID) -> Reward:
        reward = await self.session.get(Reward, reward_id)
        if not reward:
            raise NotFoundError("Reward not found")
        return reward

    async def list_rewards(self) -> list[Reward]:
        rows = await self.session.execute(select(Reward).order_by(Reward.created_at.desc()))
        return list(rows.scalars().all())

    async def create(self, data: dict) -> Reward:
        reward = Reward(**data)
        self.session.add(reward)
        await self.session.commit()
        await self.session.refresh(reward)
        logging.info(f"Reward {reward.id} ({reward.name}) created")
        return reward

    async def update(self, reward_id: uuid.UUID, data: dict) -> Reward:
        reward = await self.get(reward_id)
        for key, value in data.items():
            setattr(reward, key, value)
        await self.session.commit()
        await self.session.refresh(reward)
        return reward

    async def delete(self, reward_id: uuid.UUID) -> None:
        reward = await self.get(reward_id)
        used = await self.session.scalar(
            select(func.count()).select_from(PointsRedemption).where(PointsRedemption.reward_id == reward_id)
        )
        if used:
            raise BusinessRuleError("Cannot delete reward with existing redemptions. Deactivate it instead.")
        await self.session.delete(reward)
        await self.session.commit()
        logging.info(f"Reward {reward_id} deleted")

    async def redemptions(self, reward_id: uuid.UUID) -> list[PointsRedemption]:
        await self.get(reward_id)
        rows = await self.session.execute(
            select(PointsRedemption)
            .where(PointsRedemption.reward_id == reward_id)
            .order_by(PointsRedemption.created_at.desc())
        )
        return list(rows.scalars().all())
