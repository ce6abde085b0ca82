from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from .catalog import RewardCatalog
from .redemption import RedemptionResult, RedemptionService, coupon_display_status


def get_redemption_service(session: AsyncSession = Depends(get_async_session)) -> RedemptionService:
    return RedemptionService(session)
