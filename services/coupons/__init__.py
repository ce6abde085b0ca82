from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from .service import CartLine, CouponCheck, CouponService, calculate_discount


def get_coupon_service(session: AsyncSession = Depends(get_async_session)) -> CouponService:
    return CouponService(session)
