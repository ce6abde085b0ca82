import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.security import get_current_user_id
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.rewards import RedemptionService, get_redemption_service
from .schemas import CouponBrief, MyCoupon, MyCoupons, RedeemRequest, RedeemResult, RewardRead

router = APIRouter()


@router.get("", response_model=list[RewardRead], summary="Rewards available for points")
async def list_rewards(service: RedemptionService = Depends(get_redemption_service)):
    return await service.available_rewards()


@router.post("/redeem", response_model=RedeemResult, summary="Redeem points for a reward")
async def redeem_reward(
    dto: RedeemRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RedemptionService = Depends(get_redemption_service),
):
    """
    Spends `pointsCost` points and issues a single-use coupon for the caller.

    Request status:
    - 200 OK - `{success, couponCode}`
    - 400 Bad Request - insufficient points, inactive, expired or out of stock reward
    - 404 Not Found - unknown reward
    """
    try:
        result = await service.redeem(user_id, dto.reward_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return RedeemResult(success=True, coupon_code=result.coupon_code)


@router.get("/my-coupons", response_model=MyCoupons, summary="Coupons bought with my points")
async def my_coupons(
    status_filter: str | None = Query(None, alias="status"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RedemptionService = Depends(get_redemption_service),
):
    rows = await service.my_coupons(user_id, status_filter)
    redemptions = [
        MyCoupon(
            id=r.id,
            coupon_code=r.coupon_code,
            points_cost=r.points_cost,
            status=display,
            created_at=r.created_at,
            reward=RewardRead.model_validate(r.reward),
            coupon=CouponBrief.model_validate(r.coupon) if r.coupon else None,
        )
        for r, display in rows
    ]
    return MyCoupons(redemptions=redemptions, total=len(redemptions))
