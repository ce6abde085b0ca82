import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import User
from api.routers.coupons.schemas import CouponCreate, CouponRead, CouponUpdate
from api.routers.rewards.schemas import RewardCreate, RewardRead, RewardUpdate
from api.security import require_admin
from schemas import Page
from services.audit import AuditTrail
from services.coupons import CouponService
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from services.rewards import RewardCatalog
from .schemas import RedemptionRead

router = APIRouter()


# --- Rewards ---

@router.get("/rewards", response_model=list[RewardRead], summary="All rewards")
async def list_rewards(session: AsyncSession = Depends(get_async_session)):
    return await RewardCatalog(session).list_rewards()


@router.post("/rewards", response_model=RewardRead, status_code=status.HTTP_201_CREATED, summary="Create a reward")
async def create_reward(
    dto: RewardCreate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    await AuditTrail(session).record(admin.id, "CREATE", "Reward", None, {"name": dto.name})
    return await RewardCatalog(session).create(dto.model_dump())


@router.patch("/rewards/{reward_id}", response_model=RewardRead, summary="Update a reward")
async def update_reward(
    reward_id: uuid.UUID,
    dto: RewardUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    data = dto.model_dump(exclude_unset=True)
    try:
        await AuditTrail(session).record(admin.id, "UPDATE", "Reward", reward_id, {"fields": sorted(data)})
        return await RewardCatalog(session).update(reward_id, data)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/rewards/{reward_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a reward")
async def delete_reward(
    reward_id: uuid.UUID,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Only rewards nobody redeemed yet can be deleted; deactivate the others.
    """
    try:
        await AuditTrail(session).record(admin.id, "DELETE", "Reward", reward_id, None)
        await RewardCatalog(session).delete(reward_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get(
    "/rewards/{reward_id}/redemptions",
    response_model=list[RedemptionRead],
    summary="Redemptions of a reward",
)
async def reward_redemptions(reward_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    try:
        return await RewardCatalog(session).redemptions(reward_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# --- Coupons ---

@router.get("/coupons", response_model=Page[CouponRead], summary="List coupons")
async def list_coupons(
    search: str | None = None,
    is_active: bool | None = Query(None, alias="isActive"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200, alias="perPage"),
    session: AsyncSession = Depends(get_async_session),
):
    rows, total = await CouponService(session).list_coupons(search, is_active, page, per_page)
    return Page[CouponRead](
        items=[CouponRead.model_validate(c) for c in rows], total=total, page=page, per_page=per_page
    )


@router.post("/coupons", response_model=CouponRead, status_code=status.HTTP_201_CREATED, summary="Create a coupon")
async def create_coupon(
    dto: CouponCreate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        await AuditTrail(session).record(admin.id, "CREATE", "Coupon", None, {"code": dto.code})
        return await CouponService(session).create(dto.model_dump())
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.patch("/coupons/{coupon_id}", response_model=CouponRead, summary="Update a coupon")
async def update_coupon(
    coupon_id: uuid.UUID,
    dto: CouponUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    data = dto.model_dump(exclude_unset=True)
    try:
        await AuditTrail(session).record(admin.id, "UPDATE", "Coupon", coupon_id, {"fields": sorted(data)})
        return await CouponService(session).update(coupon_id, data)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/coupons/{coupon_id}", response_model=CouponRead, summary="Deactivate a coupon")
async def deactivate_coupon(
    coupon_id: uuid.UUID,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        await AuditTrail(session).record(admin.id, "DEACTIVATE", "Coupon", coupon_id, None)
        return await CouponService(session).deactivate(coupon_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
