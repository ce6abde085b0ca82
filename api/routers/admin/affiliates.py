import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import AffiliateTier, PointsTransactionType, User
from api.security import require_admin
from schemas import Page
from services.affiliate.admin import AffiliateAdmin
from services.affiliate.analytics import AffiliateAnalytics
from services.affiliate.tiers import TierService
from services.exceptions import BusinessRuleError, NotFoundError
from services.points.ledger import LedgerFilters, PointsLedger
from api.routers.affiliate.schemas import PointsTransactionRead, ReferralRead
from .schemas import AdminReferral, AffiliateDetail, AffiliateRead, AffiliateUpdate, PromoteAllResult

router = APIRouter()


def _detail(data: dict) -> AffiliateDetail:
    affiliate = data["affiliate"]
    return AffiliateDetail.model_validate({
        **AffiliateRead.model_validate(affiliate).model_dump(),
        "referrals": [AdminReferral.model_validate(r) for r in affiliate.referrals],
        "referral_orders": data["referral_orders"],
        "recent_transactions": [PointsTransactionRead.model_validate(t) for t in data["recent_transactions"]],
    })


@router.get("/affiliates", response_model=Page[AffiliateRead], summary="List affiliates")
async def list_affiliates(
    search: str | None = None,
    tier: AffiliateTier | None = None,
    is_active: bool | None = Query(None, alias="isActive"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200, alias="perPage"),
    session: AsyncSession = Depends(get_async_session),
):
    rows, total = await AffiliateAdmin(session).list_affiliates(search, tier, is_active, page, per_page)
    return Page[AffiliateRead](
        items=[AffiliateRead.model_validate(a) for a in rows], total=total, page=page, per_page=per_page
    )


@router.get("/affiliates/{affiliate_id}", response_model=AffiliateDetail, summary="Affiliate details")
async def get_affiliate(affiliate_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    try:
        return _detail(await AffiliateAdmin(session).detail(affiliate_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get(
    "/affiliates/{affiliate_id}/referrals",
    response_model=list[ReferralRead],
    summary="Referrals of an affiliate with order totals",
)
async def affiliate_referrals(affiliate_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    try:
        affiliate = await AffiliateAdmin(session).get(affiliate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return await AffiliateAnalytics(session).referrals(affiliate)


@router.get(
    "/affiliates/{affiliate_id}/transactions",
    response_model=Page[PointsTransactionRead],
    summary="Points ledger of an affiliate",
)
async def affiliate_transactions(
    affiliate_id: uuid.UUID,
    type: PointsTransactionType | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200, alias="perPage"),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        affiliate = await AffiliateAdmin(session).get(affiliate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    rows, total = await PointsLedger(session).search(
        LedgerFilters(user_id=affiliate.user_id, type=type, page=page, per_page=per_page)
    )
    return Page[PointsTransactionRead](
        items=[PointsTransactionRead.model_validate(r) for r in rows], total=total, page=page, per_page=per_page
    )


@router.patch("/affiliates/{affiliate_id}", response_model=AffiliateDetail, summary="Update affiliate")
async def update_affiliate(
    affiliate_id: uuid.UUID,
    dto: AffiliateUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Toggles `isActive` and/or applies a manual points adjustment. Every change is
    written to the audit log.

    Request status:
    - 200 OK
    - 400 Bad Request - the adjustment would make the balance negative
    - 404 Not Found - unknown affiliate
    """
    service = AffiliateAdmin(session)
    try:
        await service.update(
            affiliate_id,
            admin.id,
            is_active=dto.is_active,
            points_adjustment=dto.points_adjustment,
            points_description=dto.points_description,
        )
        return _detail(await service.detail(affiliate_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/affiliate-tiers/promote-all", response_model=PromoteAllResult, summary="Recalculate all tiers")
async def promote_all(session: AsyncSession = Depends(get_async_session)):
    result = await TierService(session).promote_all()
    return PromoteAllResult(success=True, **result)


@router.get("/affiliate-tiers/distribution", summary="Affiliates per tier")
async def tier_distribution(session: AsyncSession = Depends(get_async_session)) -> dict[str, int]:
    return await TierService(session).distribution()
