import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import Affiliate
from api.security import get_current_user_id
from config import settings
from schemas import Page
from services.affiliate.analytics import AffiliateAnalytics
from services.affiliate.referrals import ReferralTracker
from services.affiliate.registry import AffiliateRegistry
from services.affiliate.tiers import tier_benefits
from services.exceptions import BusinessRuleError, NotFoundError
from services.points.ledger import PointsLedger
from .schemas import (
    AffiliateAnalyticsRead,
    AffiliateDashboard,
    CodeValidation,
    EarningsBreakdown,
    PointsTransactionRead,
    ReferralList,
    ReferralStats,
    TopReferrals,
    TrackClick,
    TrackClickResult,
)

router = APIRouter()


async def current_affiliate(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
) -> Affiliate:
    try:
        affiliate = await AffiliateRegistry(session).get_or_create_affiliate(user_id)
        await session.commit()
        return affiliate
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=AffiliateDashboard, summary="Affiliate dashboard")
async def get_dashboard(
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Code, share link, tier and points of the calling user. The affiliate record is
    created on first access.

    Request status:
    - 200 OK
    - 401 Unauthorized - missing `X-User-Id`
    - 404 Not Found - unknown user
    """
    ledger = PointsLedger(session)
    return AffiliateDashboard(
        affiliate_code=affiliate.affiliate_code,
        affiliate_link=settings.affiliate_link(affiliate.affiliate_code),
        tier=affiliate.tier,
        tier_benefits=tier_benefits(affiliate.tier),
        points_balance=affiliate.current_points_balance,
        points_this_month=await ledger.points_this_month(affiliate.user_id),
        total_earnings=affiliate.total_points_earned,
        total_referrals=affiliate.total_referrals,
        active_referrals=affiliate.active_referrals,
        is_active=affiliate.is_active,
    )


@router.get("/referrals", response_model=ReferralList, summary="My referrals")
async def get_referrals(
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    referrals = await AffiliateAnalytics(session).referrals(affiliate)
    return {"referrals": referrals, "total": len(referrals)}


@router.get("/top-referrals", response_model=TopReferrals, summary="Referrals with the highest revenue")
async def get_top_referrals(
    limit: int = Query(5, ge=1, le=100),
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    return {"referrals": await AffiliateAnalytics(session).top_referrals(affiliate, limit)}


@router.get("/referrals-stats", response_model=ReferralStats, summary="Referrals per month")
async def get_referrals_stats(
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    return {"stats": await AffiliateAnalytics(session).referrals_by_month(affiliate)}


@router.get("/analytics", response_model=AffiliateAnalyticsRead, summary="Link clicks and conversion funnel")
async def get_analytics(
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    return await AffiliateAnalytics(session).clicks(affiliate)


@router.get("/earnings-breakdown", response_model=EarningsBreakdown, summary="Points earned per month or year")
async def get_earnings_breakdown(
    period: Literal["month", "year"] = Query("month"),
    affiliate: Affiliate = Depends(current_affiliate),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        breakdown = await PointsLedger(session).earnings_breakdown(affiliate.user_id, period)
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"period": period, "breakdown": breakdown}


@router.get("/points-history", response_model=Page[PointsTransactionRead], summary="My points ledger")
async def get_points_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
):
    rows, total = await PointsLedger(session).history(user_id, page, per_page)
    return Page[PointsTransactionRead](
        items=[PointsTransactionRead.model_validate(r) for r in rows], total=total, page=page, per_page=per_page
    )


@router.post("/track-click", response_model=TrackClickResult, summary="Record a referral link click")
async def track_click(
    dto: TrackClick,
    request: Request,
    session: AsyncSession = Depends(get_async_session),
):
    """
    Request status:
    - 200 OK - click stored
    - 404 Not Found - unknown or inactive affiliate code
    """
    ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip() or (
        request.client.host if request.client else None
    )
    try:
        click = await ReferralTracker(session).track_click(
            dto.affiliate_code, ip, request.headers.get("user-agent")
        )
        await session.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return TrackClickResult(success=True, click_id=click.id)


@router.get("/validate-code", response_model=CodeValidation, summary="Check an affiliate code")
async def validate_code(
    code: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_async_session),
):
    affiliate = await AffiliateRegistry(session).get_affiliate_by_code(code)
    return CodeValidation(valid=bool(affiliate and affiliate.is_active))
