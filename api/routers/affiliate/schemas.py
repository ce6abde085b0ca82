import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from api.models.affiliate import AffiliateTier
from api.models.points import PointsTransactionType
from api.models.referral import ReferralStatus
from schemas import CamelModel


class TierBenefits(CamelModel):
    commission_bonus: int
    description: str


class AffiliateDashboard(CamelModel):
    affiliate_code: str
    affiliate_link: str
    tier: AffiliateTier
    tier_benefits: TierBenefits
    points_balance: int
    points_this_month: int
    total_earnings: int
    total_referrals: int
    active_referrals: int
    is_active: bool


class ReferredUser(CamelModel):
    id: uuid.UUID
    email: str
    name: str
    created_at: datetime


class ReferralRead(CamelModel):
    id: uuid.UUID
    status: ReferralStatus
    referral_date: datetime
    first_order_id: uuid.UUID | None = None
    referred_user: ReferredUser
    total_orders: int
    total_revenue: Decimal
    first_order_date: datetime | None = None
    last_order_date: datetime | None = None


class ReferralList(CamelModel):
    referrals: List[ReferralRead]
    total: int


class TopReferrals(CamelModel):
    referrals: List[ReferralRead]


class ReferralMonth(CamelModel):
    month: str
    total: int
    active: int


class ReferralStats(CamelModel):
    stats: List[ReferralMonth]


class ClicksPerDay(CamelModel):
    date: str
    total: int
    converted: int


class Funnel(CamelModel):
    clicks: int
    registrations: int
    referrals: int
    active_referrals: int


class AffiliateAnalyticsRead(CamelModel):
    total_clicks: int
    converted_clicks: int
    conversion_rate: float
    clicks_over_time: List[ClicksPerDay]
    funnel: Funnel


class EarningsBucket(CamelModel):
    period: str
    total: int
    by_type: Dict[str, int]


class EarningsBreakdown(CamelModel):
    period: str
    breakdown: List[EarningsBucket]


class PointsTransactionRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    amount: int
    type: PointsTransactionType
    balance_before: int
    balance_after: int
    description: str
    related_entity_id: uuid.UUID | None = None
    created_at: datetime


class TrackClick(CamelModel):
    affiliate_code: str


class TrackClickResult(CamelModel):
    success: bool
    click_id: uuid.UUID


class CodeValidation(CamelModel):
    valid: bool
