import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from pydantic import Field

from api.models.affiliate import AffiliateTier
from api.models.effect import EffectStatus
from api.models.points import PointsActionType, PointsRuleKind
from api.models.referral import ReferralStatus
from api.models.rewards import RedemptionStatus
from api.routers.affiliate.schemas import PointsTransactionRead
from schemas import CamelModel


class AffiliateUser(CamelModel):
    id: uuid.UUID
    email: str
    name: str
    created_at: datetime


class AffiliateRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    affiliate_code: str
    is_active: bool
    tier: AffiliateTier
    tier_updated_at: datetime | None = None
    total_points_earned: int
    current_points_balance: int
    total_referrals: int
    active_referrals: int
    approved_at: datetime | None = None
    created_at: datetime
    user: AffiliateUser


class AdminReferral(CamelModel):
    id: uuid.UUID
    status: ReferralStatus
    referral_date: datetime
    first_order_id: uuid.UUID | None = None
    referred_user: AffiliateUser


class AffiliateDetail(AffiliateRead):
    referrals: List[AdminReferral]
    referral_orders: int
    recent_transactions: List[PointsTransactionRead]


class AffiliateUpdate(CamelModel):
    is_active: bool | None = None
    points_adjustment: int | None = None
    points_description: str | None = None


class PointsBracket(CamelModel):
    min_order_value: Decimal = Field(ge=0)
    max_order_value: Decimal | None = None
    points: int = Field(ge=0)


class PointsConfigRead(CamelModel):
    id: uuid.UUID
    action_type: PointsActionType
    rule_kind: PointsRuleKind
    points_amount: int
    tiers: List[Dict[str, Any]] | None = None
    min_order_value: Decimal | None = None
    max_points_per_transaction: int | None = None
    is_active: bool
    valid_from: datetime
    valid_until: datetime | None = None
    created_at: datetime


class PointsConfigCreate(CamelModel):
    action_type: PointsActionType
    points_amount: int | None = Field(default=None, ge=0)
    tiers: List[PointsBracket] | None = None
    min_order_value: Decimal | None = Field(default=None, ge=0)
    max_points_per_transaction: int | None = Field(default=None, ge=0)
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class PointsConfigUpdate(CamelModel):
    points_amount: int | None = Field(default=None, ge=0)
    tiers: List[PointsBracket] | None = None
    min_order_value: Decimal | None = Field(default=None, ge=0)
    max_points_per_transaction: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class PromoteAllResult(CamelModel):
    success: bool
    total: int
    promoted: int
    failed: int


class RedemptionRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    reward_id: uuid.UUID
    points_cost: int
    coupon_code: str
    status: RedemptionStatus
    used_at: datetime | None = None
    created_at: datetime


class EffectRead(CamelModel):
    id: uuid.UUID
    kind: str
    payload_json: Dict[str, Any]
    dedupe_key: str
    status: EffectStatus
    attempts: int
    last_error: str | None = None
    created_at: datetime
    processed_at: datetime | None = None


class DrainResult(CamelModel):
    processed: int
    failed: int
