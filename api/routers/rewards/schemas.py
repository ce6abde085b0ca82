import uuid
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import Field

from api.models.coupon import DiscountType
from schemas import CamelModel


class RewardRead(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    points_cost: int
    discount_type: DiscountType
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    is_active: bool
    stock: int | None = None
    redeemed_count: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class RedeemRequest(CamelModel):
    reward_id: uuid.UUID


class RedeemResult(CamelModel):
    success: bool
    coupon_code: str


class CouponBrief(CamelModel):
    id: uuid.UUID
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool
    used_count: int
    usage_limit: int | None = None


class MyCoupon(CamelModel):
    id: uuid.UUID
    coupon_code: str
    points_cost: int
    status: str
    created_at: datetime
    reward: RewardRead
    coupon: CouponBrief | None = None


class MyCoupons(CamelModel):
    redemptions: List[MyCoupon]
    total: int


class RewardCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None
    points_cost: int = Field(gt=0)
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    min_purchase_amount: Decimal | None = Field(default=None, ge=0)
    max_discount_amount: Decimal | None = Field(default=None, gt=0)
    is_active: bool = True
    stock: int | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class RewardUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    points_cost: int | None = Field(default=None, gt=0)
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(default=None, gt=0)
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    is_active: bool | None = None
    stock: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
