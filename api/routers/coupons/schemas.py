import uuid
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import Field

from api.models.coupon import CouponSource, DiscountType
from schemas import CamelModel


class CartItem(CamelModel):
    product_id: str
    category_id: str | None = None
    quantity: int = Field(default=1, gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)


class CouponValidate(CamelModel):
    code: str
    subtotal: Decimal = Field(ge=0)
    items: List[CartItem] | None = None


class CouponRead(CamelModel):
    id: uuid.UUID
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    user_usage_limit: int | None = None
    used_count: int
    valid_from: datetime
    valid_until: datetime | None = None
    is_active: bool
    source: CouponSource
    assigned_user_id: uuid.UUID | None = None
    included_products: List[str] | None = None
    excluded_products: List[str] | None = None
    included_categories: List[str] | None = None
    excluded_categories: List[str] | None = None


class CouponValidation(CamelModel):
    valid: bool
    coupon: CouponRead
    discount_amount: Decimal


class CouponCreate(CamelModel):
    code: str = Field(min_length=1)
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    min_purchase_amount: Decimal | None = Field(default=None, ge=0)
    max_discount_amount: Decimal | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, gt=0)
    user_usage_limit: int | None = Field(default=None, gt=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
    included_products: List[str] | None = None
    excluded_products: List[str] | None = None
    included_categories: List[str] | None = None
    excluded_categories: List[str] | None = None


class CouponUpdate(CamelModel):
    code: str | None = None
    description: str | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(default=None, gt=0)
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    user_usage_limit: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool | None = None
    included_products: List[str] | None = None
    excluded_products: List[str] | None = None
    included_categories: List[str] | None = None
    excluded_categories: List[str] | None = None
