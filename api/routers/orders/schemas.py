import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from pydantic import Field

from api.models.order import OrderStatus
from schemas import CamelModel


class OrderItemIn(CamelModel):
    product_id: str
    category_id: str | None = None
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class OrderCreate(CamelModel):
    items: List[OrderItemIn]
    coupon_code: str | None = None
    shipping_address: Dict[str, Any] | None = None


class OrderItemRead(CamelModel):
    product_id: str
    category_id: str | None = None
    quantity: int
    unit_price: Decimal


class OrderRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    coupon_code: str | None = None
    affiliate_referral_id: uuid.UUID | None = None
    status: OrderStatus
    shipping_address: Dict[str, Any] | None = None
    created_at: datetime
    items: List[OrderItemRead]
