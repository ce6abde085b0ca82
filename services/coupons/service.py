import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Coupon, DiscountType, Order
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from utils.clock import utcnow
from utils.referral import normalize_code

CENT = Decimal("0.01")


@dataclass
class CartLine:
    product_id: str
    category_id: str | None = None
    quantity: int = 1
    unit_price: Decimal = Decimal("0")


@dataclass
class CouponCheck:
    coupon: Coupon
    discount_amount: Decimal


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """PERCENTAGE is capped by max_discount_amount, FIXED by the subtotal."""
    subtotal = Decimal(subtotal)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * Decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount_amount is not None:
            discount = min(discount, Decimal(coupon.max_discount_amount))
    else:
        discount = min(Decimal(coupon.discount_value), subtotal)
    return max(discount, Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)


def _check_items(coupon: Coupon, items: list[CartLine]) -> None:
    if not items:
        return
    products = [i.product_id for i in items]
    categories = [i.category_id for i in items if i.category_id]

    if coupon.included_products:
        if not any(p in coupon.included_products for p in products):
            raise BusinessRuleError("This coupon is only valid for specific products")
        if not all(p in coupon.included_products for p in products):
            raise BusinessRuleError(
                "This coupon can only be applied to specific products. Please remove other items from your cart."
            )
    if coupon.excluded_products and any(p in coupon.excluded_products for p in products):
        raise BusinessRuleError("This coupon cannot be used with certain products in your cart")
    if coupon.included_categories:
        if not all(i.category_id and i.category_id in coupon.included_categories for i in items):
            raise BusinessRuleError("This coupon can only be applied to products in specific categories")
    if coupon.excluded_categories and any(c in coupon.excluded_categories for c in categories):
        raise BusinessRuleError("This coupon cannot be used with products from certain categories in your cart")


class CouponService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> Coupon | None:
        return await self.session.scalar(select(Coupon).where(Coupon.code == normalize_code(code)))

    async def get(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.session.get(Coupon, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found")
        return coupon

    async def user_usage_count(self, coupon: Coupon, user_id: uuid.UUID) -> int:
        count = await self.session.scalar(
            select(func.count()).select_from(Order).where(
                Order.user_id == user_id, Order.coupon_code == coupon.code
            )
        )
        return count or 0

    async def validate(
        self,
        code: str,
        user_id: uuid.UUID,
        subtotal: Decimal,
        items: list[CartLine] | None = None,
        now: datetime | None = None,
    ) -> CouponCheck:
        if not code or not code.strip():
            raise BusinessRuleError("Coupon code is required")
        coupon = await self.get_by_code(code)
        if not coupon:
            raise NotFoundError("Invalid coupon code")

        now = now or utcnow()
        if not coupon.is_active:
            raise BusinessRuleError("This coupon is not active")
        if coupon.valid_from and now < coupon.valid_from:
            raise BusinessRuleError("This coupon is not yet valid")
        if coupon.valid_until and now > coupon.valid_until:
            raise BusinessRuleError("This coupon has expired")
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise BusinessRuleError("This coupon has reached its usage limit")
        if coupon.assigned_user_id and coupon.assigned_user_id != user_id:
            raise BusinessRuleError("This coupon belongs to another customer")
        if coupon.user_usage_limit is not None:
            if await self.user_usage_count(coupon, user_id) >= coupon.user_usage_limit:
                raise BusinessRuleError(
                    f"You have reached the maximum usage limit ({coupon.user_usage_limit}) for this coupon"
                )

        _check_items(coupon, items or [])

        subtotal = Decimal(subtotal)
        if coupon.min_purchase_amount is not None and subtotal < coupon.min_purchase_amount:
            raise BusinessRuleError(
                f"Minimum purchase amount of {Decimal(coupon.min_purchase_amount):.2f} is required for this coupon"
            )

        return CouponCheck(coupon=coupon, discount_amount=calculate_discount(coupon, subtotal))

    async def consume(self, code: str) -> None:
        """Counts one use; refuses to go past usage_limit even under concurrent orders."""
        result = await self.session.execute(
            update(Coupon)
            .where(
                Coupon.code == normalize_code(code),
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise BusinessRuleError("This coupon has reached its usage limit")

    # admin

    async def list_coupons(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Coupon], int]:
        conditions = []
        if search:
            conditions.append(Coupon.code.contains(normalize_code(search)))
        if is_active is not None:
            conditions.append(Coupon.is_active == is_active)
        total = await self.session.scalar(select(func.count()).select_from(Coupon).where(*conditions))
        rows = await self.session.execute(
            select(Coupon)
            .where(*conditions)
            .order_by(Coupon.created_at.desc())
            .offset((max(page, 1) - 1) * per_page)
            .limit(per_page)
        )
        return list(rows.scalars().all()), total or 0

    async def create(self, data: dict) -> Coupon:
        data = dict(data)
        data["code"] = normalize_code(data["code"])
        if await self.get_by_code(data["code"]):
            raise ConflictError("Coupon code already exists")
        if data.get("valid_from") is None:
            data.pop("valid_from", None)
        coupon = Coupon(**data)
        try:
            async with self.session.begin_nested():
                self.session.add(coupon)
        except IntegrityError:
            raise ConflictError("Coupon code already exists")
        await self.session.commit()
        await self.session.refresh(coupon)
        logging.info(f"Coupon {coupon.code} created")
        return coupon

    async def update(self, coupon_id: uuid.UUID, data: dict) -> Coupon:
        coupon = await self.get(coupon_id)
        if "code" in data and data["code"] is not None:
            code = normalize_code(data["code"])
            other = await self.get_by_code(code)
            if other and other.id != coupon.id:
                raise ConflictError("Coupon code already exists")
            data = {**data, "code": code}
        for key, value in data.items():
            setattr(coupon, key, value)
        await self.session.commit()
        await self.session.refresh(coupon)
        return coupon

    async def deactivate(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.get(coupon_id)
        coupon.is_active = False
        await self.session.commit()
        await self.session.refresh(coupon)
        logging.info(f"Coupon {coupon.code} deactivated")
        return coupon
