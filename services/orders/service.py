import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from api.models import Order, OrderItem, User
from services.affiliate.referrals import ReferralTracker
from services.coupons.service import CartLine, CouponService
from services.effects.queue import EffectKind, EffectQueue
from services.exceptions import BusinessRuleError, NotFoundError

CENT = Decimal("0.01")


class OrderService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.coupons = CouponService(session)
        self.tracker = ReferralTracker(session)
        self.effects = EffectQueue(session)

    async def place_order(
        self,
        user_id: uuid.UUID,
        items: list[CartLine],
        coupon_code: str | None = None,
        shipping_address: dict | None = None,
    ) -> tuple[Order, list[uuid.UUID]]:
        """
        Writes the order and queues its affiliate side effects in the same transaction.
        Returns the order and the ids of the queued effects, in the order they must run.
        """
        if not items:
            raise BusinessRuleError("Cart is empty")
        for item in items:
            if item.quantity <= 0:
                raise BusinessRuleError(f"Invalid quantity for product {item.product_id}")
            if Decimal(item.unit_price) < 0:
                raise BusinessRuleError(f"Invalid price for product {item.product_id}")

        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        subtotal = sum((Decimal(i.unit_price) * i.quantity for i in items), Decimal("0"))
        subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)

        discount = Decimal("0")
        applied_code = None
        if coupon_code:
            try:
                check = await self.coupons.validate(coupon_code, user_id, subtotal, items)
            except NotFoundError as e:
                raise BusinessRuleError(str(e))
            discount = check.discount_amount
            applied_code = check.coupon.code

        try:
            referral = await self.tracker.get_referral_by_user_id(user_id)
            order = Order(
                user_id=user_id,
                subtotal=subtotal,
                discount_amount=discount,
                total=subtotal - discount,
                coupon_code=applied_code,
                affiliate_referral_id=referral.id if referral else None,
                shipping_address=shipping_address,
                items=[
                    OrderItem(
                        product_id=i.product_id,
                        category_id=i.category_id,
                        quantity=i.quantity,
                        unit_price=Decimal(i.unit_price),
                    )
                    for i in items
                ],
            )
            self.session.add(order)
            await self.session.flush()

            if applied_code:
                await self.coupons.consume(applied_code)

            queued = []
            if referral:
                queued.append(await self.effects.enqueue(
                    EffectKind.REFERRAL_ORDER, {"order_id": str(order.id)}, f"referral-order:{order.id}"
                ))
            queued.append(await self.effects.enqueue(
                EffectKind.OWN_PURCHASE, {"order_id": str(order.id)}, f"own-purchase:{order.id}"
            ))
            if applied_code:
                queued.append(await self.effects.enqueue(
                    EffectKind.COUPON_REDEEMED, {"coupon_code": applied_code}, f"coupon-redeemed:{order.id}"
                ))
            effect_ids = [e.id for e in queued]
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Order {order.id} placed by user {user_id}: total {order.total}, coupon {applied_code}")
        return order, effect_ids

    async def list_orders(self, user_id: uuid.UUID, page: int = 1, per_page: int = 20) -> tuple[list[Order], int]:
        total = await self.session.scalar(
            select(func.count()).select_from(Order).where(Order.user_id == user_id)
        )
        rows = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc())
            .offset((max(page, 1) - 1) * per_page)
            .limit(per_page)
        )
        return list(rows.scalars().all()), total or 0
