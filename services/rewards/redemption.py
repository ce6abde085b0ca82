import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from api.models import (
    Coupon,
    CouponSource,
    PointsRedemption,
    PointsTransactionType,
    RedemptionStatus,
    Reward,
)
from services.exceptions import BusinessRuleError, ConflictError, InsufficientPoints, NotFoundError
from services.notifier import AffiliateNotifier
from services.points.ledger import PointsLedger
from utils.clock import utcnow
from utils.referral import RefLink, normalize_code

COUPON_CODE_ATTEMPTS = 5


@dataclass
class RedemptionResult:
    redemption: PointsRedemption
    coupon: Coupon

    @property
    def coupon_code(self) -> str:
        return self.coupon.code


def coupon_display_status(coupon: Coupon | None, now: datetime) -> str:
    if coupon is None:
        return "EXPIRED"
    if coupon.used_count > 0:
        return "USED"
    if coupon.valid_until and coupon.valid_until < now:
        return "EXPIRED"
    if not coupon.is_active:
        return "EXPIRED"
    if coupon.valid_from and coupon.valid_from > now:
        return "PENDING"
    return "ACTIVE"


class RedemptionService:
    def __init__(self, session: AsyncSession, ref_link: RefLink | None = None):
        self.session = session
        self.ledger = PointsLedger(session)
        self.notifier = AffiliateNotifier(session)
        self.ref_link = ref_link or RefLink()

    async def _unique_coupon_code(self) -> str:
        for _ in range(COUPON_CODE_ATTEMPTS):
            code = self.ref_link.reward_coupon_code()
            taken = await self.session.scalar(select(Coupon.id).where(Coupon.code == code))
            if not taken:
                return code
        raise ConflictError("Could not generate a unique coupon code")

    async def redeem(self, user_id: uuid.UUID, reward_id: uuid.UUID, now: datetime | None = None) -> RedemptionResult:
        """
        Spends points on a reward and issues a single-use coupon owned by the user.
        Either everything is written (debit, coupon, redemption, stock counter) or nothing.
        """
        now = now or utcnow()
        try:
            reward = await self.session.get(Reward, reward_id, with_for_update=True)
            if not reward:
                raise NotFoundError("Reward not found")
            if not reward.is_active:
                raise BusinessRuleError("Reward is not available")
            if (reward.valid_from and reward.valid_from > now) or (reward.valid_until and reward.valid_until < now):
                raise BusinessRuleError("Reward is not currently valid")
            if reward.stock is not None and reward.redeemed_count >= reward.stock:
                raise BusinessRuleError("Reward is out of stock")

            affiliate = await self.ledger.lock_affiliate(user_id)
            if affiliate.current_points_balance < reward.points_cost:
                raise InsufficientPoints(affiliate.current_points_balance, reward.points_cost)

            coupon = Coupon(
                code=await self._unique_coupon_code(),
                description=f"Reward redemption: {reward.name}",
                discount_type=reward.discount_type,
                discount_value=reward.discount_value,
                min_purchase_amount=reward.min_purchase_amount,
                max_discount_amount=reward.max_discount_amount,
                usage_limit=1,
                user_usage_limit=1,
                used_count=0,
                valid_from=reward.valid_from or now,
                valid_until=reward.valid_until,
                is_active=True,
                source=CouponSource.REDEMPTION,
                assigned_user_id=user_id,
            )
            self.session.add(coupon)
            await self.session.flush()

            await self.ledger.award_points(
                user_id,
                -reward.points_cost,
                PointsTransactionType.REDEMPTION,
                related_entity_id=reward.id,
                description=f"Redeemed reward: {reward.name}",
            )

            redemption = PointsRedemption(
                user_id=user_id,
                reward_id=reward.id,
                points_cost=reward.points_cost,
                coupon_code=coupon.code,
                coupon_id=coupon.id,
                status=RedemptionStatus.ISSUED,
            )
            self.session.add(redemption)
            reward.redeemed_count += 1
            await self.session.flush()

            await self.notifier.first_redemption(user_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"User {user_id} redeemed reward {reward_id} for coupon {coupon.code}")
        return RedemptionResult(redemption=redemption, coupon=coupon)

    async def mark_coupon_used(self, code: str, now: datetime | None = None) -> bool:
        redemption = await self.session.scalar(
            select(PointsRedemption).where(
                PointsRedemption.coupon_code == normalize_code(code),
                PointsRedemption.status == RedemptionStatus.ISSUED,
            )
        )
        if not redemption:
            return False
        redemption.status = RedemptionStatus.USED
        redemption.used_at = now or utcnow()
        await self.session.flush()
        logging.info(f"Redemption {redemption.id} marked as used")
        return True

    async def available_rewards(self, now: datetime | None = None) -> list[Reward]:
        now = now or utcnow()
        rows = await self.session.execute(
            select(Reward)
            .where(
                Reward.is_active == True,  # noqa: E712
                or_(Reward.valid_from.is_(None), Reward.valid_from <= now),
                or_(Reward.valid_until.is_(None), Reward.valid_until >= now),
                or_(Reward.stock.is_(None), Reward.redeemed_count < Reward.stock),
            )
            .order_by(Reward.points_cost)
        )
        return list(rows.scalars().all())

    async def my_coupons(
        self,
        user_id: uuid.UUID,
        status: str | None = None,
        now: datetime | None = None,
    ) -> list[tuple[PointsRedemption, str]]:
        """Redemptions of the user with the derived coupon status (ACTIVE, PENDING, USED, EXPIRED)."""
        now = now or utcnow()
        rows = await self.session.execute(
            select(PointsRedemption)
            .where(PointsRedemption.user_id == user_id)
            .options(selectinload(PointsRedemption.coupon), selectinload(PointsRedemption.reward))
            .order_by(PointsRedemption.created_at.desc())
        )
        result = []
        for redemption in rows.scalars().all():
            display = coupon_display_status(redemption.coupon, now)
            if status and status.lower() != "all" and display != status.upper():
                continue
            result.append((redemption, display))
        return result
