import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    Affiliate,
    AffiliateReferral,
    Order,
    PointsActionType,
    PointsTransactionType,
    ReferralStatus,
)
from services.affiliate.referrals import ReferralTracker
from services.affiliate.registry import AffiliateRegistry
from services.affiliate.tiers import TierService
from services.exceptions import NotFoundError
from services.notifier import AffiliateNotifier
from services.points.ledger import PointsLedger
from services.points.policy import PointsPolicy
from services.rewards.redemption import RedemptionService


class EffectHandlers:
    """
    Post-commit side effects of registration and ordering.
    Each handler may be replayed: awards carry dedupe keys and state changes are
    conditional, so running one twice writes nothing new.
    """
    def __init__(self, session: AsyncSession):
        self.session = session
        self.registry = AffiliateRegistry(session)
        self.tracker = ReferralTracker(session)
        self.policy = PointsPolicy(session)
        self.ledger = PointsLedger(session)
        self.tiers = TierService(session)
        self.notifier = AffiliateNotifier(session)
        self.redemptions = RedemptionService(session)

    async def _promote(self, affiliate_id: uuid.UUID) -> None:
        try:
            async with self.session.begin_nested():
                await self.tiers.auto_promote_affiliate(affiliate_id)
        except Exception as e:
            logging.error(f"Tier promotion failed for affiliate {affiliate_id}: {e}")

    async def affiliate_bootstrap(self, payload: dict) -> None:
        await self.registry.get_or_create_affiliate(uuid.UUID(payload["user_id"]))

    async def referral_signup(self, payload: dict) -> None:
        user_id = uuid.UUID(payload["user_id"])
        affiliate = await self.registry.get_affiliate_by_code(payload["referral_code"])
        if not affiliate or not affiliate.is_active:
            logging.warning(f"Referral code {payload['referral_code']!r} is unknown or inactive, user {user_id}")
            return

        referral = await self.tracker.create_referral(affiliate.id, user_id)
        if referral is None:
            return

        converted = await self.tracker.convert_clicks(affiliate.id, user_id)
        logging.info(f"Converted {converted} clicks of affiliate {affiliate.id} for user {user_id}")

        affiliate = await self.ledger.lock_affiliate(affiliate.user_id)
        # create_referral counted this referral already
        referrals_before = affiliate.total_referrals - 1
        points_before = affiliate.total_points_earned
        points = await self.policy.calculate_points(PointsActionType.REFERRAL_SIGNUP)
        if points > 0:
            await self.ledger.award_points(
                affiliate.user_id,
                points,
                PointsTransactionType.AFFILIATE_REFERRAL,
                related_entity_id=referral.id,
                description="Referral signup bonus",
                dedupe_key=f"referral-signup:{referral.id}",
            )

        await self.notifier.check_milestones(affiliate, points_before, referrals_before)
        await self._promote(affiliate.id)

    async def referral_order(self, payload: dict) -> None:
        order = await self.session.get(Order, uuid.UUID(payload["order_id"]))
        if not order:
            raise NotFoundError(f"Order {payload['order_id']} not found")

        referral = await self.tracker.get_referral_by_user_id(order.user_id)
        if not referral:
            return

        # activation must happen before the award is computed
        activated = await self.tracker.activate_referral(referral.id, order.id)
        first_order = activated or (
            referral.status == ReferralStatus.ACTIVE and referral.first_order_id == order.id
        )
        action = PointsActionType.REFERRAL_FIRST_ORDER if first_order else PointsActionType.REFERRAL_REPEAT_ORDER

        affiliate = await self.session.get(Affiliate, referral.affiliate_id)
        affiliate = await self.ledger.lock_affiliate(affiliate.user_id)
        points_before = affiliate.total_points_earned
        points = await self.policy.calculate_points(action, order.total)
        if points > 0:
            label = "first" if first_order else "repeat"
            await self.ledger.award_points(
                affiliate.user_id,
                points,
                PointsTransactionType.AFFILIATE_PURCHASE,
                related_entity_id=order.id,
                description=f"Referral {label} order: {order.total}",
                dedupe_key=f"referral-order:{order.id}",
            )
            await self.notifier.check_milestones(affiliate, points_before)

        await self._promote(affiliate.id)

    async def own_purchase(self, payload: dict) -> None:
        order = await self.session.get(Order, uuid.UUID(payload["order_id"]))
        if not order:
            raise NotFoundError(f"Order {payload['order_id']} not found")

        points = await self.policy.calculate_points(PointsActionType.OWN_PURCHASE, order.total)
        if points > 0:
            await self.ledger.award_points(
                order.user_id,
                points,
                PointsTransactionType.AFFILIATE_PURCHASE,
                related_entity_id=order.id,
                description=f"Purchase points: {order.total}",
                dedupe_key=f"own-purchase:{order.id}",
            )

    async def coupon_redeemed(self, payload: dict) -> None:
        await self.redemptions.mark_coupon_used(payload["coupon_code"])
