import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Affiliate, AffiliateTier
from services.exceptions import NotFoundError
from services.notifier import AffiliateNotifier
from utils.clock import utcnow


@dataclass(frozen=True)
class TierThreshold:
    total_referrals: int
    total_points_earned: int
    active_referrals: int


# lowest first
TIER_ORDER = [AffiliateTier.BRONZE, AffiliateTier.SILVER, AffiliateTier.GOLD, AffiliateTier.PLATINUM]

TIER_THRESHOLDS = {
    AffiliateTier.BRONZE: TierThreshold(0, 0, 0),
    AffiliateTier.SILVER: TierThreshold(10, 500, 5),
    AffiliateTier.GOLD: TierThreshold(50, 2500, 25),
    AffiliateTier.PLATINUM: TierThreshold(200, 10000, 100),
}

TIER_BENEFITS = {
    AffiliateTier.BRONZE: (0, "Standard commission rates, access to all rewards"),
    AffiliateTier.SILVER: (5, "5% commission bonus, priority support, exclusive rewards"),
    AffiliateTier.GOLD: (10, "10% commission bonus, dedicated support, premium rewards"),
    AffiliateTier.PLATINUM: (20, "20% commission bonus, VIP support, exclusive rewards, early access"),
}


def calculate_tier(stats) -> AffiliateTier:
    """Highest tier whose three thresholds are all met by `stats`."""
    for tier in reversed(TIER_ORDER):
        t = TIER_THRESHOLDS[tier]
        if (
            stats.total_referrals >= t.total_referrals
            and stats.total_points_earned >= t.total_points_earned
            and stats.active_referrals >= t.active_referrals
        ):
            return tier
    return AffiliateTier.BRONZE


def tier_benefits(tier: AffiliateTier) -> dict:
    bonus, description = TIER_BENEFITS[tier]
    return {"commissionBonus": bonus, "description": description}


class TierService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.notifier = AffiliateNotifier(session)

    async def auto_promote_affiliate(self, affiliate_id: uuid.UUID) -> AffiliateTier | None:
        """Moves the affiliate up when its stats qualify. Never demotes."""
        affiliate = await self.session.scalar(
            select(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not affiliate:
            raise NotFoundError("Affiliate not found")

        tier = calculate_tier(affiliate)
        if TIER_ORDER.index(tier) <= TIER_ORDER.index(affiliate.tier):
            return None

        previous = affiliate.tier
        affiliate.tier = tier
        affiliate.tier_updated_at = utcnow()
        await self.session.flush()
        logging.info(f"Affiliate {affiliate.id} promoted {previous.value} -> {tier.value}")
        await self.notifier.tier_upgraded(affiliate, previous, tier)
        return tier

    async def promote_all(self) -> dict:
        ids = (await self.session.execute(select(Affiliate.id))).scalars().all()
        promoted = 0
        failed = 0
        for affiliate_id in ids:
            try:
                async with self.session.begin_nested():
                    if await self.auto_promote_affiliate(affiliate_id):
                        promoted += 1
            except Exception as e:
                failed += 1
                logging.error(f"Failed to promote affiliate {affiliate_id}: {e}")
        await self.session.commit()
        logging.info(f"Tier promotion finished: {promoted} promoted, {failed} failed of {len(ids)}")
        return {"total": len(ids), "promoted": promoted, "failed": failed}

    async def distribution(self) -> dict:
        rows = await self.session.execute(
            select(Affiliate.tier, func.count()).group_by(Affiliate.tier)
        )
        counts = {tier.value: 0 for tier in TIER_ORDER}
        for tier, count in rows.all():
            counts[tier.value] = count
        return counts
