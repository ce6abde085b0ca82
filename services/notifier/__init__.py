from __future__ import annotations
import logging
import uuid

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Affiliate, AffiliateTier, Notification, NotificationType, PointsRedemption

POINTS_MILESTONE = 1000

MILESTONES = {
    "first_referral": (
        "First Referral!",
        "Congratulations! You've got your first referral. Keep sharing your link to earn more points!",
    ),
    "referrals_10": (
        "10 Referrals Milestone!",
        "Amazing! You've reached 10 referrals. You're building a great network!",
    ),
    "referrals_100": (
        "100 Referrals Achievement!",
        "Incredible! You've reached 100 referrals. You're a top affiliate!",
    ),
    "points_1000": (
        "1000 Points Milestone!",
        "Congratulations! You've earned over {points} points. Keep up the great work!",
    ),
    "first_redemption": (
        "First Reward Redeemed!",
        "Great! You've redeemed your first reward. Enjoy your discount!",
    ),
}

REFERRAL_MILESTONES = {1: "first_referral", 10: "referrals_10", 100: "referrals_100"}


class AffiliateNotifier:
    """
    In-app notifications for affiliates.
    Delivery problems must never break the caller, so each write runs in its own
    savepoint and errors are only logged.
    """
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _notify(
        self,
        *,
        user_id: uuid.UUID,
        title: str,
        message: str,
        metadata: dict,
        type: NotificationType = NotificationType.AFFILIATE,
    ) -> Notification | None:
        try:
            async with self.session.begin_nested():
                notification = Notification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    metadata_json=metadata,
                )
                self.session.add(notification)
            return notification
        except Exception as e:
            logging.error(f"Failed to notify user {user_id} ({title}): {e}")
            return None

    async def milestone(self, user_id: uuid.UUID, kind: str, **data) -> Notification | None:
        title, message = MILESTONES[kind]
        return await self._notify(
            user_id=user_id,
            title=title,
            message=message.format(**data),
            metadata={"milestoneType": kind, **data},
        )

    async def tier_upgraded(self, affiliate: Affiliate, previous: AffiliateTier, tier: AffiliateTier):
        return await self._notify(
            user_id=affiliate.user_id,
            title=f"Tier Upgrade to {tier.value}!",
            message=f"Congratulations! You've been promoted to {tier.value} tier. Keep up the great work!",
            metadata={"tier": tier.value, "previousTier": previous.value},
            type=NotificationType.SYSTEM,
        )

    async def check_milestones(
        self,
        affiliate: Affiliate,
        points_before: int | None = None,
        referrals_before: int | None = None,
    ) -> list[str]:
        """Sends the milestones crossed since the given previous counters."""
        sent = []
        if referrals_before is not None:
            for count, kind in REFERRAL_MILESTONES.items():
                if referrals_before < count <= affiliate.total_referrals:
                    await self.milestone(affiliate.user_id, kind, referrals=count)
                    sent.append(kind)

        if points_before is not None and points_before < POINTS_MILESTONE <= affiliate.total_points_earned:
            await self.milestone(affiliate.user_id, "points_1000", points=affiliate.total_points_earned)
            sent.append("points_1000")
        return sent

    async def first_redemption(self, user_id: uuid.UUID) -> bool:
        count = await self.session.scalar(
            select(func.count()).select_from(PointsRedemption).where(PointsRedemption.user_id == user_id)
        )
        if count == 1:
            await self.milestone(user_id, "first_redemption")
            return True
        return False
