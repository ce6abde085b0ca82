import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Affiliate, AffiliateLinkClick, AffiliateReferral, ReferralStatus
from config import settings
from services.exceptions import NotFoundError
from utils.clock import utcnow
from .registry import AffiliateRegistry


class ReferralTracker:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.registry = AffiliateRegistry(session)

    async def get_referral_by_user_id(self, user_id: uuid.UUID) -> AffiliateReferral | None:
        return await self.session.scalar(
            select(AffiliateReferral).where(AffiliateReferral.referred_user_id == user_id)
        )

    async def create_referral(self, affiliate_id: uuid.UUID, referred_user_id: uuid.UUID) -> AffiliateReferral | None:
        """
        PENDING referral for a freshly registered user.
        Returns None for self-referrals and for users that were already referred.
        """
        affiliate = await self.session.get(Affiliate, affiliate_id)
        if not affiliate:
            raise NotFoundError("Affiliate not found")

        if affiliate.user_id == referred_user_id:
            logging.warning(f"Self-referral ignored for user {referred_user_id}")
            return None

        if await self.get_referral_by_user_id(referred_user_id):
            logging.info(f"User {referred_user_id} is already referred, keeping the first referral")
            return None

        try:
            async with self.session.begin_nested():
                referral = AffiliateReferral(
                    affiliate_id=affiliate_id,
                    referred_user_id=referred_user_id,
                    status=ReferralStatus.PENDING,
                )
                self.session.add(referral)
        except IntegrityError:
            logging.info(f"User {referred_user_id} was referred concurrently")
            return None

        await self.session.execute(
            update(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .values(total_referrals=Affiliate.total_referrals + 1)
        )
        logging.info(f"Referral {referral.id}: affiliate {affiliate_id} -> user {referred_user_id}")
        return referral

    async def convert_clicks(self, affiliate_id: uuid.UUID, user_id: uuid.UUID, now: datetime | None = None) -> int:
        now = now or utcnow()
        window_start = now - timedelta(days=settings.env.CLICK_ATTRIBUTION_WINDOW_DAYS)
        result = await self.session.execute(
            update(AffiliateLinkClick)
            .where(
                AffiliateLinkClick.affiliate_id == affiliate_id,
                AffiliateLinkClick.converted == False,  # noqa: E712
                AffiliateLinkClick.clicked_at >= window_start,
            )
            .values(converted=True, converted_at=now, converted_user_id=user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def track_click(self, code: str, ip_address: str | None, user_agent: str | None) -> AffiliateLinkClick:
        affiliate = await self.registry.get_affiliate_by_code(code)
        if not affiliate or not affiliate.is_active:
            raise NotFoundError("Invalid affiliate code")

        click = AffiliateLinkClick(
            affiliate_id=affiliate.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(click)
        await self.session.flush()
        return click

    async def activate_referral(self, referral_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """
        PENDING -> ACTIVE, once. True only for the call that performed the transition.
        """
        referral = await self.session.get(AffiliateReferral, referral_id)
        if not referral:
            raise NotFoundError("Referral not found")

        result = await self.session.execute(
            update(AffiliateReferral)
            .where(
                AffiliateReferral.id == referral_id,
                AffiliateReferral.status == ReferralStatus.PENDING,
            )
            .values(status=ReferralStatus.ACTIVE, first_order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.refresh(referral)
            return False

        await self.session.execute(
            update(Affiliate)
            .where(Affiliate.id == referral.affiliate_id)
            .values(active_referrals=Affiliate.active_referrals + 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(referral)
        logging.info(f"Referral {referral_id} activated by order {order_id}")
        return True
