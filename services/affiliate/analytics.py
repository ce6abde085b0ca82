from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from api.models import Affiliate, AffiliateLinkClick, AffiliateReferral, Order, ReferralStatus


class AffiliateAnalytics:
    """Read-only rollups for the affiliate dashboard."""
    def __init__(self, session: AsyncSession):
        self.session = session

    async def referrals(self, affiliate: Affiliate) -> list[dict]:
        rows = await self.session.execute(
            select(AffiliateReferral)
            .where(AffiliateReferral.affiliate_id == affiliate.id)
            .options(selectinload(AffiliateReferral.referred_user))
            .order_by(AffiliateReferral.created_at.desc())
        )
        referrals = rows.scalars().all()

        stats = {}
        if referrals:
            order_rows = await self.session.execute(
                select(
                    Order.affiliate_referral_id,
                    func.count(Order.id),
                    func.coalesce(func.sum(Order.total), 0),
                    func.min(Order.created_at),
                    func.max(Order.created_at),
                )
                .where(Order.affiliate_referral_id.in_([r.id for r in referrals]))
                .group_by(Order.affiliate_referral_id)
            )
            stats = {row[0]: row[1:] for row in order_rows.all()}

        result = []
        for referral in referrals:
            count, revenue, first, last = stats.get(referral.id, (0, 0, None, None))
            user = referral.referred_user
            result.append({
                "id": referral.id,
                "status": referral.status,
                "referral_date": referral.referral_date,
                "first_order_id": referral.first_order_id,
                "referred_user": {"id": user.id, "email": user.email, "name": user.name, "created_at": user.created_at},
                "total_orders": count,
                "total_revenue": Decimal(str(revenue)),
                "first_order_date": first,
                "last_order_date": last,
            })
        return result

    async def top_referrals(self, affiliate: Affiliate, limit: int = 5) -> list[dict]:
        referrals = await self.referrals(affiliate)
        referrals.sort(key=lambda r: r["total_revenue"], reverse=True)
        return referrals[:limit]

    async def referrals_by_month(self, affiliate: Affiliate) -> list[dict]:
        """Referrals and how many of them are active, per "YYYY-MM" of signup."""
        rows = await self.session.execute(
            select(AffiliateReferral.created_at, AffiliateReferral.status)
            .where(AffiliateReferral.affiliate_id == affiliate.id)
            .order_by(AffiliateReferral.created_at)
        )
        by_month = defaultdict(lambda: {"total": 0, "active": 0})
        for created_at, referral_status in rows.all():
            month = by_month[created_at.strftime("%Y-%m")]
            month["total"] += 1
            if referral_status == ReferralStatus.ACTIVE:
                month["active"] += 1
        return [{"month": m, **v} for m, v in sorted(by_month.items())]

    async def clicks(self, affiliate: Affiliate) -> dict:
        rows = await self.session.execute(
            select(AffiliateLinkClick.clicked_at, AffiliateLinkClick.converted)
            .where(AffiliateLinkClick.affiliate_id == affiliate.id)
            .order_by(AffiliateLinkClick.clicked_at)
        )
        by_day = defaultdict(lambda: {"total": 0, "converted": 0})
        total = 0
        converted = 0
        for clicked_at, was_converted in rows.all():
            day = by_day[clicked_at.date().isoformat()]
            day["total"] += 1
            total += 1
            if was_converted:
                day["converted"] += 1
                converted += 1

        active = await self.session.scalar(
            select(func.count()).select_from(AffiliateReferral).where(
                AffiliateReferral.affiliate_id == affiliate.id,
                AffiliateReferral.status == ReferralStatus.ACTIVE,
            )
        )
        referrals = await self.session.scalar(
            select(func.count()).select_from(AffiliateReferral).where(AffiliateReferral.affiliate_id == affiliate.id)
        )
        rate = round(converted / total * 100, 2) if total else 0.0
        return {
            "total_clicks": total,
            "converted_clicks": converted,
            "conversion_rate": rate,
            "clicks_over_time": [{"date": d, **v} for d, v in sorted(by_day.items())],
            "funnel": {
                "clicks": total,
                "registrations": converted,
                "referrals": referrals or 0,
                "active_referrals": active or 0,
            },
        }

