import logging
import uuid

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from api.models import Affiliate, AffiliateReferral, AffiliateTier, Order, PointsTransaction, User
from services.audit import AuditTrail
from services.exceptions import BusinessRuleError, NotFoundError
from services.points.ledger import PointsLedger


class AffiliateAdmin:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.ledger = PointsLedger(session)
        self.audit = AuditTrail(session)

    async def list_affiliates(
        self,
        search: str | None = None,
        tier: AffiliateTier | None = None,
        is_active: bool | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Affiliate], int]:
        conditions = []
        if search:
            like = f"%{search.strip()}%"
            conditions.append(or_(
                Affiliate.affiliate_code.ilike(like), User.email.ilike(like), User.name.ilike(like)
            ))
        if tier:
            conditions.append(Affiliate.tier == tier)
        if is_active is not None:
            conditions.append(Affiliate.is_active == is_active)

        base = select(Affiliate).join(User, User.id == Affiliate.user_id).where(*conditions)
        total = await self.session.scalar(select(func.count()).select_from(base.subquery()))
        rows = await self.session.execute(
            base.options(selectinload(Affiliate.user))
            .order_by(Affiliate.created_at.desc())
            .offset((max(page, 1) - 1) * per_page)
            .limit(per_page)
        )
        return list(rows.scalars().all()), total or 0

    async def get(self, affiliate_id: uuid.UUID) -> Affiliate:
        affiliate = await self.session.scalar(
            select(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .options(
                selectinload(Affiliate.user),
                selectinload(Affiliate.referrals).selectinload(AffiliateReferral.referred_user),
            )
            .execution_options(populate_existing=True)
        )
        if not affiliate:
            raise NotFoundError("Affiliate not found")
        return affiliate

    async def detail(self, affiliate_id: uuid.UUID) -> dict:
        affiliate = await self.get(affiliate_id)
        recent = await self.session.execute(
            select(PointsTransaction)
            .where(PointsTransaction.user_id == affiliate.user_id)
            .order_by(PointsTransaction.created_at.desc())
            .limit(50)
        )
        referral_orders = await self.session.scalar(
            select(func.count())
            .select_from(Order)
            .join(AffiliateReferral, AffiliateReferral.id == Order.affiliate_referral_id)
            .where(AffiliateReferral.affiliate_id == affiliate.id)
        )
        return {
            "affiliate": affiliate,
            "referral_orders": referral_orders or 0,
            "recent_transactions": list(recent.scalars().all()),
        }

    async def update(
        self,
        affiliate_id: uuid.UUID,
        admin_id: uuid.UUID,
        is_active: bool | None = None,
        points_adjustment: int | None = None,
        points_description: str | None = None,
    ) -> Affiliate:
        """Active toggle and manual points adjustment, both audit logged."""
        try:
            affiliate = await self.session.get(Affiliate, affiliate_id)
            if not affiliate:
                raise NotFoundError("Affiliate not found")

            if is_active is not None and is_active != affiliate.is_active:
                affiliate.is_active = is_active
                await self.audit.record(
                    admin_id,
                    "ACTIVATE" if is_active else "DEACTIVATE",
                    "Affiliate",
                    affiliate.id,
                    {"isActive": is_active},
                )

            if points_adjustment:
                description = points_description or "Manual adjustment by admin"
                tx = await self.ledger.adjust_points(affiliate.user_id, points_adjustment, description, admin_id)
                await self.audit.record(
                    admin_id,
                    "ADJUST_POINTS",
                    "Affiliate",
                    affiliate.id,
                    {
                        "adjustment": points_adjustment,
                        "description": description,
                        "before": tx.balance_before,
                        "after": tx.balance_after,
                    },
                )

            await self.session.commit()
        except (NotFoundError, BusinessRuleError):
            await self.session.rollback()
            raise
        logging.info(f"Affiliate {affiliate_id} updated by admin {admin_id}")
        return await self.get(affiliate_id)
