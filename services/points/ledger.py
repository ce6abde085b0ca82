import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Affiliate, PointsTransaction, PointsTransactionType
from services.affiliate.registry import AffiliateRegistry
from services.exceptions import BusinessRuleError
from utils.clock import utcnow


@dataclass
class LedgerFilters:
    user_id: uuid.UUID | None = None
    type: PointsTransactionType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    per_page: int = 50


class PointsLedger:
    """
    Append-only points ledger. The affiliate row carries the running balance and
    is locked for every write, so balances chain without gaps.
    Nothing here commits; callers own the transaction.
    """
    def __init__(self, session: AsyncSession):
        self.session = session
        self.registry = AffiliateRegistry(session)

    async def lock_affiliate(self, user_id: uuid.UUID) -> Affiliate:
        stmt = (
            select(Affiliate)
            .where(Affiliate.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        affiliate = await self.session.scalar(stmt)
        if affiliate is None:
            await self.registry.get_or_create_affiliate(user_id)
            affiliate = await self.session.scalar(stmt)
        return affiliate

    async def find_by_dedupe_key(self, dedupe_key: str) -> PointsTransaction | None:
        return await self.session.scalar(
            select(PointsTransaction).where(PointsTransaction.dedupe_key == dedupe_key)
        )

    async def award_points(
        self,
        user_id: uuid.UUID,
        amount: int,
        type: PointsTransactionType,
        related_entity_id: uuid.UUID | None = None,
        description: str | None = None,
        dedupe_key: str | None = None,
    ) -> PointsTransaction:
        if amount == 0:
            raise BusinessRuleError("Points amount must not be zero")

        if dedupe_key:
            existing = await self.find_by_dedupe_key(dedupe_key)
            if existing:
                logging.info(f"Points award {dedupe_key} already recorded, skipping")
                return existing

        affiliate = await self.lock_affiliate(user_id)
        if dedupe_key:
            # a concurrent writer may have recorded it while we waited for the lock
            existing = await self.find_by_dedupe_key(dedupe_key)
            if existing:
                logging.info(f"Points award {dedupe_key} recorded concurrently, skipping")
                return existing
        balance_before = affiliate.current_points_balance
        balance_after = balance_before + amount

        tx = PointsTransaction(
            user_id=user_id,
            amount=amount,
            type=type,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description or type.value,
            related_entity_id=related_entity_id,
            dedupe_key=dedupe_key,
        )
        self.session.add(tx)

        affiliate.current_points_balance = balance_after
        if amount > 0:
            affiliate.total_points_earned += amount
        await self.session.flush()

        logging.info(f"Points {amount:+d} ({type.value}) for user {user_id}: {balance_before} -> {balance_after}")
        return tx

    async def adjust_points(
        self,
        user_id: uuid.UUID,
        amount: int,
        description: str,
        admin_id: uuid.UUID,
    ) -> PointsTransaction:
        if amount == 0:
            raise BusinessRuleError("Points adjustment cannot be zero")
        affiliate = await self.lock_affiliate(user_id)
        if affiliate.current_points_balance + amount < 0:
            raise BusinessRuleError("Points balance cannot be negative")
        return await self.award_points(
            user_id,
            amount,
            PointsTransactionType.MANUAL_ADJUSTMENT,
            related_entity_id=admin_id,
            description=description,
        )

    async def get_balance(self, user_id: uuid.UUID) -> int:
        balance = await self.session.scalar(
            select(Affiliate.current_points_balance).where(Affiliate.user_id == user_id)
        )
        return balance or 0

    async def points_this_month(self, user_id: uuid.UUID, now: datetime | None = None) -> int:
        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        total = await self.session.scalar(
            select(func.coalesce(func.sum(PointsTransaction.amount), 0)).where(
                PointsTransaction.user_id == user_id,
                PointsTransaction.amount > 0,
                PointsTransaction.created_at >= month_start,
            )
        )
        return int(total or 0)

    async def history(self, user_id: uuid.UUID, page: int = 1, per_page: int = 20) -> tuple[list[PointsTransaction], int]:
        return await self.search(LedgerFilters(user_id=user_id, page=page, per_page=per_page))

    async def search(self, filters: LedgerFilters) -> tuple[list[PointsTransaction], int]:
        conditions = []
        if filters.user_id:
            conditions.append(PointsTransaction.user_id == filters.user_id)
        if filters.type:
            conditions.append(PointsTransaction.type == filters.type)
        if filters.start_date:
            conditions.append(PointsTransaction.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(PointsTransaction.created_at <= filters.end_date)

        total = await self.session.scalar(
            select(func.count()).select_from(PointsTransaction).where(*conditions)
        )
        page = max(filters.page, 1)
        rows = await self.session.execute(
            select(PointsTransaction)
            .where(*conditions)
            .order_by(PointsTransaction.created_at.desc(), PointsTransaction.balance_after.desc())
            .offset((page - 1) * filters.per_page)
            .limit(filters.per_page)
        )
        return list(rows.scalars().all()), total or 0

    async def earnings_breakdown(self, user_id: uuid.UUID, period: str = "month") -> list[dict]:
        """Positive amounts bucketed by calendar month ("YYYY-MM") or year ("YYYY")."""
        if period not in ("month", "year"):
            raise BusinessRuleError("period must be 'month' or 'year'")
        rows = await self.session.execute(
            select(PointsTransaction.created_at, PointsTransaction.amount, PointsTransaction.type).where(
                PointsTransaction.user_id == user_id,
                PointsTransaction.amount > 0,
            )
        )
        buckets: dict[str, dict] = {}
        for created_at, amount, type in rows.all():
            key = created_at.strftime("%Y-%m" if period == "month" else "%Y")
            bucket = buckets.setdefault(key, {"period": key, "total": 0, "byType": {}})
            bucket["total"] += amount
            bucket["byType"][type.value] = bucket["byType"].get(type.value, 0) + amount
        return [buckets[k] for k in sorted(buckets)]
