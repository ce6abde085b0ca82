from datetime import datetime

import pytest
from sqlalchemy.future import select

from api.models import Affiliate, PointsTransaction, PointsTransactionType
from services.exceptions import BusinessRuleError
from services.points.ledger import LedgerFilters, PointsLedger


@pytest.fixture
async def member(make_user):
    return await make_user("member@biosculpture.test", "Member")


async def test_award_creates_affiliate_and_chains_balances(session, member):
    ledger = PointsLedger(session)
    first = await ledger.award_points(member.id, 50, PointsTransactionType.AFFILIATE_REFERRAL)
    second = await ledger.award_points(member.id, 20, PointsTransactionType.AFFILIATE_PURCHASE)
    debit = await ledger.award_points(member.id, -30, PointsTransactionType.REDEMPTION)
    await session.commit()

    assert (first.balance_before, first.balance_after) == (0, 50)
    assert (second.balance_before, second.balance_after) == (50, 70)
    assert (debit.balance_before, debit.balance_after) == (70, 40)

    affiliate = await session.scalar(select(Affiliate).where(Affiliate.user_id == member.id))
    assert affiliate.current_points_balance == 40
    # debits do not reduce lifetime earnings
    assert affiliate.total_points_earned == 70
    assert await ledger.get_balance(member.id) == 40


async def test_award_rejects_zero(session, member):
    with pytest.raises(BusinessRuleError):
        await PointsLedger(session).award_points(member.id, 0, PointsTransactionType.AFFILIATE_PURCHASE)


async def test_award_with_dedupe_key_is_recorded_once(session, member):
    ledger = PointsLedger(session)
    first = await ledger.award_points(
        member.id, 50, PointsTransactionType.AFFILIATE_REFERRAL, dedupe_key="referral-signup:1"
    )
    again = await ledger.award_points(
        member.id, 50, PointsTransactionType.AFFILIATE_REFERRAL, dedupe_key="referral-signup:1"
    )
    await session.commit()

    assert again.id == first.id
    rows = (await session.execute(select(PointsTransaction))).scalars().all()
    assert len(rows) == 1
    assert await ledger.get_balance(member.id) == 50


async def test_dedupe_key_is_rechecked_under_the_lock(session, member, monkeypatch):
    ledger = PointsLedger(session)
    first = await ledger.award_points(
        member.id, 30, PointsTransactionType.AFFILIATE_PURCHASE, dedupe_key="referral-order:7"
    )
    await session.commit()

    # the first lookup misses, as if the other writer had not committed yet
    lookup = ledger.find_by_dedupe_key
    calls = []

    async def racing_lookup(key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return await lookup(key)

    monkeypatch.setattr(ledger, "find_by_dedupe_key", racing_lookup)
    again = await ledger.award_points(
        member.id, 30, PointsTransactionType.AFFILIATE_PURCHASE, dedupe_key="referral-order:7"
    )

    assert again.id == first.id
    assert await ledger.get_balance(member.id) == 30
    assert len(calls) == 2
    rows = (await session.execute(select(PointsTransaction))).scalars().all()
    assert len(rows) == 1


async def test_adjust_points_refuses_negative_balance(session, member, admin):
    ledger = PointsLedger(session)
    await ledger.award_points(member.id, 10, PointsTransactionType.AFFILIATE_PURCHASE)

    with pytest.raises(BusinessRuleError):
        await ledger.adjust_points(member.id, -11, "Correction", admin.id)
    with pytest.raises(BusinessRuleError):
        await ledger.adjust_points(member.id, 0, "Nothing", admin.id)

    tx = await ledger.adjust_points(member.id, -10, "Correction", admin.id)
    assert tx.type == PointsTransactionType.MANUAL_ADJUSTMENT
    assert tx.balance_after == 0
    assert tx.related_entity_id == admin.id


async def test_get_balance_without_affiliate_is_zero(session, member):
    assert await PointsLedger(session).get_balance(member.id) == 0


async def test_search_filters_and_paginates(session, member, make_user):
    other = await make_user("other@biosculpture.test")
    ledger = PointsLedger(session)
    for amount in (5, 6, 7):
        await ledger.award_points(member.id, amount, PointsTransactionType.AFFILIATE_PURCHASE)
    await ledger.award_points(member.id, -3, PointsTransactionType.REDEMPTION)
    await ledger.award_points(other.id, 100, PointsTransactionType.AFFILIATE_REFERRAL)
    await session.commit()

    rows, total = await ledger.search(LedgerFilters(user_id=member.id))
    assert total == 4
    # newest first
    assert rows[0].amount == -3

    rows, total = await ledger.search(LedgerFilters(type=PointsTransactionType.AFFILIATE_PURCHASE))
    assert total == 3
    assert all(r.user_id == member.id for r in rows)

    rows, total = await ledger.search(LedgerFilters(user_id=member.id, page=2, per_page=3))
    assert total == 4
    assert len(rows) == 1

    rows, total = await ledger.search(LedgerFilters(end_date=datetime(2000, 1, 1)))
    assert (rows, total) == ([], 0)


async def test_points_this_month_counts_only_credits(session, member):
    ledger = PointsLedger(session)
    await ledger.award_points(member.id, 40, PointsTransactionType.AFFILIATE_PURCHASE)
    await ledger.award_points(member.id, -15, PointsTransactionType.REDEMPTION)
    await session.commit()
    assert await ledger.points_this_month(member.id) == 40


async def test_earnings_breakdown_buckets_by_period(session, member):
    ledger = PointsLedger(session)
    session.add_all([
        PointsTransaction(
            user_id=member.id, amount=50, type=PointsTransactionType.AFFILIATE_REFERRAL,
            balance_before=0, balance_after=50, description="signup", created_at=datetime(2025, 1, 5),
        ),
        PointsTransaction(
            user_id=member.id, amount=20, type=PointsTransactionType.AFFILIATE_PURCHASE,
            balance_before=50, balance_after=70, description="order", created_at=datetime(2025, 1, 20),
        ),
        PointsTransaction(
            user_id=member.id, amount=-30, type=PointsTransactionType.REDEMPTION,
            balance_before=70, balance_after=40, description="reward", created_at=datetime(2025, 1, 21),
        ),
        PointsTransaction(
            user_id=member.id, amount=10, type=PointsTransactionType.AFFILIATE_PURCHASE,
            balance_before=40, balance_after=50, description="order", created_at=datetime(2025, 3, 2),
        ),
    ])
    await session.commit()

    monthly = await ledger.earnings_breakdown(member.id, "month")
    assert monthly == [
        {"period": "2025-01", "total": 70, "byType": {"AFFILIATE_REFERRAL": 50, "AFFILIATE_PURCHASE": 20}},
        {"period": "2025-03", "total": 10, "byType": {"AFFILIATE_PURCHASE": 10}},
    ]

    yearly = await ledger.earnings_breakdown(member.id, "year")
    assert yearly == [
        {"period": "2025", "total": 80, "byType": {"AFFILIATE_REFERRAL": 50, "AFFILIATE_PURCHASE": 30}},
    ]

    with pytest.raises(BusinessRuleError):
        await ledger.earnings_breakdown(member.id, "week")
