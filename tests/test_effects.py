import uuid
from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.future import select

from api.models import (
    AffiliateReferral,
    EffectStatus,
    Notification,
    PendingEffect,
    PointsActionType,
    PointsTransaction,
    ReferralStatus,
)
from services.affiliate.registry import AffiliateRegistry
from services.coupons import CartLine
from services.effects.handlers import EffectHandlers
from services.effects.queue import EffectKind, EffectQueue
from services.orders import OrderService
from services.points.ledger import PointsLedger


async def test_enqueue_is_deduplicated(session):
    queue = EffectQueue(session)
    first = await queue.enqueue(EffectKind.OWN_PURCHASE, {"order_id": "x"}, "own-purchase:x")
    again = await queue.enqueue(EffectKind.OWN_PURCHASE, {"order_id": "x"}, "own-purchase:x")
    await session.commit()

    assert again.id == first.id
    assert await session.scalar(select(func.count()).select_from(PendingEffect)) == 1


async def test_failed_effect_is_recorded_and_retried(session):
    queue = EffectQueue(session)
    missing = str(uuid.uuid4())
    effect = await queue.enqueue(EffectKind.OWN_PURCHASE, {"order_id": missing}, f"own-purchase:{missing}")
    effect_id = effect.id
    await session.commit()

    assert await queue.drain() == {"processed": 0, "failed": 1}
    stored = await session.get(PendingEffect, effect_id, populate_existing=True)
    assert stored.status == EffectStatus.FAILED
    assert stored.attempts == 1
    assert "not found" in stored.last_error

    await queue.drain()
    stored = await session.get(PendingEffect, effect_id, populate_existing=True)
    assert stored.attempts == 2
    assert await queue.list_effects(EffectStatus.FAILED) == [stored]


async def test_referral_signup_handler_replays_without_duplicates(session, make_user, referral_rules):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    await session.commit()

    payload = {"user_id": str(friend.id), "referral_code": affiliate.affiliate_code.lower()}
    handlers = EffectHandlers(session)
    await handlers.referral_signup(payload)
    await session.commit()
    await handlers.referral_signup(payload)
    await session.commit()

    assert await session.scalar(select(func.count()).select_from(AffiliateReferral)) == 1
    assert await session.scalar(select(func.count()).select_from(PointsTransaction)) == 1
    assert await PointsLedger(session).get_balance(owner.id) == 50
    await session.refresh(affiliate)
    assert affiliate.total_referrals == 1


async def test_referral_signup_ignores_self_and_unknown_codes(session, make_user, referral_rules):
    owner = await make_user("owner@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    await session.commit()

    handlers = EffectHandlers(session)
    await handlers.referral_signup({"user_id": str(owner.id), "referral_code": affiliate.affiliate_code})
    await handlers.referral_signup({"user_id": str(owner.id), "referral_code": "NOSUCHCODE"})
    await session.commit()

    assert await session.scalar(select(func.count()).select_from(AffiliateReferral)) == 0
    assert await PointsLedger(session).get_balance(owner.id) == 0


async def test_order_effects_award_first_then_repeat(session, make_user, referral_rules, points_config):
    await points_config(PointsActionType.OWN_PURCHASE, 0, tiers=[
        {"min_order_value": "0", "max_order_value": None, "points": 3},
    ])
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    await session.commit()
    await EffectHandlers(session).referral_signup(
        {"user_id": str(friend.id), "referral_code": affiliate.affiliate_code}
    )
    await session.commit()

    orders = OrderService(session)
    queue = EffectQueue(session)
    first, first_effects = await orders.place_order(friend.id, [CartLine("gel-1", quantity=2, unit_price=Decimal("12.50"))])
    assert await queue.drain(ids=first_effects) == {"processed": 2, "failed": 0}
    second, second_effects = await orders.place_order(friend.id, [CartLine("gel-2", unit_price=Decimal("5"))])
    await queue.drain(ids=second_effects)

    # replaying every effect must not award anything twice
    for effect_id in first_effects + second_effects:
        effect = await session.get(PendingEffect, effect_id)
        effect.status = EffectStatus.PENDING
    await session.commit()
    assert await queue.drain() == {"processed": 4, "failed": 0}

    assert await PointsLedger(session).get_balance(owner.id) == 50 + 20 + 10
    assert await PointsLedger(session).get_balance(friend.id) == 3 + 3

    referral = await session.scalar(
        select(AffiliateReferral).execution_options(populate_existing=True)
    )
    assert referral.status == ReferralStatus.ACTIVE
    assert referral.first_order_id == first.id
    assert second.affiliate_referral_id == referral.id
    await session.refresh(affiliate)
    assert affiliate.active_referrals == 1


async def test_referral_milestone_is_sent_once(session, make_user, referral_rules):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    owner_id, friend_id = owner.id, friend.id
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner_id)
    await session.commit()

    queue = EffectQueue(session)
    await EffectHandlers(session).referral_signup(
        {"user_id": str(friend_id), "referral_code": affiliate.affiliate_code}
    )
    await session.commit()

    orders = OrderService(session)
    for sku in ("gel-1", "gel-2", "gel-3"):
        _, effect_ids = await orders.place_order(friend_id, [CartLine(sku, unit_price=Decimal("10"))])
        await queue.drain(ids=effect_ids)

    titles = (
        await session.execute(select(Notification.title).where(Notification.user_id == owner_id))
    ).scalars().all()
    assert titles.count("First Referral!") == 1


async def test_drain_skips_effects_finished_by_another_drainer(session):
    queue = EffectQueue(session)
    first = await queue.enqueue(EffectKind.COUPON_REDEEMED, {"coupon_code": "A"}, "coupon-redeemed:a")
    second = await queue.enqueue(EffectKind.COUPON_REDEEMED, {"coupon_code": "B"}, "coupon-redeemed:b")
    first_id, second_id = first.id, second.id
    await session.commit()

    handled = []

    async def finish_the_other(payload):
        handled.append(payload["coupon_code"])
        # the concurrent drainer completes the second effect meanwhile
        await session.execute(
            update(PendingEffect).where(PendingEffect.id == second_id).values(status=EffectStatus.DONE)
        )

    queue.dispatch[EffectKind.COUPON_REDEEMED] = finish_the_other
    assert await queue.drain(ids=[first_id, second_id]) == {"processed": 1, "failed": 0}
    assert handled == ["A"]

    stored = await session.get(PendingEffect, second_id, populate_existing=True)
    assert stored.status == EffectStatus.DONE
    assert stored.attempts == 0
