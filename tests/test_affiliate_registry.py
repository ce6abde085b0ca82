import uuid
from datetime import timedelta

import pytest
from sqlalchemy.future import select

from api.models import Affiliate, AffiliateLinkClick, AffiliateReferral, AffiliateTier, ReferralStatus
from services.affiliate.referrals import ReferralTracker
from services.affiliate.registry import AffiliateRegistry
from services.exceptions import NotFoundError
from utils.clock import utcnow
from utils.referral import RefLink


class FixedSuffix(RefLink):
    def _random_suffix(self, size: int) -> str:
        return "A" * size


def test_code_base_keeps_alphanumerics_of_local_part():
    ref_link = RefLink()
    assert ref_link.code_base("john.doe+shop@example.com") == "JOHNDOES"
    assert ref_link.code_base("a-b@example.com") == "AB"
    code = ref_link.affiliate_code_candidate("jane@example.com")
    assert code.startswith("JANE") and len(code) == 8
    assert code == code.upper()


async def test_get_or_create_affiliate_is_idempotent(session, make_user):
    user = await make_user("jane.doe@example.com")
    registry = AffiliateRegistry(session, FixedSuffix())

    affiliate = await registry.get_or_create_affiliate(user.id)
    again = await registry.get_or_create_affiliate(user.id)
    await session.commit()

    assert again.id == affiliate.id
    assert affiliate.affiliate_code == "JANEDOEAAAA"
    assert affiliate.tier == AffiliateTier.BRONZE
    assert affiliate.is_active
    assert affiliate.approved_at is not None
    count = len((await session.execute(select(Affiliate))).scalars().all())
    assert count == 1


async def test_code_collision_falls_back_to_user_id(session, make_user):
    first = await make_user("jane.doe@example.com")
    second = await make_user("jane.doe@example.org")
    registry = AffiliateRegistry(session, FixedSuffix())

    await registry.get_or_create_affiliate(first.id)
    fallback = await registry.get_or_create_affiliate(second.id)

    assert fallback.affiliate_code == "AFF" + second.id.hex[:8].upper()


def miss_once(real):
    """Lookup that misses on its first call, as when another session has not committed yet."""
    calls = []

    async def lookup(*args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await real(*args)

    return lookup


async def test_concurrent_create_reuses_existing_affiliate(session, make_user, monkeypatch):
    user = await make_user("jane.doe@example.com")
    winner = await AffiliateRegistry(session, FixedSuffix()).get_or_create_affiliate(user.id)
    winner_id, user_id = winner.id, user.id
    await session.commit()

    registry = AffiliateRegistry(session, FixedSuffix())
    monkeypatch.setattr(registry, "get_by_user_id", miss_once(registry.get_by_user_id))

    affiliate = await registry.get_or_create_affiliate(user_id)
    await session.commit()

    assert affiliate.id == winner_id
    rows = (await session.execute(select(Affiliate).where(Affiliate.user_id == user_id))).scalars().all()
    assert len(rows) == 1


async def test_concurrent_referral_keeps_the_first(session, make_user, monkeypatch):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    tracker = ReferralTracker(session)
    first = await tracker.create_referral(affiliate.id, friend.id)
    affiliate_id, friend_id, first_id = affiliate.id, friend.id, first.id
    await session.commit()

    monkeypatch.setattr(tracker, "get_referral_by_user_id", miss_once(tracker.get_referral_by_user_id))
    assert await tracker.create_referral(affiliate_id, friend_id) is None
    await session.commit()

    rows = (await session.execute(select(AffiliateReferral))).scalars().all()
    assert [r.id for r in rows] == [first_id]
    stored = await session.get(Affiliate, affiliate_id, populate_existing=True)
    assert stored.total_referrals == 1


async def test_get_affiliate_by_code_is_case_insensitive(session, make_user):
    user = await make_user("jane@example.com")
    registry = AffiliateRegistry(session, FixedSuffix())
    affiliate = await registry.get_or_create_affiliate(user.id)

    found = await registry.get_affiliate_by_code("  janeaaaa ")
    assert found.id == affiliate.id
    assert await registry.get_affiliate_by_code("NOPE") is None


async def test_unknown_user_cannot_become_affiliate(session):
    with pytest.raises(NotFoundError):
        await AffiliateRegistry(session).get_or_create_affiliate(uuid.uuid4())


async def test_create_referral_skips_self_and_repeat(session, make_user):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    tracker = ReferralTracker(session)

    assert await tracker.create_referral(affiliate.id, owner.id) is None

    referral = await tracker.create_referral(affiliate.id, friend.id)
    assert referral.status == ReferralStatus.PENDING
    assert await tracker.create_referral(affiliate.id, friend.id) is None
    await session.commit()

    await session.refresh(affiliate)
    assert affiliate.total_referrals == 1
    assert (await tracker.get_referral_by_user_id(friend.id)).id == referral.id


async def test_activate_referral_only_once(session, make_user):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    tracker = ReferralTracker(session)
    referral = await tracker.create_referral(affiliate.id, friend.id)

    first_order, second_order = uuid.uuid4(), uuid.uuid4()
    assert await tracker.activate_referral(referral.id, first_order) is True
    assert await tracker.activate_referral(referral.id, second_order) is False
    await session.commit()

    refreshed = await session.get(AffiliateReferral, referral.id, populate_existing=True)
    assert refreshed.status == ReferralStatus.ACTIVE
    assert refreshed.first_order_id == first_order
    await session.refresh(affiliate)
    assert affiliate.active_referrals == 1


async def test_track_click_requires_active_code(session, make_user):
    owner = await make_user("owner@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    tracker = ReferralTracker(session)

    click = await tracker.track_click(affiliate.affiliate_code.lower(), "10.0.0.1", "pytest")
    assert click.affiliate_id == affiliate.id
    assert click.converted is False

    with pytest.raises(NotFoundError):
        await tracker.track_click("UNKNOWN", None, None)

    affiliate.is_active = False
    await session.flush()
    with pytest.raises(NotFoundError):
        await tracker.track_click(affiliate.affiliate_code, None, None)


async def test_convert_clicks_uses_attribution_window(session, make_user):
    owner = await make_user("owner@example.com")
    friend = await make_user("friend@example.com")
    affiliate = await AffiliateRegistry(session).get_or_create_affiliate(owner.id)
    now = utcnow()
    recent = AffiliateLinkClick(affiliate_id=affiliate.id, clicked_at=now - timedelta(days=2))
    stale = AffiliateLinkClick(affiliate_id=affiliate.id, clicked_at=now - timedelta(days=45))
    session.add_all([recent, stale])
    await session.flush()

    converted = await ReferralTracker(session).convert_clicks(affiliate.id, friend.id, now)
    await session.commit()

    assert converted == 1
    recent = await session.get(AffiliateLinkClick, recent.id, populate_existing=True)
    stale = await session.get(AffiliateLinkClick, stale.id, populate_existing=True)
    assert recent.converted and recent.converted_user_id == friend.id
    assert not stale.converted
