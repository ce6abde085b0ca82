from decimal import Decimal

import pytest
from sqlalchemy.future import select

from api.models import PointsRedemption, PointsTransactionType, RedemptionStatus
from services.points.ledger import PointsLedger


async def register(client, email: str, referral_code: str | None = None) -> str:
    body = {"email": email, "password": "secret-pass", "name": email.split("@")[0]}
    if referral_code:
        body["referralCode"] = referral_code
    response = await client.post("/auth/register", json=body)
    assert response.status_code == 201, response.text
    assert response.json()["message"] == "User created successfully"
    return response.json()["userId"]


async def test_health_check_needs_no_key(client):
    response = await client.get("/check-health", headers={"X-API-Key": ""})
    assert response.status_code == 200


async def test_service_key_is_required(client):
    response = await client.get("/affiliate", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid service key"}


async def test_user_header_is_required(client):
    response = await client.get("/affiliate")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}

    response = await client.get("/affiliate", headers={"X-User-Id": "not-a-uuid"})
    assert response.status_code == 401


async def test_duplicate_registration(client):
    await register(client, "dup@example.com")
    response = await client.post(
        "/auth/register", json={"email": "DUP@example.com", "password": "secret-pass", "name": "Again"}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "User with this email already exists"}


async def test_registration_validation(client):
    response = await client.post("/auth/register", json={"email": "bad", "password": "short", "name": "X"})
    assert response.status_code == 422


async def test_referral_signup_then_first_order(client, as_user, referral_rules):
    owner_id = await register(client, "owner@example.com")
    dashboard = (await client.get("/affiliate", headers=as_user(owner_id))).json()
    code = dashboard["affiliateCode"]
    assert code.startswith("OWNER")
    assert dashboard["affiliateLink"].endswith(f"/?ref={code}")
    assert dashboard["tier"] == "BRONZE"
    assert dashboard["tierBenefits"]["commissionBonus"] == 0
    assert dashboard["pointsBalance"] == 0

    assert (await client.get("/affiliate/validate-code", params={"code": code.lower()})).json() == {"valid": True}
    assert (await client.get("/affiliate/validate-code", params={"code": "NOPE"})).json() == {"valid": False}

    click = await client.post("/affiliate/track-click", json={"affiliateCode": code})
    assert click.status_code == 200
    assert click.json()["success"] is True
    unknown = await client.post("/affiliate/track-click", json={"affiliateCode": "NOPE"})
    assert unknown.status_code == 404

    friend_id = await register(client, "friend@example.com", referral_code=code)
    dashboard = (await client.get("/affiliate", headers=as_user(owner_id))).json()
    assert dashboard["pointsBalance"] == 50
    assert dashboard["totalReferrals"] == 1
    assert dashboard["activeReferrals"] == 0

    order = await client.post(
        "/orders",
        headers=as_user(friend_id),
        json={"items": [{"productId": "gel-1", "quantity": 2, "unitPrice": "20.00"}]},
    )
    assert order.status_code == 201, order.text
    assert Decimal(order.json()["total"]) == Decimal("40")
    assert order.json()["affiliateReferralId"] is not None

    dashboard = (await client.get("/affiliate", headers=as_user(owner_id))).json()
    assert dashboard["pointsBalance"] == 70
    assert dashboard["totalEarnings"] == 70
    assert dashboard["pointsThisMonth"] == 70
    assert dashboard["activeReferrals"] == 1

    referrals = (await client.get("/affiliate/referrals", headers=as_user(owner_id))).json()
    assert referrals["total"] == 1
    referral = referrals["referrals"][0]
    assert referral["status"] == "ACTIVE"
    assert referral["referredUser"]["email"] == "friend@example.com"
    assert referral["totalOrders"] == 1
    assert Decimal(referral["totalRevenue"]) == Decimal("40")
    assert referral["firstOrderId"] == order.json()["id"]

    history = (await client.get("/affiliate/points-history", headers=as_user(owner_id))).json()
    assert history["total"] == 2
    assert [t["amount"] for t in history["items"]] == [20, 50]
    assert history["items"][0]["balanceAfter"] == 70

    analytics = (await client.get("/affiliate/analytics", headers=as_user(owner_id))).json()
    assert analytics["totalClicks"] == 1
    assert analytics["convertedClicks"] == 1
    assert analytics["conversionRate"] == 100.0
    assert analytics["funnel"] == {"clicks": 1, "registrations": 1, "referrals": 1, "activeReferrals": 1}

    breakdown = (await client.get("/affiliate/earnings-breakdown", headers=as_user(owner_id))).json()
    assert breakdown["period"] == "month"
    assert breakdown["breakdown"][0]["total"] == 70
    assert breakdown["breakdown"][0]["byType"] == {"AFFILIATE_REFERRAL": 50, "AFFILIATE_PURCHASE": 20}

    orders = (await client.get("/orders", headers=as_user(friend_id))).json()
    assert orders["total"] == 1
    assert orders["items"][0]["items"][0]["productId"] == "gel-1"


async def test_unknown_referral_code_does_not_block_signup(client, as_user, referral_rules):
    user_id = await register(client, "solo@example.com", referral_code="GHOST123")
    dashboard = (await client.get("/affiliate", headers=as_user(user_id))).json()
    assert dashboard["totalReferrals"] == 0
    assert dashboard["pointsBalance"] == 0


@pytest.fixture
async def funded(session, make_user):
    user = await make_user("spender@example.com")
    await PointsLedger(session).award_points(user.id, 120, PointsTransactionType.AFFILIATE_REFERRAL)
    await session.commit()
    return user


async def test_redeem_reward_and_use_coupon(client, as_user, session_maker, funded, make_reward):
    reward = await make_reward(100, name="10% off", stock=10)

    listed = (await client.get("/rewards")).json()
    assert [r["id"] for r in listed] == [str(reward.id)]

    redeemed = await client.post("/rewards/redeem", headers=as_user(funded), json={"rewardId": str(reward.id)})
    assert redeemed.status_code == 200, redeemed.text
    code = redeemed.json()["couponCode"]
    assert code.startswith("REW")

    again = await client.post("/rewards/redeem", headers=as_user(funded), json={"rewardId": str(reward.id)})
    assert again.status_code == 400
    assert "Insufficient points" in again.json()["error"]

    check = await client.post(
        "/coupons/validate", headers=as_user(funded), json={"code": code, "subtotal": "50.00"}
    )
    assert check.status_code == 200
    assert Decimal(check.json()["discountAmount"]) == Decimal("5")
    assert check.json()["coupon"]["source"] == "REDEMPTION"

    coupons = (await client.get("/rewards/my-coupons", headers=as_user(funded))).json()
    assert coupons["total"] == 1
    assert coupons["redemptions"][0]["status"] == "ACTIVE"

    order = await client.post(
        "/orders",
        headers=as_user(funded),
        json={"items": [{"productId": "gel-1", "unitPrice": "50.00"}], "couponCode": code},
    )
    assert order.status_code == 201, order.text
    assert Decimal(order.json()["discountAmount"]) == Decimal("5")
    assert Decimal(order.json()["total"]) == Decimal("45")

    coupons = (await client.get("/rewards/my-coupons", headers=as_user(funded))).json()
    assert coupons["redemptions"][0]["status"] == "USED"
    assert (await client.get("/rewards/my-coupons", params={"status": "active"}, headers=as_user(funded))).json()[
        "total"
    ] == 0

    async with session_maker() as fresh:
        redemption = await fresh.scalar(select(PointsRedemption))
        assert redemption.status == RedemptionStatus.USED
        assert redemption.used_at is not None

    reuse = await client.post(
        "/orders",
        headers=as_user(funded),
        json={"items": [{"productId": "gel-1", "unitPrice": "50.00"}], "couponCode": code},
    )
    assert reuse.status_code == 400


async def test_coupon_errors(client, as_user, funded, make_coupon):
    await make_coupon("MIN100", min_purchase_amount=Decimal("100"))

    missing = await client.post("/coupons/validate", headers=as_user(funded), json={"code": "NONE", "subtotal": "10"})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Invalid coupon code"}

    small = await client.post("/coupons/validate", headers=as_user(funded), json={"code": "MIN100", "subtotal": "10"})
    assert small.status_code == 400

    order = await client.post(
        "/orders",
        headers=as_user(funded),
        json={"items": [{"productId": "gel-1", "unitPrice": "10.00"}], "couponCode": "NONE"},
    )
    assert order.status_code == 400

    empty = await client.post("/orders", headers=as_user(funded), json={"items": []})
    assert empty.status_code == 400
    assert empty.json() == {"error": "Cart is empty"}


async def test_redeem_unknown_reward(client, as_user, funded):
    response = await client.post(
        "/rewards/redeem", headers=as_user(funded), json={"rewardId": "00000000-0000-0000-0000-000000000000"}
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Reward not found"}


async def test_top_referrals_and_monthly_stats(client, as_user, referral_rules):
    owner_id = await register(client, "leader@example.com")
    code = (await client.get("/affiliate", headers=as_user(owner_id))).json()["affiliateCode"]
    small = await register(client, "small@example.com", referral_code=code)
    big = await register(client, "big@example.com", referral_code=code)
    await register(client, "idle@example.com", referral_code=code)

    for buyer, price in ((small, "10.00"), (big, "90.00"), (big, "15.00")):
        response = await client.post(
            "/orders", headers=as_user(buyer), json={"items": [{"productId": "gel-1", "unitPrice": price}]}
        )
        assert response.status_code == 201

    top = (await client.get("/affiliate/top-referrals", headers=as_user(owner_id), params={"limit": 2})).json()
    assert [r["referredUser"]["email"] for r in top["referrals"]] == ["big@example.com", "small@example.com"]
    assert Decimal(top["referrals"][0]["totalRevenue"]) == Decimal("105")
    assert top["referrals"][0]["totalOrders"] == 2

    stats = (await client.get("/affiliate/referrals-stats", headers=as_user(owner_id))).json()["stats"]
    assert len(stats) == 1
    assert stats[0]["total"] == 3
    assert stats[0]["active"] == 2
    assert len(stats[0]["month"]) == 7
