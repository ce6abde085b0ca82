from datetime import timedelta
from decimal import Decimal

import pytest

from api.models import Coupon, DiscountType
from services.coupons import CartLine, CouponService, calculate_discount
from services.exceptions import BusinessRuleError, ConflictError, NotFoundError
from utils.clock import utcnow


def coupon(discount_type, value, cap=None) -> Coupon:
    return Coupon(discount_type=discount_type, discount_value=Decimal(value), max_discount_amount=cap)


def test_percentage_discount_rounds_and_caps():
    assert calculate_discount(coupon(DiscountType.PERCENTAGE, "15"), Decimal("33.33")) == Decimal("5.00")
    assert calculate_discount(coupon(DiscountType.PERCENTAGE, "50", Decimal("20")), Decimal("100")) == Decimal("20.00")


def test_fixed_discount_never_exceeds_subtotal():
    assert calculate_discount(coupon(DiscountType.FIXED, "25"), Decimal("100")) == Decimal("25.00")
    assert calculate_discount(coupon(DiscountType.FIXED, "25"), Decimal("10")) == Decimal("10.00")


@pytest.fixture
async def shopper(make_user):
    return await make_user("shopper@example.com")


async def test_validate_returns_discount(session, shopper, make_coupon):
    await make_coupon("SAVE10", min_purchase_amount=Decimal("20"))
    check = await CouponService(session).validate(" save10 ", shopper.id, Decimal("80"))
    assert check.coupon.code == "SAVE10"
    assert check.discount_amount == Decimal("8.00")


async def test_validate_unknown_code(session, shopper):
    with pytest.raises(NotFoundError):
        await CouponService(session).validate("MISSING", shopper.id, Decimal("10"))
    with pytest.raises(BusinessRuleError):
        await CouponService(session).validate("  ", shopper.id, Decimal("10"))


@pytest.mark.parametrize("kwargs,subtotal,message", [
    ({"is_active": False}, "50", "not active"),
    ({"valid_until_days": -1}, "50", "expired"),
    ({"valid_from_days": 2}, "50", "not yet valid"),
    ({"usage_limit": 3, "used_count": 3}, "50", "usage limit"),
    ({"min_purchase_amount": Decimal("60")}, "50", "Minimum purchase amount of 60.00"),
])
async def test_validate_rejections(session, shopper, make_coupon, kwargs, subtotal, message):
    kwargs = dict(kwargs)
    now = utcnow()
    if "valid_until_days" in kwargs:
        kwargs["valid_until"] = now + timedelta(days=kwargs.pop("valid_until_days"))
    if "valid_from_days" in kwargs:
        kwargs["valid_from"] = now + timedelta(days=kwargs.pop("valid_from_days"))
    await make_coupon("BROKEN", **kwargs)

    with pytest.raises(BusinessRuleError, match=message):
        await CouponService(session).validate("BROKEN", shopper.id, Decimal(subtotal))


async def test_assigned_coupon_belongs_to_its_owner(session, shopper, make_user, make_coupon):
    stranger = await make_user("stranger@example.com")
    await make_coupon("REW1", assigned_user_id=shopper.id)
    service = CouponService(session)

    await service.validate("REW1", shopper.id, Decimal("10"))
    with pytest.raises(BusinessRuleError, match="another customer"):
        await service.validate("REW1", stranger.id, Decimal("10"))


async def test_product_and_category_restrictions(session, shopper, make_coupon):
    await make_coupon("GELS", included_products=["gel-1", "gel-2"])
    await make_coupon("NOSALE", excluded_categories=["sale"])
    service = CouponService(session)

    await service.validate("GELS", shopper.id, Decimal("10"), [CartLine("gel-1"), CartLine("gel-2")])
    with pytest.raises(BusinessRuleError, match="remove other items"):
        await service.validate("GELS", shopper.id, Decimal("10"), [CartLine("gel-1"), CartLine("file-9")])
    with pytest.raises(BusinessRuleError, match="specific products"):
        await service.validate("GELS", shopper.id, Decimal("10"), [CartLine("file-9")])
    with pytest.raises(BusinessRuleError, match="certain categories"):
        await service.validate("NOSALE", shopper.id, Decimal("10"), [CartLine("x", "sale")])


async def test_consume_stops_at_usage_limit(session, make_coupon):
    await make_coupon("ONCE", usage_limit=1)
    service = CouponService(session)

    await service.consume("once")
    with pytest.raises(BusinessRuleError):
        await service.consume("ONCE")
    await session.commit()

    stored = await service.get_by_code("ONCE")
    await session.refresh(stored)
    assert stored.used_count == 1


async def test_admin_create_rejects_duplicate_code(session, make_coupon):
    await make_coupon("TAKEN")
    service = CouponService(session)
    with pytest.raises(ConflictError):
        await service.create({
            "code": "taken",
            "discount_type": DiscountType.FIXED,
            "discount_value": Decimal("5"),
        })

    created = await service.create({
        "code": "fresh5",
        "discount_type": DiscountType.FIXED,
        "discount_value": Decimal("5"),
        "valid_from": None,
    })
    assert created.code == "FRESH5"
    assert created.valid_from is not None

    deactivated = await service.deactivate(created.id)
    assert deactivated.is_active is False
    rows, total = await service.list_coupons(is_active=True)
    assert [c.code for c in rows] == ["TAKEN"]
