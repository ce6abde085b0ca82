import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from api.security import get_current_user_id
from services.coupons import CartLine, CouponService, get_coupon_service
from services.exceptions import BusinessRuleError, NotFoundError
from .schemas import CouponRead, CouponValidate, CouponValidation

router = APIRouter()


@router.post("/validate", response_model=CouponValidation, summary="Check a coupon against a cart")
async def validate_coupon(
    dto: CouponValidate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: CouponService = Depends(get_coupon_service),
):
    """
    Request status:
    - 200 OK - coupon applies, `discountAmount` is what the order would get
    - 400 Bad Request - inactive, expired, exhausted, not yours, cart restrictions or minimum purchase
    - 404 Not Found - unknown code
    """
    items = [
        CartLine(product_id=i.product_id, category_id=i.category_id, quantity=i.quantity, unit_price=i.unit_price)
        for i in dto.items or []
    ]
    try:
        check = await service.validate(dto.code, user_id, dto.subtotal, items)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CouponValidation(
        valid=True, coupon=CouponRead.model_validate(check.coupon), discount_amount=check.discount_amount
    )
