import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.security import get_current_user_id
from schemas import Page
from services.coupons import CartLine
from services.effects.queue import EffectQueue
from services.exceptions import BusinessRuleError, NotFoundError
from services.orders import OrderService
from .schemas import OrderCreate, OrderRead

router = APIRouter()


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED, summary="Place an order")
async def place_order(
    dto: OrderCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Stores the order with its lines and applies the coupon, then runs the affiliate
    side effects (referral activation and points, own purchase points, redemption
    status) before answering.

    Request status:
    - 201 Created - order stored
    - 400 Bad Request - empty cart or coupon rejected
    - 401 Unauthorized - missing `X-User-Id`
    """
    items = [
        CartLine(product_id=i.product_id, category_id=i.category_id, quantity=i.quantity, unit_price=i.unit_price)
        for i in dto.items
    ]
    service = OrderService(session)
    try:
        order, effect_ids = await service.place_order(user_id, items, dto.coupon_code, dto.shipping_address)
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    response = OrderRead.model_validate(order)
    await EffectQueue(session).drain(ids=effect_ids)
    return response


@router.get("", response_model=Page[OrderRead], summary="My orders")
async def list_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
):
    orders, total = await OrderService(session).list_orders(user_id, page, per_page)
    return Page[OrderRead](
        items=[OrderRead.model_validate(o) for o in orders], total=total, page=page, per_page=per_page
    )
