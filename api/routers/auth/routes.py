from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.crud.user.schema import UserRegister, UserRegistered
from api.crud.user import UserService
from services.effects.queue import EffectQueue
from services.exceptions import BusinessRuleError


router = APIRouter()


def get_user_service() -> UserService:
    return UserService()


@router.post(
    "/register",
    response_model=UserRegistered,
    status_code=status.HTTP_201_CREATED,
    summary="Customer registration",
)
async def register_user(
    dto: UserRegister,
    session: AsyncSession = Depends(get_async_session),
    service: UserService = Depends(get_user_service),
):
    """
    Registers a customer account and, when `referralCode` is given, attributes the
    signup to that affiliate.

    Request status:
    - 201 Created - account created
    - 400 Bad Request - a user with this email already exists
    - 422 Unprocessable Entity - invalid body

    > [!important]
    > Request headers:
    > - `X-API-Key: str` - service key (required)

    Input:
    - `email: str`, `password: str` (8+ chars), `name: str`
    - `referralCode: str | None` - affiliate code from the `?ref=` link

    Affiliate creation and referral points never fail the registration: they are
    queued with the account and executed right after it is stored.
    """
    try:
        user, effect_ids = await service.register_user(dto, session)
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    response = UserRegistered(message="User created successfully", user_id=user.id)
    await EffectQueue(session).drain(ids=effect_ids)
    return response
