import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models.user import User
from api.security import hash_password
from services.effects.queue import EffectKind, EffectQueue
from services.exceptions import BusinessRuleError, NotFoundError
from .interface import UserInterface
from .schema import UserRegister


class UserNotFound(NotFoundError): ...


class UserService(UserInterface):
    async def register_user(self, dto: UserRegister, session: AsyncSession) -> tuple[User, list[uuid.UUID]]:
        """
        Creates the account. Affiliate bootstrap and referral attribution are queued
        in the same transaction and run after commit, so they never block signup.
        """
        email = dto.email.strip().lower()
        exists = await session.scalar(select(User.id).where(User.email == email))
        if exists:
            raise BusinessRuleError("User with this email already exists")

        user = User(email=email, name=dto.name.strip(), password_hash=hash_password(dto.password))
        session.add(user)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise BusinessRuleError("User with this email already exists")

        queue = EffectQueue(session)
        queued = [
            await queue.enqueue(
                EffectKind.AFFILIATE_BOOTSTRAP, {"user_id": str(user.id)}, f"affiliate-bootstrap:{user.id}"
            )
        ]
        if dto.referral_code and dto.referral_code.strip():
            queued.append(await queue.enqueue(
                EffectKind.REFERRAL_SIGNUP,
                {"user_id": str(user.id), "referral_code": dto.referral_code.strip()},
                f"referral-signup-user:{user.id}",
            ))
        effect_ids = [e.id for e in queued]

        await session.commit()
        logging.info(f"Registered user {user.id} ({email}), referral code {dto.referral_code!r}")
        return user, effect_ids

    async def get_user(self, user_id: uuid.UUID, session: AsyncSession) -> User:
        user = await session.get(User, user_id)
        if not user:
            raise UserNotFound("User not found")
        return user

    async def get_user_by_email(self, email: str, session: AsyncSession) -> User:
        user = await session.scalar(select(User).where(User.email == email.strip().lower()))
        if not user:
            raise UserNotFound("User not found")
        return user
