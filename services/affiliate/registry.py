import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Affiliate, AffiliateTier, User
from config import settings
from services.exceptions import AffiliateCodeConflict, NotFoundError
from utils.clock import utcnow
from utils.referral import RefLink, normalize_code


class AffiliateRegistry:
    def __init__(self, session: AsyncSession, ref_link: RefLink | None = None):
        self.session = session
        self.ref_link = ref_link or RefLink()

    async def _code_taken(self, code: str) -> bool:
        found = await self.session.scalar(select(Affiliate.id).where(Affiliate.affiliate_code == code))
        return found is not None

    async def generate_affiliate_code(self, user_id: uuid.UUID, email: str) -> str:
        """
        Email-derived code with a random suffix. Retries on collision, then falls
        back to a code built from the user id.
        """
        code = self.ref_link.affiliate_code_candidate(email)
        attempts = 0
        while await self._code_taken(code) and attempts < settings.env.AFFILIATE_CODE_ATTEMPTS:
            code = self.ref_link.affiliate_code_candidate(email)
            attempts += 1

        if await self._code_taken(code):
            code = self.ref_link.fallback_affiliate_code(user_id)
            if await self._code_taken(code):
                raise AffiliateCodeConflict(f"Could not allocate an affiliate code for user {user_id}")
        return code

    async def get_by_user_id(self, user_id: uuid.UUID) -> Affiliate | None:
        return await self.session.scalar(select(Affiliate).where(Affiliate.user_id == user_id))

    async def get_affiliate_by_code(self, code: str) -> Affiliate | None:
        return await self.session.scalar(
            select(Affiliate).where(Affiliate.affiliate_code == normalize_code(code))
        )

    async def get_or_create_affiliate(self, user_id: uuid.UUID, email: str | None = None) -> Affiliate:
        affiliate = await self.get_by_user_id(user_id)
        if affiliate:
            return affiliate

        if email is None:
            user = await self.session.get(User, user_id)
            if not user:
                raise NotFoundError("User not found")
            email = user.email

        code = await self.generate_affiliate_code(user_id, email)
        try:
            async with self.session.begin_nested():
                affiliate = Affiliate(
                    user_id=user_id,
                    affiliate_code=code,
                    is_active=True,
                    tier=AffiliateTier.BRONZE,
                    approved_at=utcnow(),
                )
                self.session.add(affiliate)
        except IntegrityError:
            # someone else created it first (or took the code)
            existing = await self.get_by_user_id(user_id)
            if existing is None:
                raise AffiliateCodeConflict(f"Affiliate code {code} was taken concurrently")
            logging.info(f"Affiliate for user {user_id} created concurrently, reusing {existing.affiliate_code}")
            return existing

        logging.info(f"Created affiliate {affiliate.affiliate_code} for user {user_id}")
        return affiliate
