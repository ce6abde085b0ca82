import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import EffectStatus, PendingEffect
from config import settings
from utils.clock import utcnow
from .handlers import EffectHandlers


class EffectKind:
    AFFILIATE_BOOTSTRAP = "affiliate_bootstrap"
    REFERRAL_SIGNUP = "referral_signup"
    REFERRAL_ORDER = "referral_order"
    OWN_PURCHASE = "own_purchase"
    COUPON_REDEEMED = "coupon_redeemed"


class EffectQueue:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.handlers = EffectHandlers(session)
        self.dispatch = {
            EffectKind.AFFILIATE_BOOTSTRAP: self.handlers.affiliate_bootstrap,
            EffectKind.REFERRAL_SIGNUP: self.handlers.referral_signup,
            EffectKind.REFERRAL_ORDER: self.handlers.referral_order,
            EffectKind.OWN_PURCHASE: self.handlers.own_purchase,
            EffectKind.COUPON_REDEEMED: self.handlers.coupon_redeemed,
        }

    async def enqueue(self, kind: str, payload: dict, dedupe_key: str) -> PendingEffect:
        """Adds the effect to the caller's transaction. A known dedupe_key returns the stored row."""
        existing = await self.session.scalar(select(PendingEffect).where(PendingEffect.dedupe_key == dedupe_key))
        if existing:
            return existing
        try:
            async with self.session.begin_nested():
                effect = PendingEffect(kind=kind, payload_json=payload, dedupe_key=dedupe_key)
                self.session.add(effect)
        except IntegrityError:
            return await self.session.scalar(select(PendingEffect).where(PendingEffect.dedupe_key == dedupe_key))
        return effect

    async def list_effects(self, status: EffectStatus | None = None, limit: int = 100) -> list[PendingEffect]:
        stmt = select(PendingEffect).order_by(PendingEffect.created_at.desc()).limit(limit)
        if status:
            stmt = stmt.where(PendingEffect.status == status)
        return list((await self.session.execute(stmt)).scalars().all())

    async def drain(self, limit: int = 100, ids: list[uuid.UUID] | None = None) -> dict:
        """
        Runs pending and failed effects, oldest first, one transaction each.
        A failing effect is rolled back, logged and left for the next drain.
        """
        stmt = (
            select(PendingEffect.id)
            .where(
                PendingEffect.status.in_([EffectStatus.PENDING, EffectStatus.FAILED]),
                PendingEffect.attempts < settings.env.EFFECT_MAX_ATTEMPTS,
            )
            .order_by(PendingEffect.created_at, PendingEffect.id)
            .limit(limit)
        )
        if ids is not None:
            stmt = stmt.where(PendingEffect.id.in_(ids))
        effect_ids = (await self.session.execute(stmt)).scalars().all()
        if ids is not None:
            # keep the order the caller enqueued them in
            selected = set(effect_ids)
            effect_ids = [i for i in ids if i in selected]

        done = 0
        failed = 0
        for effect_id in effect_ids:
            # claim the row; another drainer holding it or having finished it wins
            effect = await self.session.scalar(
                select(PendingEffect)
                .where(
                    PendingEffect.id == effect_id,
                    PendingEffect.status.in_([EffectStatus.PENDING, EffectStatus.FAILED]),
                )
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            )
            if effect is None:
                await self.session.rollback()
                continue
            kind, payload = effect.kind, dict(effect.payload_json)
            try:
                handler = self.dispatch[kind]
                await handler(payload)
                effect.status = EffectStatus.DONE
                effect.attempts += 1
                effect.processed_at = utcnow()
                effect.last_error = None
                await self.session.commit()
                done += 1
            except Exception as e:
                await self.session.rollback()
                logging.error(f"Effect {effect_id} ({kind}) failed: {e}", exc_info=True)
                effect = await self.session.get(PendingEffect, effect_id, populate_existing=True)
                effect.status = EffectStatus.FAILED
                effect.attempts += 1
                effect.last_error = str(e)[:1000]
                await self.session.commit()
                failed += 1

        if effect_ids:
            logging.info(f"Drained effects: {done} done, {failed} failed")
        return {"processed": done, "failed": failed}
