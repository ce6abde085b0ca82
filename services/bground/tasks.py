from __future__ import annotations
import asyncio
import logging

from celery import states
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import settings
from services.bground import CeleryManager
from services.bground.effects_drainer import drain_pending_effects

celery_app = CeleryManager()

# Run with:
#   celery -A services.bground.tasks:celery_app.celery_app worker -B


@celery_app.celery_app.task(bind=True, name="effects.drain_pending")
def drain_pending(self, limit: int = 100) -> dict:
    """
    Periodic reconciliation of the pending effects table.
    Each run gets its own engine: asyncio.run opens a fresh loop and pooled
    asyncpg connections cannot cross loops.
    """
    async def _run():
        engine = create_async_engine(settings.generate_postgres_url(), poolclass=NullPool)
        try:
            session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            return await drain_pending_effects(limit, session_maker=session_maker)
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_run())
    except Exception as e:
        logging.error(f"Effects drain task failed: {e}")
        self.update_state(state=states.FAILURE, meta={"error": str(e)})
        raise
