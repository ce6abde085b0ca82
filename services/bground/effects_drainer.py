import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from api.database import async_session_maker
from services.effects.queue import EffectQueue

# Scheduled by Celery Beat, see services/bground/tasks.py.
# Effects normally drain inside the request that produced them; this pass picks
# up whatever a crash or a failing handler left behind.


async def drain_pending_effects(limit: int = 100, session_maker: async_sessionmaker | None = None) -> dict:
    """
    One reconciliation pass over the pending effects table.
    """
    logging.info("Starting pending effects drain...")
    async with (session_maker or async_session_maker)() as session:
        try:
            result = await EffectQueue(session).drain(limit=limit)
        except Exception as e:
            logging.error(f"An error occurred during the effects drain: {e}", exc_info=True)
            await session.rollback()
            raise
    logging.info(f"Effects drain finished: {result}")
    return result
