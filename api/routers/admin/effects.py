from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import EffectStatus
from services.effects.queue import EffectQueue
from .schemas import DrainResult, EffectRead

router = APIRouter()


@router.get("/effects", response_model=list[EffectRead], summary="Queued side effects")
async def list_effects(
    status: EffectStatus | None = None,
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_async_session),
):
    return await EffectQueue(session).list_effects(status, limit)


@router.post("/effects/drain", response_model=DrainResult, summary="Run pending and failed side effects")
async def drain_effects(
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Reconciliation for effects that did not complete inside their request
    (crash, handler error). Effects past the retry limit stay FAILED.
    """
    return await EffectQueue(session).drain(limit=limit)
