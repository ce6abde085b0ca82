from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session

router = APIRouter()


@router.get("/check-health", include_in_schema=False)
async def check_health(session: AsyncSession = Depends(get_async_session)):
    await session.execute(text("SELECT 1"))
    return {"ok": True}
