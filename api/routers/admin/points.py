import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import PointsActionType, PointsTransactionType, User
from api.routers.affiliate.schemas import PointsTransactionRead
from api.security import require_admin
from schemas import Page
from services.exceptions import BusinessRuleError, NotFoundError
from services.points import LedgerFilters, PointsLedger
from services.points.configs import PointsConfigService
from .schemas import PointsConfigCreate, PointsConfigRead, PointsConfigUpdate

router = APIRouter()


@router.get("/points-config", response_model=list[PointsConfigRead], summary="List points rules")
async def list_points_configs(
    action_type: PointsActionType | None = Query(None, alias="actionType"),
    session: AsyncSession = Depends(get_async_session),
):
    return await PointsConfigService(session).list_configs(action_type)


@router.post(
    "/points-config",
    response_model=PointsConfigRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a points rule",
)
async def create_points_config(
    dto: PointsConfigCreate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    """
    A rule with `tiers` is TIERED (bracket lookup on the order value), otherwise
    FIXED (`pointsAmount`). The newest active rule inside its validity window wins.
    """
    try:
        return await PointsConfigService(session).create(dto.model_dump(), admin.id)
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/points-config/{config_id}", response_model=PointsConfigRead, summary="Get a points rule")
async def get_points_config(config_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    try:
        return await PointsConfigService(session).get(config_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/points-config/{config_id}", response_model=PointsConfigRead, summary="Update a points rule")
async def update_points_config(
    config_id: uuid.UUID,
    dto: PointsConfigUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        return await PointsConfigService(session).update(config_id, dto.model_dump(exclude_unset=True), admin.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BusinessRuleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/points-config/{config_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a points rule")
async def delete_points_config(
    config_id: uuid.UUID,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        await PointsConfigService(session).delete(config_id, admin.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get(
    "/points-transactions",
    response_model=Page[PointsTransactionRead],
    summary="Points ledger export",
)
async def list_points_transactions(
    user_id: uuid.UUID | None = Query(None, alias="userId"),
    type: PointsTransactionType | None = None,
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500, alias="perPage"),
    session: AsyncSession = Depends(get_async_session),
):
    filters = LedgerFilters(
        user_id=user_id, type=type, start_date=start_date, end_date=end_date, page=page, per_page=per_page
    )
    rows, total = await PointsLedger(session).search(filters)
    return Page[PointsTransactionRead](
        items=[PointsTransactionRead.model_validate(r) for r in rows], total=total, page=page, per_page=per_page
    )
