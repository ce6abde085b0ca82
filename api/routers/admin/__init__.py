from fastapi import APIRouter

from . import affiliates, catalog, effects, points

router = APIRouter()
router.include_router(affiliates.router)
router.include_router(points.router)
router.include_router(catalog.router)
router.include_router(effects.router)
