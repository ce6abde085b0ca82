import logging

from fastapi import Depends, FastAPI, Request, status
from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
import uvicorn

from api.routers.system import routes as SystemRoutes
from api.routers.auth import routes as AuthRoutes
from api.routers.orders import routes as OrderRoutes
from api.routers.affiliate import routes as AffiliateRoutes
from api.routers.rewards import routes as RewardRoutes
from api.routers.coupons import routes as CouponRoutes
from api.routers import admin as AdminRoutes
from api.security import require_admin, require_service_key
from config import settings
from schemas import ErrorBody


class FastAPIManager:
    def __init__(self):
        # version format: version.subversion:month.year.day:stage (beta, stable)
        self.api = FastAPI(
            version="1.0:10.26.18:beta",
            title="Bio Sculpture affiliate and rewards API",
            description=(
                "Affiliate referral program and points ledger of the Bio Sculpture storefront: "
                "affiliate codes and link tracking, referral attribution, configurable points rules, "
                "tier promotion and reward redemption into single-use coupons. "
                "Every route except the health check needs the `X-API-Key` service header; "
                "the acting customer is passed as `X-User-Id`."
            ),
        )
        self.add_exception_handlers()
        self.add_routers()

    def add_exception_handlers(self):
        @self.api.exception_handler(HTTPException)
        async def http_error(request: Request, exc: HTTPException):
            body = ErrorBody(error=str(exc.detail))
            return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True), headers=exc.headers)

        @self.api.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception):
            logging.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
            body = ErrorBody(error="Internal server error", details=str(exc) if settings.env.DEBUG else None)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(exclude_none=True)
            )

    def add_routers(self):
        self.api.include_router(
            SystemRoutes.router
        )
        self.api.include_router(
            AuthRoutes.router,
            prefix="/auth",
            dependencies=[Depends(require_service_key)],
            tags=["Registration"]
        )
        self.api.include_router(
            OrderRoutes.router,
            prefix="/orders",
            dependencies=[Depends(require_service_key)],
            tags=["Orders"]
        )
        self.api.include_router(
            AffiliateRoutes.router,
            prefix="/affiliate",
            dependencies=[Depends(require_service_key)],
            tags=["Affiliate program"]
        )
        self.api.include_router(
            RewardRoutes.router,
            prefix="/rewards",
            dependencies=[Depends(require_service_key)],
            tags=["Rewards"]
        )
        self.api.include_router(
            CouponRoutes.router,
            prefix="/coupons",
            dependencies=[Depends(require_service_key)],
            tags=["Coupons"]
        )
        self.api.include_router(
            AdminRoutes.router,
            prefix="/admin",
            dependencies=[Depends(require_service_key), Depends(require_admin)],
            tags=["Admin"]
        )

    def start_server(self):
        uvicorn.run(self.api, host="0.0.0.0", port=8000, log_level=settings.env.LOG_LEVEL.lower())

    def get_app(self) -> FastAPI:
        return self.api
