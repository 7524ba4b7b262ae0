import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from coupon_engine.api.v1 import api_router
from coupon_engine.core.config import settings
from coupon_engine.core.logging_config import configure_logging
from coupon_engine.middleware import RequestLoggingMiddleware
from coupon_engine.schemas.error import STORAGE_ERROR, VALIDATION_ERROR, error_response
from coupon_engine.services.store import CouponStorageError

logger = logging.getLogger(__name__)


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(422, exc.errors(), VALIDATION_ERROR)

    @app.exception_handler(CouponStorageError)
    async def storage_exception_handler(request: Request, exc: CouponStorageError):
        logger.error("coupon_storage_unavailable", extra={"operation": exc.operation, "path": request.url.path})
        return error_response(503, "Coupon storage unavailable", STORAGE_ERROR)


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=[
            {"name": "coupons", "description": "Coupon redemption and validation"},
            {"name": "health", "description": "Liveness probe"},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")
    _install_exception_handlers(app)
    return app


app = get_application()
