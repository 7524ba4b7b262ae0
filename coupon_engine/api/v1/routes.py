from fastapi import APIRouter

from coupon_engine.api.v1 import coupons

api_router = APIRouter()

api_router.include_router(coupons.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
