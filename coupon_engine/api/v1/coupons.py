from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core.dependencies import get_engine_config, get_user_id
from coupon_engine.db.session import get_session
from coupon_engine.schemas.coupon import CouponDraft, RedemptionResult, ValidationReport
from coupon_engine.services import coupons as coupons_service
from coupon_engine.services import validation
from coupon_engine.services.engine import EngineConfig
from coupon_engine.services.pricing import quantize_money
from coupon_engine.services.redemption import RedemptionCoordinator, RedemptionOutcome

router = APIRouter(prefix="/coupons", tags=["coupons"])


def _to_result(outcome: RedemptionOutcome, *, rounding: str) -> RedemptionResult:
    return RedemptionResult(
        status=outcome.status,
        amount=float(quantize_money(outcome.amount, rounding=rounding)),
        discount=float(quantize_money(outcome.discount, rounding=rounding)),
        total=float(quantize_money(outcome.total, rounding=rounding)),
    )


@router.get("/apply", response_model=RedemptionResult)
async def apply_coupon(
    coupon_code: str = Query(default=""),
    amount: Decimal = Query(default=Decimal("0.0")),
    order_id: str | None = Query(default=None, max_length=64),
    session: AsyncSession = Depends(get_session),
    user_id: str | None = Depends(get_user_id),
    config: EngineConfig = Depends(get_engine_config),
) -> RedemptionResult:
    coordinator = RedemptionCoordinator(config)
    outcome = await coordinator.redeem(session, coupon_code.strip(), amount=amount, user_id=user_id, order_id=order_id)
    return _to_result(outcome, rounding=config.money_rounding)


@router.post("/validate", response_model=ValidationReport)
async def validate_coupon(
    payload: CouponDraft,
    session: AsyncSession = Depends(get_session),
    config: EngineConfig = Depends(get_engine_config),
) -> ValidationReport:
    coupon = coupons_service.coupon_from_draft(config, payload)
    violations = await validation.validate(session, coupon, clock=config.clock, exclude_id=payload.exclude_id)
    return ValidationReport(valid=not violations, violations=violations)
