from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core import metrics
from coupon_engine.models.coupon import Coupon, CouponRedemption
from coupon_engine.schemas.coupon import RedemptionStatus
from coupon_engine.services import eligibility, store
from coupon_engine.services.discounts import DiscountCalculator
from coupon_engine.services.engine import EngineConfig
from coupon_engine.services.pricing import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionOutcome:
    status: RedemptionStatus
    amount: Decimal
    discount: Decimal
    total: Decimal
    coupon: Coupon | None = None
    redemption: CouponRedemption | None = None
    options: dict[str, Any] = field(default_factory=dict)
    reasons: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.status == RedemptionStatus.found


def _rejected(
    status: RedemptionStatus,
    amount: Decimal,
    *,
    coupon: Coupon | None = None,
    reasons: list[str] | tuple[str, ...] = (),
) -> RedemptionOutcome:
    return RedemptionOutcome(
        status=status,
        amount=amount,
        discount=Decimal("0"),
        total=amount,
        coupon=coupon,
        reasons=tuple(reasons),
    )


def select_coupon(coupons: list[Coupon], ctx: eligibility.EligibilityContext) -> Coupon | None:
    """The coupon a code currently refers to: in its window, preferring one with capacity left."""
    active = [coupon for coupon in coupons if eligibility.in_window(coupon, ctx)]
    if not active:
        return None
    return sorted(active, key=lambda coupon: not eligibility.has_global_capacity(coupon))[0]


class RedemptionCoordinator:
    """Lookup, eligibility, discount and atomic commit behind a single ``redeem`` call."""

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.calculator = DiscountCalculator(config.resolvers)

    async def redeem(
        self,
        session: AsyncSession,
        code: str | None,
        *,
        amount: object = Decimal("0"),
        user_id: str | None = None,
        order_id: str | None = None,
    ) -> RedemptionOutcome:
        outcome = await self._redeem(session, (code or "").strip(), to_decimal(amount), user_id or None, order_id)
        metrics.record_redemption(outcome.status.value)
        return outcome

    async def _redeem(
        self,
        session: AsyncSession,
        code: str,
        amount: Decimal,
        user_id: str | None,
        order_id: str | None,
    ) -> RedemptionOutcome:
        ctx = eligibility.context_at(self.config.clock, user_id=user_id)
        coupon = select_coupon(await store.get_coupons_by_code(session, code=code), ctx)
        if coupon is None:
            logger.info("coupon_redemption_rejected", extra={"code": code, "status": RedemptionStatus.not_found.value})
            return _rejected(RedemptionStatus.not_found, amount)

        if coupon.redemption_limit_user and user_id:
            user_redemptions = await store.count_user_redemptions(session, coupon_id=coupon.id, user_id=user_id)
            ctx = dataclasses.replace(ctx, user_redemptions=user_redemptions)
        reasons = eligibility.capacity_reasons(coupon, ctx)
        if reasons:
            logger.info(
                "coupon_redemption_rejected",
                extra={"code": code, "coupon_id": str(coupon.id), "status": RedemptionStatus.limit_exceeded.value, "reasons": reasons},
            )
            return _rejected(RedemptionStatus.limit_exceeded, amount, coupon=coupon, reasons=reasons)

        options = self.calculator.apply(coupon, amount, code=code, user_id=user_id, order_id=order_id)
        redemption = await store.commit_redemption(session, coupon=coupon, user_id=user_id, order_id=order_id)
        if redemption is None:
            metrics.record_commit_race_lost()
            logger.info(
                "coupon_redemption_rejected",
                extra={"code": code, "coupon_id": str(coupon.id), "status": RedemptionStatus.limit_exceeded.value, "reasons": ["commit_capacity_exhausted"]},
            )
            return _rejected(RedemptionStatus.limit_exceeded, amount, coupon=coupon, reasons=["commit_capacity_exhausted"])

        logger.info(
            "coupon_redeemed",
            extra={"code": code, "coupon_id": str(coupon.id), "user_id": user_id, "discount": options["discount"]},
        )
        return RedemptionOutcome(
            status=RedemptionStatus.found,
            amount=options["amount"],
            discount=options["discount"],
            total=options["total"],
            coupon=coupon,
            redemption=redemption,
            options=options,
        )
