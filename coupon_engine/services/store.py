from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core import metrics
from coupon_engine.models.coupon import Coupon, CouponRedemption

logger = logging.getLogger(__name__)


class CouponStorageError(RuntimeError):
    """The durable store failed; never a statement about the coupon itself."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


@asynccontextmanager
async def storage_errors(session: AsyncSession, operation: str, **context: Any) -> AsyncIterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.warning("coupon_storage_failure", extra={"operation": operation, "error": str(exc), **context})
        metrics.record_storage_failure(operation)
        try:
            await session.rollback()
        except SQLAlchemyError as rollback_exc:
            logger.warning("coupon_storage_rollback_failed", extra={"operation": operation, "error": str(rollback_exc)})
        raise CouponStorageError(operation, str(exc)) from exc


def fold_code(code: str | None) -> str:
    return (code or "").strip().lower()


def _has_global_capacity_clause():
    return or_(Coupon.redemption_limit_global == 0, Coupon.redemption_count < Coupon.redemption_limit_global)


async def get_coupons_by_code(session: AsyncSession, *, code: str) -> list[Coupon]:
    folded = fold_code(code)
    if not folded:
        return []
    async with storage_errors(session, "get_coupons_by_code", code=folded):
        result = await session.execute(
            select(Coupon).where(func.lower(Coupon.code) == folded).order_by(Coupon.created_at, Coupon.id)
        )
        return list(result.scalars().all())


async def get_overlap_candidates(
    session: AsyncSession,
    *,
    code: str,
    today: date,
    exclude_id: UUID | None = None,
) -> list[Coupon]:
    """Same-code coupons that are neither depleted nor date-expired."""
    folded = fold_code(code)
    if not folded:
        return []
    stmt = select(Coupon).where(
        func.lower(Coupon.code) == folded,
        _has_global_capacity_clause(),
        or_(Coupon.valid_until_date.is_(None), Coupon.valid_until_date > today),
    )
    if exclude_id is not None:
        stmt = stmt.where(Coupon.id != exclude_id)
    async with storage_errors(session, "get_overlap_candidates", code=folded):
        result = await session.execute(stmt.order_by(Coupon.created_at, Coupon.id))
        return list(result.scalars().all())


async def count_user_redemptions(session: AsyncSession, *, coupon_id: UUID, user_id: str | None) -> int:
    if not user_id:
        return 0
    async with storage_errors(session, "count_user_redemptions", coupon_id=str(coupon_id)):
        return int(
            (
                await session.execute(
                    select(func.count())
                    .select_from(CouponRedemption)
                    .where(CouponRedemption.coupon_id == coupon_id, CouponRedemption.user_id == user_id)
                )
            ).scalar_one()
        )


async def commit_redemption(
    session: AsyncSession,
    *,
    coupon: Coupon,
    user_id: str | None,
    order_id: str | None = None,
) -> CouponRedemption | None:
    """Increment the counter and record the redemption in one transaction.

    The increment is a conditional UPDATE that re-checks global and per-user
    capacity, so only the caller whose statement matched the row wins. Returns
    None when capacity ran out since the advisory read.
    """
    conditions = [Coupon.id == coupon.id, _has_global_capacity_clause()]
    if user_id:
        user_count = (
            select(func.count())
            .select_from(CouponRedemption)
            .where(CouponRedemption.coupon_id == coupon.id, CouponRedemption.user_id == user_id)
            .scalar_subquery()
        )
        conditions.append(or_(Coupon.redemption_limit_user == 0, user_count < Coupon.redemption_limit_user))
    else:
        conditions.append(Coupon.redemption_limit_user == 0)

    async with storage_errors(session, "commit_redemption", coupon_id=str(coupon.id)):
        # Row lock serialises redemptions of the same coupon where the backend supports it.
        await session.execute(select(Coupon.id).where(Coupon.id == coupon.id).with_for_update())
        result = await session.execute(
            update(Coupon)
            .where(*conditions)
            .values(redemption_count=Coupon.redemption_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await session.rollback()
            # rollback expires every instance; reload so callers see the current counter
            await session.refresh(coupon)
            return None

        redemption = CouponRedemption(coupon_id=coupon.id, user_id=user_id or None, order_id=order_id or None)
        session.add(redemption)
        await session.commit()
        await session.refresh(coupon)
        return redemption


async def add_coupon(session: AsyncSession, coupon: Coupon) -> Coupon:
    async with storage_errors(session, "add_coupon", code=coupon.code):
        session.add(coupon)
        await session.commit()
        await session.refresh(coupon)
        return coupon
