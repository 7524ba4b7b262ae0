from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core import metrics
from coupon_engine.models.coupon import Coupon
from coupon_engine.services import store
from coupon_engine.services.eligibility import window_end_key, window_start_key
from coupon_engine.services.recurrence import effective_rule

logger = logging.getLogger(__name__)


def _ranges_overlap(start_a, end_a, start_b, end_b) -> bool:
    """Half-open ranges ``[start, end)``; a missing end is unbounded."""
    if end_b is not None and start_a is not None and start_a >= end_b:
        return False
    if end_a is not None and start_b is not None and end_a <= start_b:
        return False
    return True


def dates_overlap(a: Coupon, b: Coupon) -> bool:
    return _ranges_overlap(a.valid_from_date, a.valid_until_date, b.valid_from_date, b.valid_until_date)


def times_overlap(a: Coupon, b: Coupon) -> bool:
    return _ranges_overlap(window_start_key(a), window_end_key(a), window_start_key(b), window_end_key(b))


def weekdays_overlap(a: Coupon, b: Coupon) -> bool:
    return effective_rule(a).intersects(effective_rule(b))


def overlaps(a: Coupon, b: Coupon) -> bool:
    return dates_overlap(a, b) and times_overlap(a, b) and weekdays_overlap(a, b)


async def find_conflicts(
    session: AsyncSession,
    candidate: Coupon,
    *,
    today: date,
    exclude_id: UUID | None = None,
) -> list[Coupon]:
    if exclude_id is None:
        exclude_id = candidate.id
    # The candidate may be pending or dirty in this session; it must not be flushed before it is validated.
    with session.no_autoflush:
        peers = await store.get_overlap_candidates(session, code=candidate.code, today=today, exclude_id=exclude_id)
    return [peer for peer in peers if peer is not candidate and overlaps(candidate, peer)]


async def has_conflict(
    session: AsyncSession,
    candidate: Coupon,
    *,
    today: date,
    exclude_id: UUID | None = None,
) -> bool:
    conflicts = await find_conflicts(session, candidate, today=today, exclude_id=exclude_id)
    if conflicts:
        metrics.record_code_conflict()
        logger.info(
            "coupon_code_conflict",
            extra={"code": candidate.code, "conflicting_ids": [str(peer.id) for peer in conflicts]},
        )
    return bool(conflicts)
