from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core.clock import today
from coupon_engine.models.coupon import END_OF_DAY, START_OF_DAY, Coupon, CouponDiscountType, CouponRecurrenceType
from coupon_engine.schemas.coupon import CouponDraft, Violation
from coupon_engine.services import store, validation
from coupon_engine.services.engine import EngineConfig

logger = logging.getLogger(__name__)

_DUPLICATED_FIELDS = (
    "description",
    "discount_type",
    "amount",
    "valid_from_date",
    "valid_until_date",
    "valid_from_time",
    "valid_until_time",
    "redemption_limit_global",
    "redemption_limit_user",
    "recurrence_type",
    "recurrence",
)


def new_coupon(config: EngineConfig, **fields: Any) -> Coupon:
    """Unsaved coupon with lifecycle defaults filled in (code, start date, empty attachments)."""
    values: dict[str, Any] = {
        "discount_type": CouponDiscountType.amount,
        "amount": 0,
        "valid_from_time": START_OF_DAY,
        "valid_until_time": END_OF_DAY,
        "redemption_limit_global": 1,
        "redemption_limit_user": 0,
        "redemption_count": 0,
        "recurrence_type": CouponRecurrenceType.none,
        "recurrence": None,
    }
    values.update({key: value for key, value in fields.items() if value is not None})
    if not (values.get("code") or "").strip():
        values["code"] = config.code_generator()
    if values.get("valid_from_date") is None:
        values["valid_from_date"] = today(config.clock)
    for key in ("valid_from_date", "valid_until_date"):
        if isinstance(values.get(key), datetime):
            values[key] = values[key].date()
    values["attachments"] = dict(values.get("attachments") or {})
    return Coupon(**values)


def coupon_from_draft(config: EngineConfig, draft: CouponDraft) -> Coupon:
    fields = draft.model_dump(exclude={"exclude_id"})
    return new_coupon(config, **fields)


def duplicate_coupon(config: EngineConfig, source: Coupon) -> Coupon:
    """Unsaved copy of ``source`` under a freshly generated code; counters start at zero."""
    fields = {name: getattr(source, name) for name in _DUPLICATED_FIELDS}
    if isinstance(fields.get("recurrence"), dict):
        fields["recurrence"] = {**fields["recurrence"], "days": list(fields["recurrence"].get("days") or [])}
    return new_coupon(config, code=None, **fields)


async def save_coupon(
    session: AsyncSession,
    coupon: Coupon,
    *,
    config: EngineConfig,
    exclude_id: UUID | None = None,
) -> list[Violation]:
    """Persist ``coupon`` when it has no violations; the violations are returned either way."""
    violations = await validation.validate(session, coupon, clock=config.clock, exclude_id=exclude_id or coupon.id)
    if violations:
        logger.info(
            "coupon_rejected",
            extra={"code": coupon.code, "violations": [f"{v.field}:{v.kind}" for v in violations]},
        )
        return violations
    await store.add_coupon(session, coupon)
    logger.info("coupon_saved", extra={"coupon_id": str(coupon.id), "code": coupon.code})
    return []
