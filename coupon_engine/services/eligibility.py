from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from coupon_engine.core.clock import Clock, time_of_day, today, weekday
from coupon_engine.models.coupon import END_OF_DAY, START_OF_DAY, Coupon, CouponRecurrenceType
from coupon_engine.services.recurrence import recurrence_rule

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
END_OF_DAY_KEY = "240000"


def time_key(value: object) -> str | None:
    """``"9:30"`` -> ``"093000"``; None when the value is not a time of day."""
    match = _TIME_RE.match(str(value or "").strip())
    if not match:
        return None
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    if minutes > 59 or seconds > 59:
        return None
    if hours > 24 or (hours == 24 and (minutes or seconds)):
        return None
    return f"{hours:02d}{minutes:02d}{seconds:02d}"


def window_start_key(coupon: Coupon) -> str:
    return time_key(coupon.valid_from_time or START_OF_DAY) or "000000"


def window_end_key(coupon: Coupon) -> str:
    return time_key(coupon.valid_until_time or END_OF_DAY) or END_OF_DAY_KEY


@dataclass(frozen=True)
class EligibilityContext:
    today: date
    time_key: str
    weekday: int
    user_id: str | None = None
    user_redemptions: int = 0


def context_at(clock: Clock, *, user_id: str | None = None, user_redemptions: int = 0) -> EligibilityContext:
    return EligibilityContext(
        today=today(clock),
        time_key=time_of_day(clock),
        weekday=weekday(clock),
        user_id=user_id or None,
        user_redemptions=int(user_redemptions or 0),
    )


def is_started(coupon: Coupon, ctx: EligibilityContext) -> bool:
    return coupon.valid_from_date is not None and coupon.valid_from_date <= ctx.today


def is_expired(coupon: Coupon, ctx: EligibilityContext) -> bool:
    return coupon.valid_until_date is not None and coupon.valid_until_date <= ctx.today


def is_not_expired(coupon: Coupon, ctx: EligibilityContext) -> bool:
    return not is_expired(coupon, ctx)


def within_time_window(coupon: Coupon, ctx: EligibilityContext) -> bool:
    return window_start_key(coupon) <= ctx.time_key < window_end_key(coupon)


def has_global_capacity(coupon: Coupon, ctx: EligibilityContext | None = None) -> bool:
    limit = int(coupon.redemption_limit_global or 0)
    return limit == 0 or int(coupon.redemption_count or 0) < limit


def has_user_capacity(coupon: Coupon, ctx: EligibilityContext) -> bool:
    limit = int(coupon.redemption_limit_user or 0)
    if limit == 0:
        return True
    # A per-user cap cannot be honoured for anonymous redemptions.
    if not ctx.user_id:
        return False
    return ctx.user_redemptions < limit


def matches_recurrence(coupon: Coupon, ctx: EligibilityContext) -> bool:
    rule = recurrence_rule(coupon)
    return rule is not None and rule.includes(ctx.weekday)


Check = Callable[[Coupon, EligibilityContext], bool]

WINDOW_CHECKS: dict[str, Check] = {
    "not_started": is_started,
    "expired": is_not_expired,
    "outside_time_window": within_time_window,
}
CAPACITY_CHECKS: dict[str, Check] = {
    "sold_out": has_global_capacity,
    "per_user_limit_reached": has_user_capacity,
}
VARIANT_WINDOW_CHECKS: dict[CouponRecurrenceType, dict[str, Check]] = {
    CouponRecurrenceType.none: {},
    CouponRecurrenceType.weekly: {"outside_recurrence": matches_recurrence},
}


def window_checks(coupon: Coupon) -> dict[str, Check]:
    variant = VARIANT_WINDOW_CHECKS.get(coupon.recurrence_type or CouponRecurrenceType.none, {})
    return {**WINDOW_CHECKS, **variant}


def _failed(checks: dict[str, Check], coupon: Coupon, ctx: EligibilityContext) -> list[str]:
    return [reason for reason, check in checks.items() if not check(coupon, ctx)]


def window_reasons(coupon: Coupon, ctx: EligibilityContext) -> list[str]:
    return _failed(window_checks(coupon), coupon, ctx)


def capacity_reasons(coupon: Coupon, ctx: EligibilityContext) -> list[str]:
    return _failed(CAPACITY_CHECKS, coupon, ctx)


def ineligibility_reasons(coupon: Coupon, ctx: EligibilityContext) -> list[str]:
    return window_reasons(coupon, ctx) + capacity_reasons(coupon, ctx)


def in_window(coupon: Coupon, ctx: EligibilityContext) -> bool:
    return not window_reasons(coupon, ctx)


def is_redeemable(coupon: Coupon, ctx: EligibilityContext) -> bool:
    """True when every window and capacity check passes; pure and side-effect free."""
    return not ineligibility_reasons(coupon, ctx)
