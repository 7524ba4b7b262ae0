from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.core.clock import Clock, today as clock_today
from coupon_engine.models.coupon import Coupon, CouponDiscountType, CouponRecurrenceType
from coupon_engine.schemas.coupon import Violation
from coupon_engine.services import overlap
from coupon_engine.services.eligibility import END_OF_DAY_KEY, time_key
from coupon_engine.services.recurrence import is_valid_recurrence, recurrence_days

PERCENTAGE_MAX = 100


def _as_int(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (Decimal, float)):
        try:
            integral = int(value)
        except (ValueError, OverflowError):
            return None
        return integral if value == integral else None
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _as_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _enum_value(enum_cls, value: object):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _non_negative_int(field: str, value: object) -> list[Violation]:
    number = _as_int(value)
    if number is None:
        return [Violation(field=field, kind="not_an_integer")]
    if number < 0:
        return [Violation(field=field, kind="greater_than_or_equal_to")]
    return []


def _amount_violations(coupon: Coupon) -> list[Violation]:
    violations = _non_negative_int("amount", coupon.amount)
    if violations:
        return violations
    if coupon.discount_type == CouponDiscountType.percentage and _as_int(coupon.amount) > PERCENTAGE_MAX:
        return [Violation(field="amount", kind="less_than_or_equal_to")]
    return []


def _date_violations(coupon: Coupon, *, today: date, creating: bool) -> list[Violation]:
    violations: list[Violation] = []
    valid_from = _as_date(coupon.valid_from_date)
    if coupon.valid_from_date is None:
        violations.append(Violation(field="valid_from_date", kind="blank"))
    elif valid_from is None:
        violations.append(Violation(field="valid_from_date", kind="invalid"))

    if coupon.valid_until_date is None:
        return violations
    valid_until = _as_date(coupon.valid_until_date)
    if valid_until is None:
        violations.append(Violation(field="valid_until_date", kind="invalid"))
        return violations
    if creating and valid_until <= today:
        violations.append(Violation(field="valid_until_date", kind="coupon_already_expired"))
    if valid_from is not None and valid_until < valid_from:
        violations.append(Violation(field="valid_until_date", kind="coupon_valid_until"))
    return violations


def _time_violations(coupon: Coupon) -> list[Violation]:
    start = time_key(coupon.valid_from_time)
    end = time_key(coupon.valid_until_time)
    if start is None or end is None or start >= END_OF_DAY_KEY or start >= end:
        return [Violation(field="valid_until_time", kind="coupon_valid_until_time")]
    return []


def _recurrence_violations(coupon: Coupon) -> list[Violation]:
    recurrence_type = _enum_value(CouponRecurrenceType, coupon.recurrence_type)
    if recurrence_type is None:
        return [Violation(field="recurrence_type", kind="inclusion")]
    if recurrence_type != CouponRecurrenceType.weekly:
        return []
    if not recurrence_days(coupon.recurrence):
        return [Violation(field="recurrence", kind="blank")]
    if not is_valid_recurrence(coupon.recurrence):
        return [Violation(field="recurrence", kind="coupon_recurrence")]
    return []


def field_violations(coupon: Coupon, *, today: date, creating: bool = True) -> list[Violation]:
    """Every invariant that can be checked without the store, in a stable order."""
    violations: list[Violation] = []
    if not (coupon.code or "").strip():
        violations.append(Violation(field="code", kind="blank"))
    if _enum_value(CouponDiscountType, coupon.discount_type) is None:
        violations.append(Violation(field="discount_type", kind="inclusion"))
    violations.extend(_amount_violations(coupon))
    violations.extend(_non_negative_int("redemption_limit_global", coupon.redemption_limit_global))
    violations.extend(_non_negative_int("redemption_limit_user", coupon.redemption_limit_user))
    violations.extend(_date_violations(coupon, today=today, creating=creating))
    violations.extend(_time_violations(coupon))
    violations.extend(_recurrence_violations(coupon))
    return violations


def _comparable(violations: list[Violation]) -> bool:
    """The overlap check needs sane dates, times and weekdays to mean anything."""
    fields = {violation.field for violation in violations}
    return not fields & {"code", "valid_from_date", "valid_until_date", "valid_until_time", "recurrence", "recurrence_type"}


async def validate(
    session: AsyncSession,
    coupon: Coupon,
    *,
    clock: Clock,
    exclude_id: UUID | None = None,
) -> list[Violation]:
    """Field-level violations for a create or edit; empty means the coupon may be saved."""
    today = clock_today(clock)
    creating = exclude_id is None and coupon.id is None
    violations = field_violations(coupon, today=today, creating=creating)
    if _comparable(violations) and await overlap.has_conflict(session, coupon, today=today, exclude_id=exclude_id):
        violations.append(Violation(field="code", kind="coupon_code_not_unique"))
    return violations
