from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from coupon_engine.models.coupon import Coupon, CouponRecurrenceType

WEEKDAYS = frozenset(range(7))


@dataclass(frozen=True)
class RecurrenceRule:
    """Weekly schedule: the weekdays (0 = Sunday) on which a coupon may be used."""

    days: frozenset[int]

    def includes(self, weekday: int) -> bool:
        return weekday in self.days

    def intersects(self, other: RecurrenceRule) -> bool:
        return bool(self.days & other.days)


EVERY_DAY = RecurrenceRule(days=WEEKDAYS)


def recurrence_days(raw: object) -> list[object]:
    if isinstance(raw, dict):
        raw = raw.get("days")
    if raw is None or isinstance(raw, (str, bytes)):
        return []
    try:
        return list(raw)  # type: ignore[call-overload]
    except TypeError:
        return []


def parse_days(values: Iterable[object]) -> list[int] | None:
    days: list[int] = []
    for value in values:
        if isinstance(value, bool):
            return None
        try:
            days.append(int(str(value).strip()))
        except ValueError:
            return None
    return days


def is_valid_recurrence(raw: object) -> bool:
    """Non-empty, every entry a weekday integer 0..6, no duplicates."""
    days = parse_days(recurrence_days(raw))
    if not days:
        return False
    if any(day not in WEEKDAYS for day in days):
        return False
    return len(set(days)) == len(days)


def recurrence_rule(coupon: Coupon) -> RecurrenceRule | None:
    if coupon.recurrence_type != CouponRecurrenceType.weekly:
        return None
    days = parse_days(recurrence_days(coupon.recurrence)) or []
    return RecurrenceRule(days=frozenset(day for day in days if day in WEEKDAYS))


def effective_rule(coupon: Coupon) -> RecurrenceRule:
    """Weekdays a coupon is active on; plain coupons run every day."""
    return recurrence_rule(coupon) or EVERY_DAY
