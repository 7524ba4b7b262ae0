from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Protocol

from coupon_engine.models.coupon import Coupon, CouponDiscountType
from coupon_engine.services.pricing import to_decimal

HUNDRED = Decimal("100")


class Resolver(Protocol):
    """Post-processing hook run after the discount is computed.

    Receives the coupon and the options computed so far (``amount``,
    ``discount``, ``total`` plus anything the caller passed in) and returns the
    options handed to the next resolver.
    """

    def resolve(self, coupon: Coupon, options: dict[str, Any]) -> dict[str, Any]: ...


def percentage_discount(coupon: Coupon, input_amount: Decimal) -> Decimal:
    return input_amount * (Decimal(int(coupon.amount or 0)) / HUNDRED)


def amount_discount(coupon: Coupon, input_amount: Decimal) -> Decimal:
    return Decimal(int(coupon.amount or 0))


_FORMULAS = {
    CouponDiscountType.percentage: percentage_discount,
    CouponDiscountType.amount: amount_discount,
}


def compute_discount(coupon: Coupon, input_amount: object) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(amount, discount, total)``; the total never goes below zero."""
    amount = to_decimal(input_amount)
    formula = _FORMULAS[CouponDiscountType(coupon.discount_type)]
    discount = formula(coupon, amount)
    total = max(Decimal("0"), amount - discount)
    return amount, discount, total


class DiscountCalculator:
    def __init__(self, resolvers: Sequence[Resolver] = ()) -> None:
        self.resolvers = tuple(resolvers)

    def apply(self, coupon: Coupon, input_amount: object, **options: Any) -> dict[str, Any]:
        amount, discount, total = compute_discount(coupon, input_amount)
        result: dict[str, Any] = {**options, "amount": amount, "discount": discount, "total": total}
        for resolver in self.resolvers:
            result = resolver.resolve(coupon, result)
        return result
