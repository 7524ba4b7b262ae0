from coupon_engine.db.base import Base  # noqa: F401
from coupon_engine.models.coupon import (  # noqa: F401
    Coupon,
    CouponDiscountType,
    CouponRecurrenceType,
    CouponRedemption,
)

__all__ = [
    "Base",
    "Coupon",
    "CouponDiscountType",
    "CouponRecurrenceType",
    "CouponRedemption",
]
