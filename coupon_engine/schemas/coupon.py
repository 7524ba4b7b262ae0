from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coupon_engine.models.coupon import END_OF_DAY, START_OF_DAY, CouponDiscountType, CouponRecurrenceType


class RedemptionStatus(str, enum.Enum):
    found = "found"
    not_found = "not_found"
    limit_exceeded = "limit_exceeded"


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    kind: str


class ValidationReport(BaseModel):
    valid: bool
    violations: list[Violation] = Field(default_factory=list)


class CouponDraft(BaseModel):
    """Unsaved coupon as submitted by an admin form; loose types so bad input becomes violations."""

    code: str | None = None
    description: str | None = None
    discount_type: str = CouponDiscountType.amount.value
    amount: Decimal | int | None = 0
    valid_from_date: date | None = None
    valid_until_date: date | None = None
    valid_from_time: str = START_OF_DAY
    valid_until_time: str = END_OF_DAY
    redemption_limit_global: Decimal | int | None = 1
    redemption_limit_user: Decimal | int | None = 0
    recurrence_type: str = CouponRecurrenceType.none.value
    recurrence: dict[str, Any] | None = None
    attachments: dict[str, str] = Field(default_factory=dict)
    exclude_id: UUID | None = None


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str | None = None
    discount_type: CouponDiscountType
    amount: int
    valid_from_date: date
    valid_until_date: date | None = None
    valid_from_time: str
    valid_until_time: str
    redemption_limit_global: int
    redemption_limit_user: int
    redemption_count: int
    recurrence_type: CouponRecurrenceType
    recurrence: dict[str, Any] | None = None


class RedemptionResult(BaseModel):
    status: RedemptionStatus
    amount: float
    discount: float
    total: float
