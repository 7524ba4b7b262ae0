import enum
import uuid
from datetime import date, datetime

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coupon_engine.db.base import Base

START_OF_DAY = "00:00:00"
END_OF_DAY = "24:00:00"


class CouponDiscountType(str, enum.Enum):
    percentage = "percentage"
    amount = "amount"


class CouponRecurrenceType(str, enum.Enum):
    none = "none"
    weekly = "weekly"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (CheckConstraint("redemption_count >= 0", name="ck_coupons_redemption_count_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[CouponDiscountType] = mapped_column(
        Enum(CouponDiscountType, native_enum=False),
        nullable=False,
        default=CouponDiscountType.amount,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_from_date: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_from_time: Mapped[str] = mapped_column(String(8), nullable=False, default=START_OF_DAY)
    valid_until_time: Mapped[str] = mapped_column(String(8), nullable=False, default=END_OF_DAY)
    redemption_limit_global: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    redemption_limit_user: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redemption_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recurrence_type: Mapped[CouponRecurrenceType] = mapped_column(
        Enum(CouponRecurrenceType, native_enum=False),
        nullable=False,
        default=CouponRecurrenceType.none,
    )
    recurrence: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attachments: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    redemptions: Mapped[list["CouponRedemption"]] = relationship(
        "CouponRedemption", back_populates="coupon", cascade="all, delete-orphan", lazy="noload"
    )

    @property
    def is_weekly(self) -> bool:
        return self.recurrence_type == CouponRecurrenceType.weekly


Index("ix_coupons_code_lower", func.lower(Coupon.code))


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"
    __table_args__ = (Index("ix_coupon_redemptions_coupon_user", "coupon_id", "user_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon: Mapped[Coupon] = relationship("Coupon", back_populates="redemptions")
