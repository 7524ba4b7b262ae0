"""setup coupons and redemptions

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "coupons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(length=10), nullable=False, server_default="amount"),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_from_date", sa.Date(), nullable=False),
        sa.Column("valid_until_date", sa.Date(), nullable=True),
        sa.Column("valid_from_time", sa.String(length=8), nullable=False, server_default="00:00:00"),
        sa.Column("valid_until_time", sa.String(length=8), nullable=False, server_default="24:00:00"),
        sa.Column("redemption_limit_global", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("redemption_limit_user", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("redemption_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recurrence_type", sa.String(length=6), nullable=False, server_default="none"),
        sa.Column("recurrence", sa.JSON(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("redemption_count >= 0", name="ck_coupons_redemption_count_non_negative"),
    )
    op.create_index("ix_coupons_code_lower", "coupons", [sa.text("lower(code)")])

    op.create_table(
        "coupon_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "coupon_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_coupon_redemptions_coupon_user", "coupon_redemptions", ["coupon_id", "user_id"])


def downgrade() -> None:
    op.drop_index("ix_coupon_redemptions_coupon_user", table_name="coupon_redemptions")
    op.drop_table("coupon_redemptions")
    op.drop_index("ix_coupons_code_lower", table_name="coupons")
    op.drop_table("coupons")
