"""donations schema

Revision ID: 4b2d7e91c0a3
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4b2d7e91c0a3"
down_revision = None
branch_labels = None
depends_on = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _json():
    # Portable: JSON on SQLite, JSONB on Postgres
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    # --- funds ---
    op.create_table(
        "funds",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title_fr", sa.String(length=255), nullable=False),
        sa.Column("title_en", sa.String(length=255), nullable=False),
        sa.Column("description_fr", sa.Text(), nullable=True),
        sa.Column("description_en", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("target_amount_minor", sa.BigInteger(), nullable=True),
        sa.Column("current_amount_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="XAF"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_amount_minor >= 0", name="ck_funds_current_nonneg"),
        sa.CheckConstraint(
            "target_amount_minor IS NULL OR target_amount_minor > 0", name="ck_funds_target_positive"
        ),
    )
    with op.batch_alter_table("funds") as batch_op:
        batch_op.create_index(batch_op.f("ix_funds_status"), ["status"], unique=False)
        batch_op.create_index(batch_op.f("ix_funds_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_funds_type_status", ["type", "status"], unique=False)

    # --- beneficiaries ---
    op.create_table(
        "beneficiaries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("notchpay_id", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    with op.batch_alter_table("beneficiaries") as batch_op:
        batch_op.create_index(batch_op.f("ix_beneficiaries_notchpay_id"), ["notchpay_id"], unique=True)
        batch_op.create_index(batch_op.f("ix_beneficiaries_is_active"), ["is_active"], unique=False)
        batch_op.create_index(batch_op.f("ix_beneficiaries_created_at"), ["created_at"], unique=False)

    # --- donations ---
    op.create_table(
        "donations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("fund_id", sa.String(length=36), sa.ForeignKey("funds.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="XAF"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("provider", sa.String(length=32), nullable=False, server_default="notchpay"),
        sa.Column("payment_method", sa.String(length=32), nullable=False, server_default="mobile_money"),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("payment_metadata", _json(), nullable=True),
        sa.Column("donated_at", sa.DateTime(), nullable=True),
        sa.Column("donor_email", sa.String(length=160), nullable=True),
        sa.Column("donor_phone", sa.String(length=32), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("amount_minor > 0", name="ck_donations_amount_positive"),
        sa.CheckConstraint("status IN ('pending', 'completed', 'failed')", name="ck_donations_status"),
        sa.UniqueConstraint("transaction_id", name="uq_donations_transaction_id"),
    )
    with op.batch_alter_table("donations") as batch_op:
        batch_op.create_index(batch_op.f("ix_donations_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_fund_id"), ["fund_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_status"), ["status"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_donations_user_created", ["user_id", "created_at"], unique=False)
        batch_op.create_index("ix_donations_fund_status", ["fund_id", "status"], unique=False)

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        sa.Column("title_fr", sa.String(length=255), nullable=False),
        sa.Column("title_en", sa.String(length=255), nullable=False),
        sa.Column("body_fr", sa.Text(), nullable=False),
        sa.Column("body_en", sa.Text(), nullable=False),
        sa.Column("data", _json(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.create_index(batch_op.f("ix_notifications_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_notifications_trigger"), ["trigger"], unique=False)
        batch_op.create_index(batch_op.f("ix_notifications_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_notifications_user_read", ["user_id", "is_read"], unique=False)


def downgrade():
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.drop_index("ix_notifications_user_read")
        batch_op.drop_index(batch_op.f("ix_notifications_created_at"))
        batch_op.drop_index(batch_op.f("ix_notifications_trigger"))
        batch_op.drop_index(batch_op.f("ix_notifications_user_id"))
    op.drop_table("notifications")

    with op.batch_alter_table("donations") as batch_op:
        batch_op.drop_index("ix_donations_fund_status")
        batch_op.drop_index("ix_donations_user_created")
        batch_op.drop_index(batch_op.f("ix_donations_created_at"))
        batch_op.drop_index(batch_op.f("ix_donations_status"))
        batch_op.drop_index(batch_op.f("ix_donations_fund_id"))
        batch_op.drop_index(batch_op.f("ix_donations_user_id"))
    op.drop_table("donations")

    with op.batch_alter_table("beneficiaries") as batch_op:
        batch_op.drop_index(batch_op.f("ix_beneficiaries_created_at"))
        batch_op.drop_index(batch_op.f("ix_beneficiaries_is_active"))
        batch_op.drop_index(batch_op.f("ix_beneficiaries_notchpay_id"))
    op.drop_table("beneficiaries")

    with op.batch_alter_table("funds") as batch_op:
        batch_op.drop_index("ix_funds_type_status")
        batch_op.drop_index(batch_op.f("ix_funds_created_at"))
        batch_op.drop_index(batch_op.f("ix_funds_status"))
    op.drop_table("funds")
