"""initial payments schema

Revision ID: 4f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:03.118402

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("username", sa.String(), primary_key=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role in ('admin','user')", name="ck_users_role"),
    )
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(), sa.ForeignKey(
            "users.username", ondelete="RESTRICT"), nullable=False),
        sa.Column("gateway", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("transaction_id", sa.String()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount >= 0", name="ck_payments_amount_ge_0"),
        sa.CheckConstraint("status in ('pending','completed')",
                           name="ck_payments_status"),
    )
    op.create_index("idx_payments_status", "payments", ["status"])
    op.create_index("idx_payments_username", "payments", ["username"])

    op.create_table(
        "gateways",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("driver", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("endpoint", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("driver", name="uq_gateways_driver"),
        sa.UniqueConstraint("endpoint", name="uq_gateways_endpoint"),
        sa.CheckConstraint("type in ('once','subscription')",
                           name="ck_gateways_type"),
    )
    op.create_table(
        "settings",
        sa.Column("key", sa.String(128), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "gateway_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("gateway", sa.String(), nullable=False),
        sa.Column("tag", sa.String(64), nullable=False),
        sa.Column("payment_id", sa.Integer()),
        sa.Column("raw", sa.Text(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_gateway_logs_tag", "gateway_logs", ["tag"])
    op.create_index("idx_gateway_logs_payment", "gateway_logs", ["payment_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor", sa.String(128)),
        sa.Column("actor_role", sa.String(32)),
        sa.Column("ip", sa.String(64)),
        sa.Column("method", sa.String(8)),
        sa.Column("path", sa.String(512)),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("target_type", sa.String(32)),
        sa.Column("target_id", sa.String(128)),
        sa.Column("outcome", sa.String(16)),
        sa.Column("status", sa.Integer()),
        sa.Column("extra", sa.JSON()),
        sa.Column("prev_hash", sa.String(128)),
        sa.Column("hash", sa.String(128)),
        sa.Column("signature", sa.String(128)),
        sa.Column("key_id", sa.String(16)),
        sa.CheckConstraint(
            "outcome in ('success','failure','noop') or outcome is null", name="ck_audit_outcome"),
    )
    op.create_index("idx_audit_ts", "audit_log", ["ts"])
    op.create_index("idx_audit_action", "audit_log", ["action"])
    op.create_index("idx_audit_target", "audit_log",
                    ["target_type", "target_id"])


def downgrade():
    op.drop_table("audit_log")
    op.drop_table("gateway_logs")
    op.drop_table("settings")
    op.drop_table("gateways")
    op.drop_index("idx_payments_username", table_name="payments")
    op.drop_index("idx_payments_status", table_name="payments")
    op.drop_table("payments")
    op.drop_table("users")
