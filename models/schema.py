# models/schema.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint
)
from models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- USERS (payers + admins)

class User(Base):
    __tablename__ = "users"
    username: Mapped[str] = mapped_column(String, primary_key=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(
        String, nullable=False)  # ('admin','user')
    first_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    email: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)
    __table_args__ = (
        CheckConstraint("role in ('admin','user')", name="ck_users_role"),
    )


# --- PAYMENTS

class Payment(Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String, ForeignKey("users.username", ondelete="RESTRICT"), nullable=False)
    gateway: Mapped[str] = mapped_column(String, nullable=False)  # driver name
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending")
    # processor-side id, known only once the processor confirms
    transaction_id: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True))
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_ge_0"),
        CheckConstraint(
            "status in ('pending','completed')", name="ck_payments_status"),
    )


Index("idx_payments_status", Payment.status)
Index("idx_payments_username", Payment.username)


# --- GATEWAYS (one row per registered driver)

class Gateway(Base):
    __tablename__ = "gateways"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    driver: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    endpoint: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(
        String, nullable=False, default="once")  # 'once' | 'subscription'
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    __table_args__ = (
        UniqueConstraint("driver", name="uq_gateways_driver"),
        UniqueConstraint("endpoint", name="uq_gateways_endpoint"),
        CheckConstraint("type in ('once','subscription')",
                        name="ck_gateways_type"),
    )


# --- SETTINGS (application-wide key/value)

class Setting(Base):
    __tablename__ = "settings"
    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)


# --- GATEWAY LOGS (forensic record of inbound/outbound gateway traffic)

class GatewayLog(Base):
    __tablename__ = "gateway_logs"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    gateway: Mapped[str] = mapped_column(String, nullable=False)
    tag: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_id: Mapped[int | None] = mapped_column(
        Integer)  # intended FK to payments.id (nullable, may not exist)
    raw: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow)
    __table_args__ = (
        Index("idx_gateway_logs_tag", "tag"),
        Index("idx_gateway_logs_payment", "payment_id"),
    )


# --- AUDIT

class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False)

    actor: Mapped[str | None] = mapped_column(String(128))
    actor_role: Mapped[str | None] = mapped_column(String(32))
    ip: Mapped[str | None] = mapped_column(
        String(64))             # anonymized if configured
    method: Mapped[str | None] = mapped_column(String(8))
    path: Mapped[str | None] = mapped_column(String(512))

    # Event semantics
    action: Mapped[str] = mapped_column(
        String(64), nullable=False)  # controlled vocabulary
    target_type: Mapped[str | None] = mapped_column(String(32))
    target_id: Mapped[str | None] = mapped_column(String(128))
    outcome: Mapped[str | None] = mapped_column(
        String(16))          # 'success'|'failure'|'noop'
    status: Mapped[int | None] = mapped_column(Integer)
    extra: Mapped[dict | None] = mapped_column(JSON)

    # Tamper-evident chain
    prev_hash: Mapped[str | None] = mapped_column(String(128))
    hash: Mapped[str | None] = mapped_column(String(128))
    signature: Mapped[str | None] = mapped_column(
        String(128))       # HMAC(hash, SECRET)
    key_id: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "outcome in ('success','failure','noop') or outcome is null", name="ck_audit_outcome"),
        Index("idx_audit_ts", "ts"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_target", "target_type", "target_id"),
    )
