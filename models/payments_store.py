# models/payments_store.py (SQLAlchemy)
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, update
from models.base import session_scope
from models.schema import Payment, User


class PaymentNotFoundError(LookupError):
    """Raised when a payment id does not resolve to a row."""

    def __init__(self, payment_id):
        super().__init__(f"Payment {payment_id!r} not found")
        self.payment_id = payment_id


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _D(x) -> Decimal:
    # safe conversion avoiding float binary artifacts
    d = x if isinstance(x, Decimal) else Decimal(str(x))
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _coerce_id(payment_id) -> Optional[int]:
    try:
        pid = int(str(payment_id).strip())
    except (TypeError, ValueError):
        return None
    # ids outside int4 cannot exist; Postgres would reject the lookup
    return pid if 0 < pid <= 2**31 - 1 else None


def _to_dict(p: Payment, u: Optional[User]) -> dict:
    return {
        "id": p.id,
        "username": p.username,
        "gateway": p.gateway,
        "amount": p.amount,
        "currency": p.currency,
        "description": p.description,
        "status": p.status,
        "transaction_id": p.transaction_id,
        "created_at": p.created_at,
        "updated_at": p.updated_at,
        "completed_at": p.completed_at,
        "payer": {
            "name": u.first_name if u else "",
            "surname": u.last_name if u else "",
            "email": u.email if u else "",
        },
    }


def create_payment(username: str, gateway: str, amount, description: str = "",
                   currency: str = "USD") -> int:
    amt = _D(amount)
    if amt < 0:
        raise ValueError("amount must be >= 0")
    now = _now_utc()
    with session_scope() as s:
        p = Payment(
            username=username, gateway=gateway, amount=amt,
            currency=(currency or "USD").upper(), description=description or "",
            status="pending", created_at=now, updated_at=now,
        )
        s.add(p)
        s.flush()
        return p.id


def find_payment(payment_id) -> Optional[dict]:
    pid = _coerce_id(payment_id)
    if pid is None:
        return None
    with session_scope() as s:
        p = s.get(Payment, pid)
        if not p:
            return None
        return _to_dict(p, s.get(User, p.username))


def get_payment(payment_id) -> dict:
    """Like find_payment() but a missing row is an error."""
    p = find_payment(payment_id)
    if p is None:
        raise PaymentNotFoundError(payment_id)
    return p


def mark_completed(payment_id: int, transaction_id: Optional[str] = None) -> bool:
    """
    Transition pending -> completed.

    The UPDATE is guarded on status='pending', so among any number of
    (possibly concurrent) callers exactly one sees rowcount == 1 and gets
    True back. Everyone else is a no-op and gets False. Callers must only
    fire downstream side effects when this returns True.
    """
    now = _now_utc()
    values = {"status": "completed", "completed_at": now, "updated_at": now}
    if transaction_id:
        values["transaction_id"] = str(transaction_id)
    with session_scope() as s:
        res = s.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == "pending")
            .values(**values)
        )
        return res.rowcount == 1


def list_payments(username: str | None = None, status: str | None = None) -> list[dict]:
    with session_scope() as s:
        q = select(Payment).order_by(Payment.id.desc())
        if username:
            q = q.where(Payment.username == username)
        if status:
            q = q.where(Payment.status == status)
        rows = s.execute(q).scalars().all()
        return [_to_dict(p, s.get(User, p.username)) for p in rows]
