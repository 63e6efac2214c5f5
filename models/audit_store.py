# models/audit_store.py
import os
import json
import hmac
import hashlib
from typing import Any, Optional
from datetime import datetime, timezone
from flask import request, has_request_context
from sqlalchemy import asc, select
from models.base import session_scope
from models.schema import AuditLog
from flask_login import current_user

APP_SECRET = (os.getenv("AUDIT_HMAC_SECRET") or "secret-key").encode("utf-8")
ANONYMIZE_IP = os.getenv("AUDIT_ANONYMIZE_IP", "1") == "1"
SIGNING_KEY_ID = os.getenv("AUDIT_HMAC_KEY_ID", "k1")

_ALLOWED_EXTRA_KEYS = {"reason", "note", "gateway", "keys",
                       "amount", "currency", "transaction_id", "old", "new"}


def _load_keyring() -> dict[str, bytes]:
    ring: dict[str, bytes] = {}
    # Optional ring for rotated keys
    cfg = os.getenv("AUDIT_HMAC_KEYRING", "")
    if cfg:
        for part in cfg.split(","):
            part = part.strip()
            if not part or "=" not in part:
                continue
            kid, sec = part.split("=", 1)
            ring[kid.strip()] = sec.strip().encode("utf-8")
    # Always include current key
    ring[SIGNING_KEY_ID] = APP_SECRET
    return ring


def _ts_to_payload_str(ts_val: Any) -> str:
    """Recreate the exact 'ts' string format used when hashing."""
    if isinstance(ts_val, datetime):
        if ts_val.tzinfo is None:
            # SQLite hands back naive datetimes; we only ever write UTC
            ts_val = ts_val.replace(tzinfo=timezone.utc)
        ts_val = ts_val.astimezone(timezone.utc)
        return ts_val.isoformat(timespec="seconds").replace("+00:00", "Z")
    return str(ts_val)


def _payload(r: AuditLog) -> dict:
    return {
        "ts": _ts_to_payload_str(r.ts),
        "actor": r.actor,
        "actor_role": r.actor_role,
        "ip": r.ip,
        "method": r.method,
        "path": r.path,
        "action": r.action,
        "target_type": r.target_type,
        "target_id": r.target_id,
        "outcome": r.outcome,
        "status": r.status,
        "extra": r.extra or {},
        "key_id": r.key_id,
    }


def _compute_hash(prev_hash: str, payload: dict) -> str:
    s = prev_hash + json.dumps(payload, separators=(",", ":"),
                               sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _sign(h: str, key: bytes = APP_SECRET) -> str:
    return hmac.new(key, h.encode("utf-8"), hashlib.sha256).hexdigest()


def _anon_ip(ip: str | None) -> str | None:
    if not ip:
        return None
    if not ANONYMIZE_IP:
        return ip
    # Simple IPv4 /24 or IPv6 /48 truncation
    if ":" in ip:
        parts = ip.split(":")
        return ":".join(parts[:3]) + "::"
    quads = ip.split(".")
    return ".".join(quads[:3]) + ".0"


def _clean_extra(extra: Optional[dict[str, Any]]) -> dict:
    out = {}
    for k, v in (extra or {}).items():
        if k not in _ALLOWED_EXTRA_KEYS:
            continue
        if isinstance(v, str) and len(v) > 512:
            v = v[:512] + "…"
        out[k] = v
    return out


def verify_chain(limit: Optional[int] = None) -> dict:
    """
    Walk the chain oldest-first. Returns
      {"ok", "checked", "last_ok_id", "first_bad_id", "reason"}
    """
    ring = _load_keyring()
    prev = ""
    checked = 0
    last_ok = None

    def _bad(row_id, reason):
        return {"ok": False, "checked": checked, "last_ok_id": last_ok,
                "first_bad_id": row_id, "reason": reason}

    with session_scope() as s:
        rows = s.execute(select(AuditLog).order_by(
            asc(AuditLog.id))).scalars().all()
        if limit:
            rows = rows[: int(limit)]

        for r in rows:
            if (r.prev_hash or "") != prev:
                return _bad(r.id, "prev_hash_mismatch")
            exp_hash = _compute_hash(prev, _payload(r))
            if r.hash != exp_hash:
                return _bad(r.id, "hash_mismatch")
            key = ring.get(r.key_id or SIGNING_KEY_ID)
            if not key:
                return _bad(r.id, f"missing_key:{r.key_id}")
            if r.signature != _sign(exp_hash, key):
                return _bad(r.id, "signature_mismatch")
            checked += 1
            last_ok = r.id
            prev = r.hash or ""

    return {"ok": True, "checked": checked, "last_ok_id": last_ok,
            "first_bad_id": None, "reason": None}


def audit(
    action: str,
    *,
    target_type: str | None = None,
    target_id: str | None = None,
    outcome: str | None = None,            # 'success'|'failure'|'noop'
    status: int | None = None,
    extra: Optional[dict[str, Any]] = None,
    actor: Optional[str] = None
) -> None:
    ts = datetime.now(timezone.utc).replace(microsecond=0)

    ip = method = path = None
    if has_request_context():
        fwd = request.headers.get("X-Forwarded-For", "")
        ip = _anon_ip(fwd.split(",")[0].strip() or request.remote_addr)
        method = request.method
        path = request.path

    actor_role = None
    if actor is None:
        actor = getattr(current_user, "username", None) or "anonymous"
        actor_role = getattr(current_user, "role", None)

    row = AuditLog(
        ts=ts, actor=actor, actor_role=actor_role,
        ip=ip, method=method, path=path,
        action=action, target_type=target_type,
        target_id=None if target_id is None else str(target_id),
        outcome=outcome, status=status,
        extra=_clean_extra(extra), key_id=SIGNING_KEY_ID,
    )

    with session_scope() as s:
        # serialize writers on the chain tip (Postgres honors FOR UPDATE)
        tip = s.execute(select(AuditLog).order_by(
            AuditLog.id.desc()).limit(1).with_for_update()).scalars().first()
        prev = (tip.hash or "") if tip else ""
        h = _compute_hash(prev, _payload(row))
        row.prev_hash = prev
        row.hash = h
        row.signature = _sign(h)
        s.add(row)


def list_audit(limit: int = 500) -> list[dict]:
    with session_scope() as s:
        rows = s.execute(
            select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
        ).scalars().all()
        return [
            {
                "id": r.id,
                "ts": _ts_to_payload_str(r.ts),
                "actor": r.actor,
                "action": r.action,
                "target": f"{r.target_type}:{r.target_id}" if (r.target_type or r.target_id) else None,
                "status": r.status,
                "outcome": r.outcome,
                "extra": r.extra or {},
            }
            for r in rows
        ]
