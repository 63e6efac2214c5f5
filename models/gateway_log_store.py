# models/gateway_log_store.py
from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import select
from models.base import session_scope
from models.schema import GatewayLog

log = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# payment_id is an int4 column on Postgres
_MAX_ID = 2**31 - 1

# never persisted or logged in clear
_MASKED_KEYS = {"wh_secret"}


def _coerce_payment_id(payment_id) -> Optional[int]:
    try:
        pid = int(str(payment_id))
    except (TypeError, ValueError):
        return None
    return pid if 0 < pid <= _MAX_ID else None


def _masked(payload: Mapping[str, Any]) -> dict:
    return {k: ("***" if k in _MASKED_KEYS and v else v) for k, v in payload.items()}


def record_gateway_log(gateway: str, tag: str, payload: Mapping[str, Any], *,
                       payment_id=None, note: Optional[str] = None) -> int:
    """Persist `payload` (secrets masked) under a category tag and mirror it to the log."""
    raw_text = json.dumps(_masked(payload), ensure_ascii=False,
                          separators=(",", ":"), sort_keys=True, default=str)
    log.info("[%s] %s payment=%s %s%s", gateway, tag, payment_id, raw_text,
             f" note={note}" if note else "")
    with session_scope() as s:
        e = GatewayLog(
            gateway=gateway, tag=tag, payment_id=_coerce_payment_id(payment_id),
            raw=raw_text, note=note, created_at=_now_utc(),
        )
        s.add(e)
        s.flush()
        return e.id


def list_gateway_logs(tag: str | None = None, payment_id: int | None = None,
                      limit: int = 500) -> list[dict]:
    with session_scope() as s:
        q = select(GatewayLog).order_by(GatewayLog.id.desc()).limit(limit)
        if tag:
            q = q.where(GatewayLog.tag == tag)
        if payment_id is not None:
            if _coerce_payment_id(payment_id) is None:
                return []
            q = q.where(GatewayLog.payment_id == payment_id)
        return [
            {
                "id": e.id, "gateway": e.gateway, "tag": e.tag,
                "payment_id": e.payment_id, "raw": json.loads(e.raw),
                "note": e.note, "created_at": e.created_at,
            }
            for e in s.execute(q).scalars().all()
        ]
