# models/settings_store.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from models.base import session_scope
from models.schema import Setting


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    with session_scope() as s:
        row = s.get(Setting, key)
        return row.value if row else default


def set_setting(key: str, value: str) -> None:
    with session_scope() as s:
        row = s.get(Setting, key)
        if row is None:
            row = Setting(key=key, value=value, updated_at=_now_utc())
        else:
            row.value = value
            row.updated_at = _now_utc()
        s.add(row)


def set_setting_if_absent(key: str, value: str) -> str:
    """
    Insert key=value unless the key already exists.
    Returns whichever value ends up persisted.
    """
    existing = get_setting(key)
    if existing is not None:
        return existing
    try:
        with session_scope() as s:
            s.add(Setting(key=key, value=value, updated_at=_now_utc()))
        return value
    except IntegrityError:
        # lost the race to a concurrent writer; theirs is the one that stays
        return get_setting(key)
