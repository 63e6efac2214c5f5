# models/gateways_store.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Mapping, Optional

from sqlalchemy import select
from models.base import session_scope
from models.schema import Gateway


class GatewayNotFoundError(LookupError):
    def __init__(self, key: str):
        super().__init__(f"Gateway {key!r} is not registered")
        self.key = key


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_dict(g: Gateway) -> dict:
    return {
        "id": g.id,
        "driver": g.driver,
        "name": g.name,
        "endpoint": g.endpoint,
        "type": g.type,
        "config": {k: "" if v is None else str(v) for k, v in (g.config or {}).items()},
        "is_active": bool(g.is_active),
    }


def get_gateway(driver: str) -> dict:
    """Return the single gateway row for `driver`; missing is an error."""
    with session_scope() as s:
        g = s.execute(select(Gateway).where(
            Gateway.driver == driver)).scalars().first()
        if not g:
            raise GatewayNotFoundError(driver)
        return _to_dict(g)


def find_gateway_by_endpoint(endpoint: str) -> Optional[dict]:
    with session_scope() as s:
        g = s.execute(select(Gateway).where(
            Gateway.endpoint == endpoint)).scalars().first()
        return _to_dict(g) if g else None


def list_gateways() -> list[dict]:
    with session_scope() as s:
        rows = s.execute(select(Gateway).order_by(Gateway.id)).scalars().all()
        return [_to_dict(g) for g in rows]


def ensure_gateway(driver: str, *, name: str, endpoint: str, type_: str,
                   defaults: Mapping[str, str]) -> dict:
    """
    Create the row for `driver` if missing, otherwise merge in config keys
    that are not present yet. Existing values are never overwritten.
    """
    now = _now_utc()
    with session_scope() as s:
        g = s.execute(select(Gateway).where(
            Gateway.driver == driver)).scalars().first()
        if g is None:
            g = Gateway(
                driver=driver, name=name, endpoint=endpoint, type=type_,
                config=dict(defaults), is_active=True,
                created_at=now, updated_at=now,
            )
        else:
            merged = dict(defaults)
            merged.update(g.config or {})
            g.config = merged
            g.endpoint = endpoint
            g.type = type_
            g.updated_at = now
        s.add(g)
        s.flush()
        return _to_dict(g)


def update_gateway_config(driver: str, values: Mapping[str, str]) -> dict:
    with session_scope() as s:
        g = s.execute(select(Gateway).where(
            Gateway.driver == driver)).scalars().first()
        if not g:
            raise GatewayNotFoundError(driver)
        cfg = dict(g.config or {})
        cfg.update({k: "" if v is None else str(v) for k, v in values.items()})
        # reassign so the JSON column is flagged dirty
        g.config = cfg
        g.updated_at = _now_utc()
        s.add(g)
        s.flush()
        return _to_dict(g)
