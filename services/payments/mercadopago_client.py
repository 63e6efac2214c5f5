# services/payments/mercadopago_client.py
"""
Thin MercadoPago REST client: preference creation + payment lookup.

Configuration (env first, Flask config second):
  MERCADOPAGO_API_URL   default: https://api.mercadopago.com
  MERCADOPAGO_TIMEOUT   seconds (default 15), applied to every call

The access token is per-gateway (admin-edited), so it is passed in rather
than read from the environment.
"""

from __future__ import annotations
import os
from typing import Any, Dict

import requests
from flask import current_app, has_app_context

from services.payments.base import PaymentGatewayError

DEFAULT_API_URL = "https://api.mercadopago.com"


def _get(key: str, default: str | None = None) -> str | None:
    """Env first, then Flask config."""
    env = os.environ.get(key)
    if env is not None:
        return env
    if has_app_context():
        return current_app.config.get(key, default)
    return default


class MercadoPagoAPIError(PaymentGatewayError):
    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MercadoPagoClient:
    def __init__(self, access_token: str, session: requests.Session | None = None) -> None:
        self.base_url = (_get("MERCADOPAGO_API_URL") or DEFAULT_API_URL).rstrip("/")
        self.timeout = float(_get("MERCADOPAGO_TIMEOUT", "15"))
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def _build_url(self, resource: str) -> str:
        return f"{self.base_url}/{resource.lstrip('/')}"

    def _request(self, method: str, resource: str, **kwargs) -> Dict[str, Any]:
        url = self._build_url(resource)
        try:
            resp = self.session.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            # timeouts land here too
            raise MercadoPagoAPIError(f"{method} {resource} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        if resp.status_code >= 400:
            raise MercadoPagoAPIError(
                f"{method} {resource} returned HTTP {resp.status_code}",
                status_code=resp.status_code, body=body)
        if not isinstance(body, dict):
            raise MercadoPagoAPIError(
                f"{method} {resource} returned a non-object body",
                status_code=resp.status_code, body=body)
        return body

    def create_preference(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /checkout/preferences -> {"id", "init_point", "sandbox_init_point", ...}"""
        return self._request("POST", "/checkout/preferences", json=payload)

    def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """GET /v1/payments/{id} -> {"id", "status", ...}"""
        return self._request("GET", f"/v1/payments/{payment_id}")
