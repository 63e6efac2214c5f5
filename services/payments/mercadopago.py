# services/payments/mercadopago.py
"""
MercadoPago checkout gateway.

Checkout: build a preference, hand the payer to MercadoPago's hosted page.
Webhook:  a linear validation pipeline over one notification; each stage
either rejects with a 400 reason or falls through to the next one.

  1. log receipt (always)
  2. action == "payment.created"
  3. live_mode, unless the gateway itself is configured for sandbox
  4. wh_secret == persisted webhook secret
  5. resolve the payment (missing -> PaymentNotFoundError, not a 400)
  6. sandbox: complete right away
     live:    complete only if the processor reports the payment approved;
              any lookup problem is logged and hidden from the caller

Step 3 lets non-live notifications through whenever the gateway is in
sandbox mode. That asymmetry is intentional for sandbox testing; see
DESIGN.md before changing it.
"""

from __future__ import annotations
import logging
import os
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from flask import current_app, has_app_context, url_for

from models.audit_store import audit
from models.gateway_log_store import record_gateway_log
from models.payments_store import get_payment, mark_completed
from services.metrics import LOOKUP_FAILURES, PAYMENTS_COMPLETED
from services.payments.base import (
    CheckoutResult, GatewayDescriptor, RefundNotSupportedError, WebhookResult,
)
from services.payments.config import (
    SANDBOX_KEY, GatewayConfig, GatewayConfigProvider, StoreGatewayConfigProvider, boolish,
)
from services.payments.mercadopago_client import MercadoPagoAPIError, MercadoPagoClient
from services.payments.webhook_secret import current_webhook_secret, ensure_webhook_secret

log = logging.getLogger(__name__)

PAYMENT_CREATED = "payment.created"
APPROVED = "approved"

TAG_WEBHOOK_RECEIVED = "mercadopago.webhook.received"
TAG_CHECKOUT_FAILED = "mercadopago.checkout.failed"
TAG_LOOKUP_FAILED = "mercadopago.lookup.failed"


def _cfg(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    if v is not None:
        return v
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def external_url(endpoint: str, **values) -> str:
    """Absolute URL for `endpoint`, rooted at SITE_BASE_URL when configured."""
    site = (_cfg("SITE_BASE_URL") or "").rstrip("/")
    if site:
        return site + url_for(endpoint, **values)
    return url_for(endpoint, _external=True, **values)


class MercadoPagoGateway:
    driver = "MercadoPagoGateway"
    name = "MercadoPago"
    endpoint = "mercado-pago-gateway"

    def __init__(self, config_provider: Optional[GatewayConfigProvider] = None,
                 client_factory: Optional[Callable[[str], Any]] = None) -> None:
        self.config_provider = config_provider or StoreGatewayConfigProvider(self.driver)
        self._client_factory = client_factory

    # ---- registration / admin surface ----

    @classmethod
    def descriptor(cls) -> GatewayDescriptor:
        return GatewayDescriptor(
            driver=cls.driver,
            type="once",
            class_path=f"{cls.__module__}.{cls.__qualname__}",
            endpoint=cls.endpoint,
            refund_support=False,
            name=cls.name,
        )

    def describe(self) -> Dict[str, Dict[str, Any]]:
        return {self.driver: self.descriptor().as_dict()}

    @staticmethod
    def config_defaults() -> Dict[str, str]:
        return {
            "access_token": "",
            "currency": "ARS",
            "usd_to_currency": "",
            SANDBOX_KEY: "true",
        }

    def get_config_merge(self) -> Dict[str, str]:
        """Admin-editable keys with their defaults."""
        ensure_webhook_secret()
        return self.config_defaults()

    def check_subscription(self, subscription_id: str) -> bool:
        # one-off payments only
        return False

    def refund(self, payment: Mapping[str, Any], data: Mapping[str, Any]) -> None:
        raise RefundNotSupportedError(f"{self.driver} does not support refunds")

    # ---- checkout ----

    def _client(self, config: GatewayConfig):
        factory = self._client_factory or MercadoPagoClient
        return factory(config.access_token)

    def build_preference(self, payment: Mapping[str, Any], config: GatewayConfig,
                         secret: str) -> Dict[str, Any]:
        app_name = _cfg("APP_NAME") or "Payments"
        pid = payment["id"]
        payer = payment.get("payer") or {}
        unit_price = config.convert(Decimal(str(payment["amount"])))
        return {
            "items": [{
                "id": str(pid),
                "title": app_name,
                "description": payment.get("description") or "",
                "currency_id": config.currency,
                "quantity": 1,
                "unit_price": float(unit_price),
            }],
            "payer": {
                "name": payer.get("name", ""),
                "surname": payer.get("surname", ""),
                "email": payer.get("email", ""),
            },
            "payment_methods": {
                "excluded_payment_methods": [],
                "installments": 1,
                "default_installments": 1,
            },
            "back_urls": {
                "success": external_url("payments.success", payment_id=pid),
                "failure": external_url("payments.cancel", payment_id=pid),
            },
            "statement_descriptor": app_name,
            "external_reference": str(pid),
            "expires": False,
            "auto_return": "approved",
            "notification_url": external_url(
                "payments.gateway_return", gateway=self.endpoint, payment=pid, wh_secret=secret),
        }

    def initiate_checkout(self, payment: Mapping[str, Any]) -> CheckoutResult:
        # secret and token must be in place before the notification URL is built
        ensure_webhook_secret()
        config = self.config_provider.load()
        client = self._client(config)
        body = self.build_preference(payment, config, current_webhook_secret())

        try:
            preference = client.create_preference(body)
        except MercadoPagoAPIError as e:
            record_gateway_log(
                self.driver, TAG_CHECKOUT_FAILED,
                {"payment": payment["id"], "error": str(e),
                 "status_code": e.status_code, "response": e.body},
                payment_id=payment["id"])
            return CheckoutResult.failed("Preference creation failed")

        point = "sandbox_init_point" if config.sandbox else "init_point"
        url = preference.get(point)
        if not url:
            record_gateway_log(
                self.driver, TAG_CHECKOUT_FAILED,
                {"payment": payment["id"], "error": f"missing {point}", "response": preference},
                payment_id=payment["id"])
            return CheckoutResult.failed(f"Processor response had no {point}")
        return CheckoutResult.redirect(url, preference_id=preference.get("id"))

    # ---- webhook ----

    def handle_callback(self, params: Mapping[str, Any]) -> WebhookResult:
        notification = dict(params)
        record_gateway_log(self.driver, TAG_WEBHOOK_RECEIVED, notification,
                           payment_id=notification.get("payment"))
        config = self.config_provider.load()

        if notification.get("action") != PAYMENT_CREATED:
            return WebhookResult(400, "invalid_action", error="Invalid action type")

        if not boolish(notification.get("live_mode")) and not config.sandbox:
            return WebhookResult(400, "not_live", error="Transaction is not in live mode")

        if notification.get("wh_secret") != current_webhook_secret():
            return WebhookResult(400, "invalid_secret", error="Invalid webhook secret")

        payment = get_payment(notification.get("payment"))

        if config.sandbox:
            return self._complete(payment, transaction_id=None)
        return self._verify_and_complete(payment, notification, config)

    def _verify_and_complete(self, payment: Mapping[str, Any], notification: Dict[str, Any],
                             config: GatewayConfig) -> WebhookResult:
        data_id = notification.get("data_id")
        if not data_id:
            return self._lookup_failed(payment, notification, "notification carried no data_id")
        try:
            remote = self._client(config).get_payment(str(data_id))
        except MercadoPagoAPIError as e:
            return self._lookup_failed(payment, notification, str(e))

        status = remote.get("status")
        if status != APPROVED:
            return self._lookup_failed(payment, notification, f"processor status={status!r}")
        return self._complete(payment, transaction_id=remote.get("id") or data_id)

    def _lookup_failed(self, payment, notification, note: str) -> WebhookResult:
        LOOKUP_FAILURES.labels(gateway=self.driver).inc()
        record_gateway_log(self.driver, TAG_LOOKUP_FAILED, notification,
                           payment_id=payment["id"], note=note)
        # the processor still sees success; reconciliation happens out of band
        return WebhookResult(200, "lookup_failed")

    def _complete(self, payment: Mapping[str, Any], transaction_id) -> WebhookResult:
        if not mark_completed(payment["id"], transaction_id=transaction_id):
            log.info("Payment %s already completed; duplicate delivery ignored", payment["id"])
            return WebhookResult(200, "duplicate")

        PAYMENTS_COMPLETED.labels(gateway=self.driver).inc()
        audit("payment.completed", target_type="payment", target_id=payment["id"],
              outcome="success", status=200, actor=self.driver,
              extra={"gateway": self.driver, "amount": str(payment["amount"]),
                     "transaction_id": None if transaction_id is None else str(transaction_id)})
        return WebhookResult(200, "completed", completed=True)
