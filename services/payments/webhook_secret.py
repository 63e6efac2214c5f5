# services/payments/webhook_secret.py
"""
Shared secret embedded in notification URLs and echoed back by the processor.

Generated lazily, once, and never rotated by this code.
"""

from __future__ import annotations
import logging
import secrets

from models.settings_store import get_setting, set_setting_if_absent
from services.payments.base import PaymentGatewayError

log = logging.getLogger(__name__)

SETTINGS_KEY = "mercadopago_webhook_secret"
SECRET_LENGTH = 16


class WebhookSecretMissingError(PaymentGatewayError):
    pass


def ensure_webhook_secret() -> None:
    if get_setting(SETTINGS_KEY):
        return
    # 8 random bytes -> 16 hex characters
    stored = set_setting_if_absent(SETTINGS_KEY, secrets.token_hex(SECRET_LENGTH // 2))
    log.info("Webhook secret initialised (%d chars)", len(stored or ""))


def current_webhook_secret() -> str:
    value = get_setting(SETTINGS_KEY)
    if not value:
        raise WebhookSecretMissingError(
            f"{SETTINGS_KEY} is not set; ensure_webhook_secret() must run first")
    return value
