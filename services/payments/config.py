# services/payments/config.py
"""
Per-gateway configuration, normalized once at the loading boundary.

Admins edit the gateway row as plain strings ("true"/"false", "915", ...).
Business logic only ever sees a GatewayConfig with real types.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Protocol

from models.gateways_store import get_gateway
from services.payments.base import PaymentGatewayError

# NOTE: the key really is spelled "sandox_mode"; existing rows depend on it.
SANDBOX_KEY = "sandox_mode"

_TRUE = ("1", "true", "yes", "y", "on")


class GatewayConfigError(PaymentGatewayError):
    pass


def boolish(s: Optional[str], default: bool = False) -> bool:
    if s is None:
        return default
    val = str(s).strip().lower()
    if not val:
        return default
    return val in _TRUE


def _rate(s: Optional[str]) -> Optional[Decimal]:
    if s is None or not str(s).strip():
        return None
    try:
        rate = Decimal(str(s).strip())
    except InvalidOperation:
        raise GatewayConfigError(f"usd_to_currency must be numeric, got {s!r}")
    if not rate.is_finite() or rate <= 0:
        raise GatewayConfigError(f"usd_to_currency must be > 0, got {s!r}")
    return rate


@dataclass(frozen=True)
class GatewayConfig:
    access_token: str = ""
    currency: str = "ARS"
    usd_to_currency: Optional[Decimal] = None
    sandbox: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> "GatewayConfig":
        return cls(
            access_token=(raw.get("access_token") or "").strip(),
            currency=(raw.get("currency") or "ARS").strip().upper(),
            usd_to_currency=_rate(raw.get("usd_to_currency")),
            sandbox=boolish(raw.get(SANDBOX_KEY), default=True),
        )

    def convert(self, amount: Decimal) -> Decimal:
        """Price in the display currency; unchanged when no rate is set."""
        if self.usd_to_currency is None:
            return amount
        return (amount * self.usd_to_currency).quantize(Decimal("0.01"))


class GatewayConfigProvider(Protocol):
    def load(self) -> GatewayConfig:
        ...


class StoreGatewayConfigProvider:
    """Reads the single gateway row for `driver` on every load()."""

    def __init__(self, driver: str):
        self.driver = driver

    def load(self) -> GatewayConfig:
        return GatewayConfig.from_mapping(get_gateway(self.driver)["config"])


class StaticGatewayConfigProvider:
    def __init__(self, config: GatewayConfig):
        self.config = config

    def load(self) -> GatewayConfig:
        return self.config
