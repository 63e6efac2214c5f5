# services/payments/base.py
"""
Gateway capability interface + the small result types that cross it.
Adapters must implement PaymentGateway.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol


class PaymentGatewayError(Exception):
    """Base class for gateway-side failures."""


class RefundNotSupportedError(PaymentGatewayError):
    pass


@dataclass(frozen=True)
class CheckoutResult:
    ok: bool
    redirect_url: Optional[str] = None
    preference_id: Optional[str] = None
    # populated only when ok is False
    reason: Optional[str] = None

    @classmethod
    def redirect(cls, url: str, preference_id: Optional[str] = None) -> "CheckoutResult":
        return cls(ok=True, redirect_url=url, preference_id=preference_id)

    @classmethod
    def failed(cls, reason: str) -> "CheckoutResult":
        return cls(ok=False, reason=reason)


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    outcome: str                  # metrics label, e.g. 'completed' | 'invalid_secret'
    error: Optional[str] = None   # reason surfaced to the caller on 4xx
    completed: bool = False       # True only for the delivery that did the transition

    def body(self) -> Dict[str, Any]:
        return {"error": self.error} if self.error else {}


@dataclass(frozen=True)
class GatewayDescriptor:
    driver: str
    type: str                     # 'once' | 'subscription'
    class_path: str
    endpoint: str
    refund_support: bool = False
    name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "driver": self.driver,
            "type": self.type,
            "class": self.class_path,
            "endpoint": self.endpoint,
            "refund_support": self.refund_support,
        }


class PaymentGateway(Protocol):
    driver: str

    def initiate_checkout(self, payment: Mapping[str, Any]) -> CheckoutResult:
        """
        Build the processor-side checkout for `payment` and return where to
        send the payer. Processor errors come back as CheckoutResult.failed().
        """

    def handle_callback(self, params: Mapping[str, Any]) -> WebhookResult:
        """
        Validate an inbound notification and complete the payment it names.
        Safe to call any number of times for the same event.
        """

    def refund(self, payment: Mapping[str, Any], data: Mapping[str, Any]) -> None:
        ...

    def describe(self) -> Dict[str, Dict[str, Any]]:
        ...

    def check_subscription(self, subscription_id: str) -> bool:
        ...
