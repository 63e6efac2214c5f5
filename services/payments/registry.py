# services/payments/registry.py
import logging

from models.gateways_store import ensure_gateway, find_gateway_by_endpoint, GatewayNotFoundError
# add further adapters here
from services.payments.mercadopago import MercadoPagoGateway

log = logging.getLogger(__name__)

GATEWAYS = {
    MercadoPagoGateway.driver: MercadoPagoGateway,
}


def drivers() -> dict:
    """Registration descriptors for every known gateway, keyed by driver."""
    out = {}
    for cls in GATEWAYS.values():
        out.update(cls().describe())
    return out


def get_gateway(driver: str):
    cls = GATEWAYS.get(driver)
    if cls is None:
        raise GatewayNotFoundError(driver)
    return cls()


def get_gateway_for_endpoint(endpoint: str):
    row = find_gateway_by_endpoint(endpoint)
    if not row or not row["is_active"]:
        raise GatewayNotFoundError(endpoint)
    return get_gateway(row["driver"])


def register_gateways() -> None:
    """Make sure each known driver has its configuration row."""
    for driver, cls in GATEWAYS.items():
        d = cls.descriptor()
        ensure_gateway(driver, name=d.name or driver, endpoint=d.endpoint,
                       type_=d.type, defaults=cls.config_defaults())
        log.info("Registered payment gateway %s at /%s", driver, d.endpoint)
