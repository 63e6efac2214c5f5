from decimal import Decimal

import pytest

from models.gateways_store import GatewayNotFoundError, get_gateway, update_gateway_config
from models.settings_store import get_setting
from services.payments.base import RefundNotSupportedError
from services.payments.config import (
    GatewayConfig, GatewayConfigError, StaticGatewayConfigProvider, StoreGatewayConfigProvider,
)
from services.payments.mercadopago import MercadoPagoGateway
from services.payments.registry import drivers, get_gateway_for_endpoint, register_gateways
from services.payments.webhook_secret import SETTINGS_KEY


def test_string_flags_are_normalized():
    cfg = GatewayConfig.from_mapping({
        "access_token": " APP_USR-1 ", "currency": "ars",
        "usd_to_currency": "915", "sandox_mode": "false",
    })
    assert cfg == GatewayConfig(access_token="APP_USR-1", currency="ARS",
                                usd_to_currency=Decimal("915"), sandbox=False)
    assert GatewayConfig.from_mapping({"sandox_mode": "TRUE"}).sandbox is True
    assert GatewayConfig.from_mapping({"sandox_mode": "0"}).sandbox is False


def test_blank_config_defaults():
    cfg = GatewayConfig.from_mapping({})
    assert cfg.access_token == ""
    assert cfg.currency == "ARS"
    assert cfg.usd_to_currency is None
    assert cfg.sandbox is True


@pytest.mark.parametrize("bad", ["abc", "0", "-3", "NaN"])
def test_bad_rate_is_a_config_error(bad):
    with pytest.raises(GatewayConfigError):
        GatewayConfig.from_mapping({"usd_to_currency": bad})


def test_convert_with_and_without_rate():
    assert GatewayConfig(usd_to_currency=Decimal("915")).convert(Decimal("10")) == Decimal("9150.00")
    assert GatewayConfig().convert(Decimal("10.50")) == Decimal("10.50")


def test_store_provider_reads_the_gateway_row():
    update_gateway_config("MercadoPagoGateway", {"access_token": "tok", "sandox_mode": "false"})
    cfg = StoreGatewayConfigProvider("MercadoPagoGateway").load()
    assert cfg.access_token == "tok"
    assert cfg.sandbox is False


def test_missing_gateway_row_is_fatal():
    with pytest.raises(GatewayNotFoundError):
        StoreGatewayConfigProvider("NoSuchGateway").load()
    with pytest.raises(GatewayNotFoundError):
        get_gateway_for_endpoint("no-such-endpoint")


def test_registration_keeps_admin_values_and_adds_new_keys():
    update_gateway_config("MercadoPagoGateway", {"currency": "BRL"})
    register_gateways()
    row = get_gateway("MercadoPagoGateway")
    assert row["config"]["currency"] == "BRL"
    assert set(row["config"]) >= {"access_token", "currency", "usd_to_currency", "sandox_mode"}
    assert row["endpoint"] == "mercado-pago-gateway"


def test_descriptor_and_static_surface():
    gw = MercadoPagoGateway(config_provider=StaticGatewayConfigProvider(GatewayConfig()))
    assert gw.describe() == {
        "MercadoPagoGateway": {
            "driver": "MercadoPagoGateway",
            "type": "once",
            "class": "services.payments.mercadopago.MercadoPagoGateway",
            "endpoint": "mercado-pago-gateway",
            "refund_support": False,
        }
    }
    assert drivers() == gw.describe()
    assert gw.check_subscription("sub_123") is False
    with pytest.raises(RefundNotSupportedError):
        gw.refund({"id": 1}, {})


def test_config_merge_ensures_the_webhook_secret():
    assert get_setting(SETTINGS_KEY) is None
    merge = MercadoPagoGateway().get_config_merge()
    assert merge["access_token"] == ""
    assert "sandox_mode" in merge
    assert len(get_setting(SETTINGS_KEY)) == 16
