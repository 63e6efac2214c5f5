from models.gateways_store import get_gateway
from tests.utils import login_user


def test_gateway_admin_requires_login(client):
    assert client.get("/admin/gateways").status_code == 401


def test_gateway_admin_requires_admin_role(payer_client):
    r = payer_client.get("/admin/gateways")
    assert r.status_code == 403


def test_list_gateways_includes_descriptor(admin_client):
    r = admin_client.get("/admin/gateways")
    assert r.status_code == 200
    [gw] = r.get_json()
    assert gw["driver"] == "MercadoPagoGateway"
    assert gw["endpoint"] == "mercado-pago-gateway"
    assert gw["descriptor"]["type"] == "once"
    assert gw["descriptor"]["refund_support"] is False


def test_update_config_and_read_back_masked(admin_client):
    r = admin_client.post("/admin/gateways/MercadoPagoGateway/config", json={
        "access_token": "APP_USR-abcdef123456",
        "usd_to_currency": 915,
        "sandox_mode": "false",
    })
    assert r.status_code == 200
    row = get_gateway("MercadoPagoGateway")
    assert row["config"]["access_token"] == "APP_USR-abcdef123456"
    assert row["config"]["usd_to_currency"] == "915"
    assert row["config"]["sandox_mode"] == "false"

    cfg = admin_client.get("/admin/gateways/MercadoPagoGateway/config").get_json()["config"]
    assert cfg["access_token"] == "********3456"
    assert cfg["currency"] == "ARS"


def test_update_config_rejects_unknown_keys(admin_client):
    r = admin_client.post("/admin/gateways/MercadoPagoGateway/config",
                          json={"sandbox_mode": "true"})
    assert r.status_code == 400
    assert "sandbox_mode" in r.get_json()["error"]


def test_update_config_rejects_bad_rate(admin_client):
    r = admin_client.post("/admin/gateways/MercadoPagoGateway/config",
                          json={"usd_to_currency": "lots"})
    assert r.status_code == 400
    assert get_gateway("MercadoPagoGateway")["config"]["usd_to_currency"] == ""


def test_unknown_driver_is_404(admin_client):
    assert admin_client.get("/admin/gateways/Nope/config").status_code == 404


def test_config_changes_are_audited_and_chain_verifies(admin_client):
    admin_client.post("/admin/gateways/MercadoPagoGateway/config", json={"currency": "BRL"})
    entries = admin_client.get("/admin/audit").get_json()
    assert any(e["action"] == "gateway.config.update" for e in entries)

    res = admin_client.get("/admin/audit/verify").get_json()
    assert res["ok"] is True
    assert res["checked"] >= 2  # login + config update


def test_gateway_logs_endpoint(admin_client, payer, fake_mp):
    from tests.utils import make_payment, webhook_url
    pid = make_payment()
    admin_client.post(webhook_url(pid, action="bogus"))
    logs = admin_client.get(f"/admin/gateway-logs?payment_id={pid}").get_json()
    assert [entry["tag"] for entry in logs] == ["mercadopago.webhook.received"]


def test_login_rejects_bad_password(client, payer):
    r = login_user(client, "alice", "wrong")
    assert r.status_code == 401
