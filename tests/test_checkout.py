from models.gateway_log_store import list_gateway_logs
from models.payments_store import get_payment
from services.payments.mercadopago import MercadoPagoGateway, TAG_CHECKOUT_FAILED
from services.payments.mercadopago_client import MercadoPagoAPIError
from services.payments.webhook_secret import current_webhook_secret
from tests.utils import configure_gateway, make_payment


def _initiate(app, pid):
    with app.test_request_context():
        return MercadoPagoGateway().initiate_checkout(get_payment(pid))


def test_unit_price_uses_configured_rate(app, payer, fake_mp):
    configure_gateway(access_token="APP_USR-123", usd_to_currency="915")
    pid = make_payment(amount="10")

    result = _initiate(app, pid)

    assert result.ok
    item = fake_mp.preferences[0]["items"][0]
    assert item["unit_price"] == 9150
    assert item["currency_id"] == "ARS"
    assert item["quantity"] == 1


def test_unit_price_unchanged_without_rate(app, payer, fake_mp):
    configure_gateway(usd_to_currency="")
    pid = make_payment(amount="10")

    _initiate(app, pid)

    assert fake_mp.preferences[0]["items"][0]["unit_price"] == 10


def test_preference_payload(app, payer, fake_mp):
    configure_gateway(access_token="APP_USR-123", currency="brl")
    pid = make_payment(amount="25.50", description="Gold plan")

    _initiate(app, pid)

    body = fake_mp.preferences[0]
    secret = current_webhook_secret()
    assert fake_mp.tokens == ["APP_USR-123"]
    assert body["items"][0] == {
        "id": str(pid),
        "title": "Acme Store",
        "description": "Gold plan",
        "currency_id": "BRL",
        "quantity": 1,
        "unit_price": 25.5,
    }
    assert body["payer"] == {"name": "Alice", "surname": "Liddell", "email": "alice@example.com"}
    assert body["payment_methods"] == {
        "excluded_payment_methods": [], "installments": 1, "default_installments": 1,
    }
    assert body["back_urls"]["success"].endswith(f"/payments/{pid}/success")
    assert body["back_urls"]["failure"].endswith(f"/payments/{pid}/cancel")
    assert f"/payments/return/mercado-pago-gateway/{pid}" in body["notification_url"]
    assert f"wh_secret={secret}" in body["notification_url"]
    assert body["statement_descriptor"] == "Acme Store"
    assert body["external_reference"] == str(pid)
    assert body["auto_return"] == "approved"
    assert body["expires"] is False


def test_site_base_url_roots_the_callback_urls(app, payer, fake_mp, monkeypatch):
    monkeypatch.setenv("SITE_BASE_URL", "https://shop.example.com/")
    pid = make_payment()

    _initiate(app, pid)

    assert fake_mp.preferences[0]["notification_url"].startswith(
        f"https://shop.example.com/payments/return/mercado-pago-gateway/{pid}?")


def test_sandbox_uses_sandbox_init_point(app, payer, fake_mp):
    configure_gateway(sandox_mode="true")
    result = _initiate(app, make_payment())
    assert result.redirect_url == fake_mp.preference["sandbox_init_point"]
    assert result.preference_id == "pref-123"


def test_live_uses_init_point(app, payer, fake_mp):
    configure_gateway(sandox_mode="false")
    result = _initiate(app, make_payment())
    assert result.redirect_url == fake_mp.preference["init_point"]


def test_processor_error_is_a_failed_result_and_logged(app, payer, fake_mp):
    fake_mp.error = MercadoPagoAPIError("POST /checkout/preferences returned HTTP 401",
                                        status_code=401, body={"message": "invalid token"})
    pid = make_payment()

    result = _initiate(app, pid)

    assert result.ok is False
    assert result.redirect_url is None
    assert result.reason
    logs = list_gateway_logs(tag=TAG_CHECKOUT_FAILED)
    assert len(logs) == 1
    assert logs[0]["payment_id"] == pid
    assert logs[0]["raw"]["status_code"] == 401
    assert get_payment(pid)["status"] == "pending"


def test_missing_init_point_is_a_failed_result(app, payer, fake_mp):
    configure_gateway(sandox_mode="false")
    fake_mp.preference = {"id": "pref-9"}
    result = _initiate(app, make_payment())
    assert result.ok is False


def test_checkout_route_redirects(payer_client, fake_mp):
    pid = make_payment()
    r = payer_client.get(f"/payments/{pid}/checkout")
    assert r.status_code == 302
    assert r.headers["Location"] == fake_mp.preference["sandbox_init_point"]


def test_checkout_route_failure_has_no_redirect(payer_client, fake_mp):
    fake_mp.error = MercadoPagoAPIError("boom")
    pid = make_payment()
    r = payer_client.post(f"/payments/{pid}/checkout")
    assert r.status_code == 502
    assert "Location" not in r.headers
    assert r.get_json() == {"error": "Payment could not be initiated"}


def test_checkout_requires_login(client, payer, fake_mp):
    pid = make_payment()
    r = client.get(f"/payments/{pid}/checkout")
    assert r.status_code == 401
    assert fake_mp.preferences == []


def test_cannot_checkout_someone_elses_payment(app, payer, fake_mp):
    from models.users_db import create_user
    from tests.utils import login_user
    create_user("bob", "bob-pass")
    pid = make_payment(username="alice")
    c = app.test_client()
    login_user(c, "bob", "bob-pass")
    r = c.get(f"/payments/{pid}/checkout")
    assert r.status_code == 403


def test_completed_payment_is_not_checked_out_again(payer_client, fake_mp):
    from models.payments_store import mark_completed
    pid = make_payment()
    mark_completed(pid)
    r = payer_client.get(f"/payments/{pid}/checkout")
    assert r.status_code == 409
    assert fake_mp.preferences == []


def test_unknown_payment_is_404(payer_client, fake_mp):
    r = payer_client.get("/payments/999/checkout")
    assert r.status_code == 404


def test_create_payment_route(payer_client):
    r = payer_client.post("/payments", json={"amount": "12.5", "description": "Silver"})
    assert r.status_code == 201
    body = r.get_json()
    assert body["status"] == "pending"
    assert body["amount"] == "12.50"
    assert body["gateway"] == "MercadoPagoGateway"

    assert payer_client.post("/payments", json={"amount": "x"}).status_code == 400
    assert payer_client.post("/payments", json={"amount": 0}).status_code == 400


def test_back_urls_report_status(payer_client):
    pid = make_payment()
    r = payer_client.get(f"/payments/{pid}/success")
    assert r.status_code == 200
    assert r.get_json()["status"] == "pending"
    assert payer_client.get(f"/payments/{pid}/cancel").get_json()["id"] == pid
