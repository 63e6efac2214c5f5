# tests/utils.py
from models.gateways_store import update_gateway_config
from models.payments_store import create_payment
from services.payments.webhook_secret import current_webhook_secret, ensure_webhook_secret

DRIVER = "MercadoPagoGateway"
ENDPOINT = "mercado-pago-gateway"


def login_user(client, username, password):
    return client.post("/login",
                       data={"username": username, "password": password},
                       follow_redirects=False)


def configure_gateway(**values):
    return update_gateway_config(DRIVER, {k: str(v) for k, v in values.items()})


def make_payment(username="alice", amount="10.00", description="Gold plan"):
    return create_payment(username, DRIVER, amount, description=description)


def webhook_secret() -> str:
    ensure_webhook_secret()
    return current_webhook_secret()


def webhook_url(payment_id, **params) -> str:
    qs = "&".join(f"{k}={v}" for k, v in params.items())
    return f"/payments/return/{ENDPOINT}/{payment_id}" + (f"?{qs}" if qs else "")


class FakeMercadoPago:
    """
    Stands in for MercadoPagoClient. Calling the instance mimics the
    constructor (it receives the access token) and returns itself.
    """

    def __init__(self):
        self.preference = {
            "id": "pref-123",
            "init_point": "https://www.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-123",
            "sandbox_init_point": "https://sandbox.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-123",
        }
        self.remote_payment = {"id": 987654321, "status": "approved"}
        self.error = None
        self.tokens = []
        self.preferences = []
        self.lookups = []

    def __call__(self, access_token):
        self.tokens.append(access_token)
        return self

    def create_preference(self, payload):
        self.preferences.append(payload)
        if self.error:
            raise self.error
        return self.preference

    def get_payment(self, payment_id):
        self.lookups.append(payment_id)
        if self.error:
            raise self.error
        return self.remote_payment
