# tests/conftest.py
import os
import tempfile

# Point the app at a throwaway SQLite file before anything touches the engine
_DB_DIR = tempfile.mkdtemp(prefix="mp-gateway-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///" +
                      os.path.join(_DB_DIR, "test.sqlite3"))
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("METRICS_ENABLED", "0")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "1")

import pytest  # noqa: E402
from app import create_app  # noqa: E402
from models.base import Base, init_engine_and_session  # noqa: E402
from models.users_db import create_user  # noqa: E402
from services.payments.registry import register_gateways  # noqa: E402
from tests.utils import FakeMercadoPago, login_user  # noqa: E402


@pytest.fixture(scope="session")
def app():
    return create_app({
        "TESTING": True,
        "WTF_CSRF_ENABLED": False,
        "APP_NAME": "Acme Store",
    })


@pytest.fixture(scope="session")
def db_engine(app):
    engine, _Session = init_engine_and_session()
    return engine


@pytest.fixture(autouse=True)
def _db_clean(app, db_engine):
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)
    with app.app_context():
        register_gateways()
    yield


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def payer():
    create_user("alice", "alice-pass", role="user",
                first_name="Alice", last_name="Liddell", email="alice@example.com")
    return "alice"


@pytest.fixture()
def payer_client(client, payer):
    login_user(client, "alice", "alice-pass")
    return client


@pytest.fixture()
def admin_client(app):
    create_user("admin", "admin-pass", role="admin")
    c = app.test_client()
    login_user(c, "admin", "admin-pass")
    return c


@pytest.fixture()
def fake_mp(monkeypatch):
    fake = FakeMercadoPago()
    monkeypatch.setattr("services.payments.mercadopago.MercadoPagoClient", fake)
    return fake
