# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import sys
import uuid
import pathlib
import tempfile
from datetime import datetime, timedelta

import pytest


# =====================================================================================
# Localização do projeto (garante que "xlata_app" e "config" estejam no sys.path)
# =====================================================================================
def _add_project_root():
    here = pathlib.Path(__file__).resolve()
    for candidate in [here.parent.parent, pathlib.Path.cwd()]:
        if (candidate / "xlata_app").is_dir():
            if str(candidate) not in sys.path:
                sys.path.insert(0, str(candidate))
            return candidate
    return None


PROJECT_ROOT = _add_project_root()

# antes de qualquer import de config.py
os.environ["APP_ENV"] = "testing"
os.environ["FLASK_ENV"] = "testing"
os.environ["DISABLE_SCHEDULER"] = "1"
os.environ.setdefault("SECRET_KEY", "testing-secret")


# =====================================================================================
# App Flask com SQLite temporário e schema criado uma vez por sessão
# =====================================================================================
@pytest.fixture(scope="session")
def app():
    fd, db_path = tempfile.mkstemp(prefix="xlata_test_", suffix=".sqlite")
    os.close(fd)

    from config import TestingConfig
    from xlata_app import create_app
    from xlata_app.extensions import db

    class _Cfg(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(_Cfg)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


# =====================================================================================
# Client e sessão de DB por teste; tabelas zeradas ao final de cada teste
# =====================================================================================
@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from xlata_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


@pytest.fixture(autouse=True)
def _clean_tables(app):
    yield
    from xlata_app.extensions import db
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()


# =====================================================================================
# Mercado Pago fake (requests.get/post sem rede)
# =====================================================================================
class FakeResponse:
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data if json_data is not None else {}

    def json(self):
        return self._json


class FakeMercadoPago:
    """Guarda os pagamentos "remotos" e as chamadas recebidas."""

    def __init__(self):
        self.payments = {}
        self.calls = []
        self.fail_with = None        # exceção levantada em qualquer chamada
        self.created = []

    def get(self, url, headers=None, timeout=None, **kw):
        self.calls.append(("GET", url, headers, timeout))
        if self.fail_with:
            raise self.fail_with
        payment_id = url.rsplit("/", 1)[-1]
        if payment_id not in self.payments:
            return FakeResponse(404, {"message": "Payment not found"})
        return FakeResponse(200, dict(self.payments[payment_id]))

    def post(self, url, json=None, headers=None, timeout=None, **kw):
        self.calls.append(("POST", url, headers, timeout))
        if self.fail_with:
            raise self.fail_with
        payment_id = str(1000 + len(self.created))
        self.created.append({"body": json, "headers": headers})
        result = {
            "id": int(payment_id),
            "status": "pending",
            "status_detail": "pending_waiting_transfer",
            "transaction_amount": json["transaction_amount"],
            "payment_method_id": json.get("payment_method_id"),
            "point_of_interaction": {"transaction_data": {
                "qr_code": "00020126-pix", "qr_code_base64": "iVBORw0KGgo=", "ticket_url": "https://mp.test/t",
            }},
        }
        self.payments[payment_id] = dict(result, external_reference=json.get("external_reference"))
        return FakeResponse(201, result)

    def set_status(self, payment_id, status, external_reference=None, email=None, detail=None):
        self.payments[str(payment_id)] = {
            "id": int(payment_id) if str(payment_id).isdigit() else payment_id,
            "status": status,
            "status_detail": detail or status,
            "external_reference": external_reference,
            "transaction_amount": 49.9,
            "payment_method_id": "pix",
            "payer": {"email": email},
        }


@pytest.fixture(autouse=True)
def mp(monkeypatch):
    import requests
    fake = FakeMercadoPago()
    monkeypatch.setattr(requests, "get", fake.get, raising=True)
    monkeypatch.setattr(requests, "post", fake.post, raising=True)
    yield fake


# =====================================================================================
# Usuários e clientes logados
# =====================================================================================
def _make_user(db_session, *, is_admin=False, name="Depósito Teste"):
    from xlata_app.models import User
    u = User(name=name, email=f"user+{uuid.uuid4().hex[:6]}@test.com", is_admin=is_admin, phone="92999990000")
    u.set_password("secret123")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def user_normal(db_session):
    return _make_user(db_session)


@pytest.fixture
def user_admin(db_session):
    return _make_user(db_session, is_admin=True, name="Admin")


@pytest.fixture
def make_user(db_session):
    return lambda **k: _make_user(db_session, **k)


@pytest.fixture
def logged_client_user(client, user_normal):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_normal.id, "email": user_normal.email, "is_admin": False}
    return client


@pytest.fixture
def logged_client_admin(client, user_admin):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_admin.id, "email": user_admin.email, "is_admin": True}
    return client


# =====================================================================================
# Catálogo de planos e fábricas de registros
# =====================================================================================
@pytest.fixture
def plans(db_session):
    from xlata_app.models.plan import seed_default_plans, SubscriptionPlan
    seed_default_plans()
    return {p.plan_type: p for p in SubscriptionPlan.query.all()}


@pytest.fixture
def make_payment(db_session):
    from xlata_app.models import MercadoPagoPayment

    def _make(payment_id, external_reference, status="pending", payer_email=None, age=timedelta(0), **extra):
        p = MercadoPagoPayment(
            payment_id=str(payment_id),
            external_reference=external_reference,
            status=status,
            transaction_amount=49.90,
            payer_email=payer_email,
            payment_method_id="pix",
            created_at=datetime.utcnow() - age,
            **extra,
        )
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture
def make_subscription(db_session):
    from xlata_app.models import UserSubscription

    def _make(user, expires_at, is_active=True, payment_reference=None, plan_type="monthly", activated_at=None):
        s = UserSubscription(
            user_id=user.id,
            plan_type=plan_type,
            is_active=is_active,
            activated_at=activated_at or (expires_at - timedelta(days=30)),
            expires_at=expires_at,
            payment_reference=payment_reference,
        )
        db_session.add(s)
        db_session.commit()
        return s
    return _make
