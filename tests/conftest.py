# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import sys
import uuid
import pathlib
import importlib
import tempfile
from datetime import timedelta
from decimal import Decimal

import pytest


# --------------------------------------------------------------------------------------
# Limpeza de arquivos de DB residuais (ex.: test.sqlite)
# --------------------------------------------------------------------------------------
@pytest.fixture(scope="session", autouse=True)
def _cleanup_test_sqlite_files():
    for fname in ("test.sqlite", "test.db"):
        if os.path.exists(fname):
            try: os.remove(fname)
            except OSError: pass
    yield
    for fname in ("test.sqlite", "test.db"):
        if os.path.exists(fname):
            try: os.remove(fname)
            except OSError: pass

# =====================================================================================
# Localização do projeto (garante que "vitrine_app" esteja no sys.path)
# =====================================================================================
def _add_project_root():
    here = pathlib.Path(__file__).resolve()
    for base in [here.parent, here.parent.parent, pathlib.Path.cwd()]:
        for candidate in [base, *base.parents]:
            if (candidate / "vitrine_app").is_dir():
                if str(candidate) not in sys.path:
                    sys.path.insert(0, str(candidate))
                return candidate
    return None


PROJECT_ROOT = _add_project_root()


# =====================================================================================
# Ambiente de testes unitários (sem serviços externos)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["FLASK_ENV"] = "testing"
    os.environ["TESTING"] = "1"
    os.environ["DISABLE_SCHEDULER"] = "1"
    os.environ.setdefault("SECRET_KEY", "testing-secret")
    yield


def _import(modpath, name=None):
    mod = importlib.import_module(modpath)
    return getattr(mod, name) if name else mod


# =====================================================================================
# App Flask com SQLite temporário e schema criado uma vez por sessão
# - PRAGMAs: WAL + busy_timeout
# =====================================================================================
@pytest.fixture(scope="session")
def app(_testing_env):
    fd, db_path = tempfile.mkstemp(prefix="vitrine_test_", suffix=".sqlite")
    os.close(fd)

    os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}?check_same_thread=0&timeout=30"
    os.environ["DATABASE_URL"] = os.environ["SQLALCHEMY_DATABASE_URI"]

    try:
        wsgi = _import("vitrine_app.wsgi", None)
        app = getattr(wsgi, "create_app", None)() if hasattr(wsgi, "create_app") else wsgi.app
    except Exception as e:
        raise RuntimeError(f"Falha ao importar a app Flask: {e} (sys.path={sys.path})")

    from vitrine_app.extensions import db
    from sqlalchemy import event

    # PRAGMAs sempre que o engine abrir uma conexão
    def _set_sqlite_pragmas(dbapi_conn, _conn_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    with app.app_context():
        if db.engine.url.get_backend_name() == "sqlite":
            event.listen(db.engine, "connect", _set_sqlite_pragmas)
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
# Client e sessão de DB por teste
# =====================================================================================
@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from vitrine_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# Configurações de pagamento gravadas em um teste não vazam para o próximo
# =====================================================================================
@pytest.fixture(autouse=True)
def _reset_payment_settings(app):
    yield
    from vitrine_app.extensions import db
    from vitrine_app.models import Setting
    with app.app_context():
        Setting.query.delete()
        db.session.commit()


# =====================================================================================
# Mocks de serviços externos
#   - requests.get/post (sem rede)
# =====================================================================================
class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text="OK"):
        self.status_code = status_code
        self._json = json_data if json_data is not None else {}
        self.text = text

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json


@pytest.fixture(autouse=True)
def _mock_externals(monkeypatch):
    import requests
    monkeypatch.setattr(requests, "get", lambda *a, **k: FakeResponse(), raising=False)
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(), raising=False)
    yield


# =====================================================================================
# Provedor PIX falso (injetado no orquestrador)
# =====================================================================================
class FakeProvider:
    name = "sacapay"

    def __init__(self, fail=False, status=None):
        self.fail = fail
        self.status = status
        self.calls = []
        self.status_calls = []

    def request_pix_charge(self, amount, description, correlation_id, payer):
        from vitrine_app.errors import ProviderUnavailable
        from vitrine_app.services.providers import PixCharge
        from vitrine_app.timeutils import utcnow

        self.calls.append(dict(amount=amount, description=description,
                               correlation_id=correlation_id, payer=payer))
        if self.fail:
            raise ProviderUnavailable("sacapay: HTTP 503")
        return PixCharge(
            provider=self.name,
            provider_ref=f"sp-{correlation_id}",
            pix_code=f"00020126PIXREAL{correlation_id}",
            qr_code_url=f"https://qr.sacapay.test/{correlation_id}.png",
            expires_at=utcnow() + timedelta(minutes=15),
        )

    def check_status(self, provider_ref):
        self.status_calls.append(provider_ref)
        return self.status


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def failing_provider():
    return FakeProvider(fail=True)


@pytest.fixture
def make_orchestrator():
    from vitrine_app.services.payments import PaymentOrchestrator

    def _make(provider=None, **kwargs):
        return PaymentOrchestrator(provider_factory=lambda settings, name=None: provider, **kwargs)
    return _make


@pytest.fixture
def use_provider(app, monkeypatch, make_orchestrator):
    """Troca o orquestrador da app por um com o provedor indicado."""
    def _use(provider, **kwargs):
        orch = make_orchestrator(provider, **kwargs)
        monkeypatch.setitem(app.extensions, "payments", orch)
        return orch
    return _use


# =====================================================================================
# Factories
# =====================================================================================
@pytest.fixture
def make_user(db_session):
    from vitrine_app.models import User

    def _make(name="User", is_admin=False, password="secret123", **extra):
        u = User(name=name, email=f"{name.lower()}+{uuid.uuid4().hex[:8]}@test.com",
                 is_admin=is_admin, **extra)
        u.set_password(password)
        db_session.add(u); db_session.commit()
        return u
    return _make


@pytest.fixture
def make_project(db_session):
    from vitrine_app.models import Project

    def _make(price="99.90", title=None, active=True):
        p = Project(title=title or f"Projeto {uuid.uuid4().hex[:6]}",
                    description="Projeto de teste", price=Decimal(price), active=active)
        db_session.add(p); db_session.commit()
        return p
    return _make


# =====================================================================================
# Usuários e clientes logados
# =====================================================================================
@pytest.fixture
def user_admin(make_user):
    return make_user(name="Admin", is_admin=True)


@pytest.fixture
def user_normal(make_user):
    return make_user(name="User", document="11144477735")


@pytest.fixture
def logged_client_admin(client, user_admin):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_admin.id, "email": user_admin.email, "is_admin": True}
    return client


@pytest.fixture
def logged_client_user(client, user_normal):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_normal.id, "email": user_normal.email, "is_admin": False}
    return client


@pytest.fixture
def project(make_project):
    return make_project("99.90")
