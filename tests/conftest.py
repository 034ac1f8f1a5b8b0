import os

# antes de importar a app: banco em memória e chave fixa
os.environ.setdefault("SECRET_KEY", "chave-de-teste")
os.environ.setdefault("CLINICA_DB_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from clinica_core.core_app import app
from clinica_core.db.conexion import get_session, init_db
from clinica_core.db.modelos import Material, Paciente, Papel, Usuario
from clinica_core.security import get_password_hash

SENHA = "senha-teste"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def client(session):
    def _sessao():
        return session

    app.dependency_overrides[get_session] = _sessao
    yield TestClient(app)
    app.dependency_overrides.clear()


def _criar_usuario(session, email, papel):
    user = Usuario(email=email, nome=email.split("@")[0], password_hash=get_password_hash(SENHA), papel=papel)
    session.add(user)
    session.commit()
    return user


def _login(client, email):
    resp = client.post("/api/auth/login", data={"username": email, "password": SENHA})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def auth(client, session):
    _criar_usuario(session, "admin@clinica.com", Papel.admin)
    return _login(client, "admin@clinica.com")


@pytest.fixture
def auth_recepcao(client, session):
    _criar_usuario(session, "recepcao@clinica.com", Papel.recepcao)
    return _login(client, "recepcao@clinica.com")


@pytest.fixture
def paciente(session):
    p = Paciente(full_name="Ana Souza", gender="Feminino", origin="Instagram", whatsapp="11999990000")
    session.add(p)
    session.commit()
    session.refresh(p)
    return p


@pytest.fixture
def material(session):
    m = Material(name="Toxina 100U", unit="frasco", cost_per_unit=50, stock_quantity=10, minimum_stock=2, supplier="Fornecedor A")
    session.add(m)
    session.commit()
    session.refresh(m)
    return m
