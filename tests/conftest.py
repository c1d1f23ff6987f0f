"""Configuração partilhada dos testes (BD em memória, bcrypt barato, sem rate limit)."""

import itertools
import os
import tempfile
from datetime import date, timedelta

# Tem de ser definido antes de importar a aplicação
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "chave-de-testes"
os.environ["PIN_HASH_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="clinica-uploads-")
os.environ["MAX_UPLOAD_BYTES"] = "1024"
os.environ["TOKEN_SWEEP_INTERVAL_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient

from app import models
from app.database import Base, SessionLocal, engine
from app.main import app

DEFAULT_PIN = "123456"


def verification_code_for(email: str) -> str:
    with SessionLocal() as db:
        return db.query(models.User).filter(models.User.email == email).one().verification_code


def future_day(days: int = 7) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    # O lifespan cria as tabelas e semeia os dados de referência
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(client):
    """Regista, verifica, define PIN e faz login. Devolve id, email e headers."""
    counter = itertools.count(1)

    def _make(user_type: str = "tutor", pin: str = DEFAULT_PIN) -> dict:
        n = next(counter)
        email = f"{user_type}{n}@exemplo.pt"
        resp = client.post("/auth/registo", json={
            "name": f"Utilizador {n}",
            "email": email,
            "phone": f"91{n:07d}",
            "user_type": user_type,
        })
        assert resp.status_code == 201, resp.text

        resp = client.post("/auth/verificar", json={"email": email, "code": verification_code_for(email)})
        assert resp.status_code == 200, resp.text
        resp = client.post("/auth/pin", json={"email": email, "pin": pin})
        assert resp.status_code == 200, resp.text

        resp = client.post("/auth/login", json={"email": email, "pin": pin})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        return {
            "id": body["user"]["id"],
            "email": email,
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }

    return _make


@pytest.fixture
def tutor(make_account):
    return make_account("tutor")


@pytest.fixture
def other_tutor(make_account):
    return make_account("tutor")


@pytest.fixture
def vet(make_account):
    return make_account("veterinario")


@pytest.fixture
def make_animal(client):
    def _make(account: dict, **fields) -> dict:
        payload = {"name": "Bobi", "species": "Cão", "breed": "Rafeiro"}
        payload.update(fields)
        resp = client.post("/animais", json=payload, headers=account["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make


@pytest.fixture
def vets(client, tutor):
    resp = client.get("/veterinarios", headers=tutor["headers"])
    assert resp.status_code == 200
    return resp.json()
