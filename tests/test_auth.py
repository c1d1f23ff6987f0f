from datetime import timedelta

from app import auth, models
from app.database import SessionLocal

from .conftest import verification_code_for


def _register(client, email="ana@exemplo.pt", phone="912345678", user_type="tutor"):
    return client.post("/auth/registo", json={
        "name": "Ana Costa", "email": email, "phone": phone, "user_type": user_type,
    })


def test_register_returns_user_without_secrets(client):
    resp = _register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "ana@exemplo.pt"
    assert body["is_verified"] is False
    assert body["has_pin"] is False
    assert "verification_code" not in body
    assert "pin_hash" not in body


def test_register_duplicate_email_conflicts(client):
    assert _register(client).status_code == 201
    resp = _register(client, email="ANA@exemplo.pt", phone="923456789")
    assert resp.status_code == 409


def test_register_duplicate_phone_conflicts(client):
    assert _register(client).status_code == 201
    # espaços e hífens são removidos antes da comparação
    resp = _register(client, email="outra@exemplo.pt", phone="912 345-678")
    assert resp.status_code == 409


def test_register_rejects_bad_phone(client):
    assert _register(client, phone="12345").status_code == 400
    assert _register(client, phone="91234567a").status_code == 400


def test_register_missing_fields_is_bad_request(client):
    resp = client.post("/auth/registo", json={"email": "x@exemplo.pt"})
    assert resp.status_code == 400
    assert isinstance(resp.json()["detail"], list)


def test_verification_flow(client):
    _register(client)
    code = verification_code_for("ana@exemplo.pt")
    assert len(code) == 6 and code.isdigit()

    wrong = "000000" if code != "000000" else "111111"
    resp = client.post("/auth/verificar", json={"email": "ana@exemplo.pt", "code": wrong})
    assert resp.status_code == 400

    resp = client.post("/auth/verificar", json={"email": "ana@exemplo.pt", "code": code})
    assert resp.status_code == 200
    assert resp.json()["is_verified"] is True

    resp = client.post("/auth/verificar", json={"email": "ana@exemplo.pt", "code": code})
    assert resp.status_code == 400


def test_verify_unknown_email(client):
    resp = client.post("/auth/verificar", json={"email": "ninguem@exemplo.pt", "code": "123456"})
    assert resp.status_code == 404


def test_resend_code_replaces_code(client):
    _register(client)
    resp = client.post("/auth/reenviar-codigo", json={"email": "ana@exemplo.pt"})
    assert resp.status_code == 200
    code = verification_code_for("ana@exemplo.pt")
    resp = client.post("/auth/verificar", json={"email": "ana@exemplo.pt", "code": code})
    assert resp.status_code == 200


def test_pin_requires_verified_account(client):
    _register(client)
    resp = client.post("/auth/pin", json={"email": "ana@exemplo.pt", "pin": "123456"})
    assert resp.status_code == 403


def test_pin_must_have_six_digits(client):
    _register(client)
    client.post("/auth/verificar", json={"email": "ana@exemplo.pt", "code": verification_code_for("ana@exemplo.pt")})
    for pin in ("12345", "1234567", "12a456"):
        resp = client.post("/auth/pin", json={"email": "ana@exemplo.pt", "pin": pin})
        assert resp.status_code == 400


def test_pin_is_stored_hashed(client, tutor):
    with SessionLocal() as db:
        user = db.get(models.User, tutor["id"])
        assert user.pin_hash != "123456"
        assert user.pin_hash.startswith("$2")
        assert auth.verify_pin("123456", user.pin_hash)
        assert not auth.verify_pin("654321", user.pin_hash)


def test_pin_cannot_be_set_twice(client, tutor):
    resp = client.post("/auth/pin", json={"email": tutor["email"], "pin": "999999"})
    assert resp.status_code == 409


def test_login_wrong_pin_and_unknown_email(client, tutor):
    resp = client.post("/auth/login", json={"email": tutor["email"], "pin": "000000"})
    assert resp.status_code == 401
    resp = client.post("/auth/login", json={"email": "ninguem@exemplo.pt", "pin": "123456"})
    assert resp.status_code == 401


def test_login_unverified_account_is_forbidden(client):
    _register(client)
    resp = client.post("/auth/login", json={"email": "ana@exemplo.pt", "pin": "123456"})
    assert resp.status_code == 403


def test_login_returns_bearer_token(client, tutor):
    resp = client.post("/auth/login", json={"email": tutor["email"], "pin": "123456"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == auth.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert body["user"]["id"] == tutor["id"]
    payload = auth.decode_access_token(body["access_token"])
    assert payload["sub"] == str(tutor["id"])
    assert payload["tipo"] == "tutor"


def test_each_login_issues_a_different_token(client, tutor):
    first = client.post("/auth/login", json={"email": tutor["email"], "pin": "123456"}).json()
    second = client.post("/auth/login", json={"email": tutor["email"], "pin": "123456"}).json()
    assert first["access_token"] != second["access_token"]


def test_missing_or_invalid_token(client):
    assert client.get("/utilizadores/me").status_code == 401
    resp = client.get("/utilizadores/me", headers={"Authorization": "Bearer lixo"})
    assert resp.status_code == 401


def test_expired_token_is_rejected(client, tutor):
    token = auth.create_access_token({"sub": str(tutor["id"])}, expires_delta=timedelta(seconds=-5))
    resp = client.get("/utilizadores/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_logout_blacklists_token(client, tutor):
    assert client.get("/utilizadores/me", headers=tutor["headers"]).status_code == 200

    resp = client.post("/auth/logout", headers=tutor["headers"])
    assert resp.status_code == 200

    resp = client.get("/utilizadores/me", headers=tutor["headers"])
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Sessão terminada, faça login novamente"

    # um novo login continua a funcionar
    resp = client.post("/auth/login", json={"email": tutor["email"], "pin": "123456"})
    token = resp.json()["access_token"]
    assert client.get("/utilizadores/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_change_pin(client, tutor):
    resp = client.put("/auth/pin", json={"current_pin": "000000", "new_pin": "654321"}, headers=tutor["headers"])
    assert resp.status_code == 401

    resp = client.put("/auth/pin", json={"current_pin": "123456", "new_pin": "654321"}, headers=tutor["headers"])
    assert resp.status_code == 200
    assert client.post("/auth/login", json={"email": tutor["email"], "pin": "123456"}).status_code == 401
    assert client.post("/auth/login", json={"email": tutor["email"], "pin": "654321"}).status_code == 200
