from datetime import timedelta

from app import crud, models
from app.maintenance import send_vaccine_reminders, sweep_invalidated_tokens

from .conftest import future_day


def test_sweep_removes_only_expired_tokens(client, db, tutor):
    now = crud.utcnow()
    db.add(models.InvalidatedToken(token="expirado", expires_at=now - timedelta(minutes=1), user_id=tutor["id"]))
    db.add(models.InvalidatedToken(token="ainda-valido", expires_at=now + timedelta(minutes=10), user_id=tutor["id"]))
    db.commit()

    assert sweep_invalidated_tokens(db) == 1
    assert crud.is_token_invalidated(db, "ainda-valido")
    assert not crud.is_token_invalidated(db, "expirado")


def test_logout_token_is_swept_after_expiry(client, db, tutor):
    client.post("/auth/logout", headers=tutor["headers"])
    assert crud.purge_expired_tokens(db) == 0
    # passada a expiração natural do token
    later = crud.utcnow() + timedelta(days=1)
    assert crud.purge_expired_tokens(db, now=later) == 1


def test_vaccine_reminders_sent_once(client, db, tutor, make_animal):
    animal = make_animal(tutor)
    types = client.get("/vacinas/tipos", headers=tutor["headers"]).json()
    for days, vaccine_type in ((2, types[0]), (20, types[1])):
        resp = client.post("/vacinas", json={
            "animal_id": animal["id"], "vaccine_type_id": vaccine_type["id"], "scheduled_date": future_day(days),
        }, headers=tutor["headers"])
        assert resp.status_code == 201

    assert send_vaccine_reminders(db, days_ahead=3) == 1
    assert send_vaccine_reminders(db, days_ahead=3) == 0

    records = client.get("/vacinas", headers=tutor["headers"]).json()
    notified = {r["scheduled_date"]: r["notified"] for r in records}
    assert notified == {future_day(2): True, future_day(20): False}
