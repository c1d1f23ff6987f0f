from datetime import date, timedelta

import pytest

from .conftest import future_day


@pytest.fixture
def vaccine_types(client, tutor):
    return {t["name"]: t for t in client.get("/vacinas/tipos", headers=tutor["headers"]).json()}


@pytest.fixture
def animal(tutor, make_animal):
    return make_animal(tutor)


def _schedule(client, account, animal_id, vaccine_type_id, day=None, **extra):
    body = {"animal_id": animal_id, "vaccine_type_id": vaccine_type_id, "scheduled_date": day or future_day(5)}
    body.update(extra)
    return client.post("/vacinas", json=body, headers=account["headers"])


def test_vaccine_types_are_seeded(vaccine_types):
    assert vaccine_types["Raiva"]["validity_days"] == 365
    assert vaccine_types["Leptospirose"]["validity_days"] == 180


def test_schedule_vaccine(client, tutor, animal, vaccine_types):
    resp = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"], scheduled_time="09:30")
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "agendada"
    assert body["notified"] is False
    assert body["vaccine_type"]["name"] == "Raiva"


def test_past_vaccine_rejected(client, tutor, animal, vaccine_types):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    resp = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"], day=yesterday)
    assert resp.status_code == 400


def test_duplicate_vaccine_same_day_conflicts(client, tutor, animal, vaccine_types):
    raiva = vaccine_types["Raiva"]["id"]
    assert _schedule(client, tutor, animal["id"], raiva).status_code == 201
    assert _schedule(client, tutor, animal["id"], raiva).status_code == 409
    # outro tipo no mesmo dia é permitido
    assert _schedule(client, tutor, animal["id"], vaccine_types["Esgana"]["id"]).status_code == 201


def test_unknown_vaccine_type(client, tutor, animal):
    assert _schedule(client, tutor, animal["id"], 9999).status_code == 404


def test_other_tutor_cannot_schedule_or_read(client, tutor, other_tutor, animal, vaccine_types):
    assert _schedule(client, other_tutor, animal["id"], vaccine_types["Raiva"]["id"]).status_code == 403

    record = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    assert client.get(f"/vacinas/{record['id']}", headers=other_tutor["headers"]).status_code == 403
    assert client.get("/vacinas", headers=other_tutor["headers"]).json() == []


def test_vet_can_schedule(client, vet, animal, vaccine_types):
    assert _schedule(client, vet, animal["id"], vaccine_types["Raiva"]["id"]).status_code == 201


def test_apply_defaults_next_due_from_validity(client, tutor, vet, animal, vaccine_types):
    record = _schedule(client, tutor, animal["id"], vaccine_types["Leptospirose"]["id"]).json()
    url = f"/vacinas/{record['id']}/aplicar"

    assert client.put(url, json={}, headers=tutor["headers"]).status_code == 403

    resp = client.put(url, json={}, headers=vet["headers"])
    assert resp.status_code == 200
    body = resp.json()
    today = date.today()
    assert body["status"] == "aplicada"
    assert body["applied_date"] == today.isoformat()
    assert body["next_due_date"] == (today + timedelta(days=180)).isoformat()

    # só se aplica uma vez
    assert client.put(url, json={}, headers=vet["headers"]).status_code == 400


def test_apply_validates_dates(client, tutor, vet, animal, vaccine_types):
    record = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    url = f"/vacinas/{record['id']}/aplicar"
    today = date.today()

    resp = client.put(url, json={"applied_date": future_day(1)}, headers=vet["headers"])
    assert resp.status_code == 400

    resp = client.put(url, json={"applied_date": today.isoformat(), "next_due_date": today.isoformat()},
                      headers=vet["headers"])
    assert resp.status_code == 400

    resp = client.put(url, json={"next_due_date": future_day(30)}, headers=vet["headers"])
    assert resp.status_code == 200
    assert resp.json()["next_due_date"] == future_day(30)


def test_cancelled_vaccine_cannot_be_applied(client, tutor, vet, animal, vaccine_types):
    record = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    resp = client.put(f"/vacinas/{record['id']}/cancelar", headers=tutor["headers"])
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelada"

    assert client.put(f"/vacinas/{record['id']}/aplicar", json={}, headers=vet["headers"]).status_code == 400
    # e o mesmo dia volta a ficar livre
    assert _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).status_code == 201


def test_pending_vaccines_window(client, tutor, animal, vaccine_types):
    _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"], day=future_day(5))
    _schedule(client, tutor, animal["id"], vaccine_types["Esgana"]["id"], day=future_day(60))

    resp = client.get("/vacinas/pendentes", params={"dias": 30}, headers=tutor["headers"])
    assert resp.status_code == 200
    assert [r["vaccine_type"]["name"] for r in resp.json()] == ["Raiva"]

    resp = client.get("/vacinas/pendentes", params={"dias": 90}, headers=tutor["headers"])
    assert len(resp.json()) == 2


def test_list_filters_and_animal_history(client, tutor, animal, vaccine_types):
    first = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    _schedule(client, tutor, animal["id"], vaccine_types["Esgana"]["id"])
    client.put(f"/vacinas/{first['id']}/cancelar", headers=tutor["headers"])

    resp = client.get("/vacinas", params={"animal_id": animal["id"], "status": "agendada"}, headers=tutor["headers"])
    assert [r["vaccine_type"]["name"] for r in resp.json()] == ["Esgana"]

    resp = client.get(f"/animais/{animal['id']}/vacinas", headers=tutor["headers"])
    assert len(resp.json()) == 2


def test_delete_vaccine_owner_only(client, tutor, vet, animal, vaccine_types):
    record = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    url = f"/vacinas/{record['id']}"
    assert client.delete(url, headers=vet["headers"]).status_code == 403
    assert client.delete(url, headers=tutor["headers"]).status_code == 204
    assert client.get(url, headers=tutor["headers"]).status_code == 404


def test_pending_vaccines_include_boosters_due(client, tutor, vet, animal, vaccine_types):
    record = _schedule(client, tutor, animal["id"], vaccine_types["Raiva"]["id"]).json()
    resp = client.put(f"/vacinas/{record['id']}/aplicar", json={"next_due_date": future_day(10)},
                      headers=vet["headers"])
    assert resp.status_code == 200

    resp = client.get("/vacinas/pendentes", params={"dias": 30}, headers=tutor["headers"])
    pending = resp.json()
    assert [r["id"] for r in pending] == [record["id"]]
    assert pending[0]["status"] == "aplicada"
    assert pending[0]["next_due_date"] == future_day(10)

    # fora da janela o reforço não aparece
    assert client.get("/vacinas/pendentes", params={"dias": 5}, headers=tutor["headers"]).json() == []
