import pytest


@pytest.fixture
def exam_type_id(client, tutor):
    types = client.get("/exames/tipos", headers=tutor["headers"]).json()
    return next(t["id"] for t in types if t["name"] == "Hemograma")


@pytest.fixture
def animal(tutor, make_animal):
    return make_animal(tutor)


def _create(client, account, animal_id, exam_type_id, **extra):
    body = {"animal_id": animal_id, "exam_type_id": exam_type_id, "date": "2024-03-15"}
    body.update(extra)
    return client.post("/exames", json=body, headers=account["headers"])


def test_create_and_read_exam(client, tutor, animal, exam_type_id):
    resp = _create(client, tutor, animal["id"], exam_type_id, result="Valores normais")
    assert resp.status_code == 201
    body = resp.json()
    assert body["exam_type"]["name"] == "Hemograma"

    resp = client.get(f"/exames/{body['id']}", headers=tutor["headers"])
    assert resp.status_code == 200
    assert resp.json()["result"] == "Valores normais"


def test_unknown_exam_type(client, tutor, animal):
    assert _create(client, tutor, animal["id"], 9999).status_code == 404


def test_other_tutor_is_forbidden(client, tutor, other_tutor, animal, exam_type_id):
    assert _create(client, other_tutor, animal["id"], exam_type_id).status_code == 403

    exam = _create(client, tutor, animal["id"], exam_type_id).json()
    url = f"/exames/{exam['id']}"
    assert client.get(url, headers=other_tutor["headers"]).status_code == 403
    assert client.put(url, json={"result": "x"}, headers=other_tutor["headers"]).status_code == 403
    assert client.delete(url, headers=other_tutor["headers"]).status_code == 403
    assert client.get("/exames", headers=other_tutor["headers"]).json() == []


def test_vet_records_results(client, tutor, vet, animal, exam_type_id):
    exam = _create(client, vet, animal["id"], exam_type_id).json()
    resp = client.put(f"/exames/{exam['id']}", json={"result": "Anemia ligeira", "observations": "Repetir"},
                      headers=vet["headers"])
    assert resp.status_code == 200
    assert resp.json()["result"] == "Anemia ligeira"
    assert resp.json()["date"] == "2024-03-15"

    # apagar é só para o tutor
    assert client.delete(f"/exames/{exam['id']}", headers=vet["headers"]).status_code == 403
    assert client.delete(f"/exames/{exam['id']}", headers=tutor["headers"]).status_code == 204


def test_list_by_animal(client, tutor, animal, make_animal, exam_type_id):
    other = make_animal(tutor, name="Tareco", species="Gato")
    _create(client, tutor, animal["id"], exam_type_id)
    _create(client, tutor, other["id"], exam_type_id)

    assert len(client.get("/exames", headers=tutor["headers"]).json()) == 2
    resp = client.get("/exames", params={"animal_id": other["id"]}, headers=tutor["headers"])
    assert [e["animal_id"] for e in resp.json()] == [other["id"]]
    assert len(client.get(f"/animais/{animal['id']}/exames", headers=tutor["headers"]).json()) == 1


def test_update_rejects_null_date(client, tutor, animal, exam_type_id):
    exam = _create(client, tutor, animal["id"], exam_type_id).json()
    resp = client.put(f"/exames/{exam['id']}", json={"date": None}, headers=tutor["headers"])
    assert resp.status_code == 400
    assert client.get(f"/exames/{exam['id']}", headers=tutor["headers"]).json()["date"] == "2024-03-15"
