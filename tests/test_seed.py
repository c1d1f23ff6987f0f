import random

from faker import Faker

from app import models
from app.seed import CLINICS, EXAM_TYPES, VACCINE_TYPES, seed_demo_data, seed_reference_data


def test_reference_data_is_idempotent(client, db):
    # o lifespan já semeou uma vez
    seed_reference_data(db)
    seed_reference_data(db)

    assert db.query(models.Clinic).count() == len(CLINICS)
    assert db.query(models.Veterinarian).count() == sum(len(c["vets"]) for c in CLINICS)
    assert db.query(models.VaccineType).count() == len(VACCINE_TYPES)
    assert db.query(models.ExamType).count() == len(EXAM_TYPES)


def test_demo_data(client, db):
    random.seed(7)
    fake = Faker("pt_PT")
    fake.seed_instance(7)

    counts = seed_demo_data(db, tutors=3, fake=fake)

    assert counts["tutors"] == 3
    assert db.query(models.User).count() == 3
    assert db.query(models.Animal).count() == counts["animals"]
    assert counts["appointments"] == counts["animals"]
    assert all(u.is_verified and u.has_pin for u in db.query(models.User).all())


def test_demo_tutor_can_log_in(client, db):
    fake = Faker("pt_PT")
    fake.seed_instance(11)
    seed_demo_data(db, tutors=1, fake=fake)
    email = db.query(models.User).one().email

    resp = client.post("/auth/login", json={"email": email, "pin": "123456"})
    assert resp.status_code == 200
