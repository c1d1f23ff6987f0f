"""
Dados de referência (clínicas, veterinários, tipos de vacina e de exame)
e população de demonstração.

    python -m app.seed           # só os dados de referência
    python -m app.seed --demo    # referência + tutores, animais e consultas falsos
"""
import argparse
import logging
import random
from datetime import date, time, timedelta
from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from . import auth, models
from .database import Base, SessionLocal, engine

logger = logging.getLogger(__name__)

CLINICS = [
    {"name": "Clínica Veterinária do Porto", "address": "Rua de Santa Catarina 120, Porto",
     "vets": [("Dra. Ana Ribeiro", "Clínica Geral"), ("Dr. Tiago Moreira", "Cirurgia")]},
    {"name": "Hospital Veterinário de Lisboa", "address": "Avenida da Liberdade 45, Lisboa",
     "vets": [("Dra. Marta Sousa", "Dermatologia"), ("Dr. Rui Fernandes", "Cardiologia"),
              ("Dra. Inês Carvalho", "Clínica Geral")]},
    {"name": "Centro Veterinário de Coimbra", "address": "Rua Ferreira Borges 9, Coimbra",
     "vets": [("Dr. João Martins", "Exóticos")]},
]

# (nome, dias até ao reforço)
VACCINE_TYPES = [
    ("Raiva", 365),
    ("Esgana", 365),
    ("Parvovirose", 365),
    ("Leptospirose", 180),
    ("Trivalente Felina", 365),
    ("Leucemia Felina", None),
]

EXAM_TYPES = ["Hemograma", "Bioquímica", "Raio-X", "Ecografia", "Análise de Urina", "Citologia"]

DEMO_PIN = "123456"


def seed_reference_data(db: Session) -> None:
    """Idempotente: só insere o que ainda não existe (por nome)."""
    existing_clinics = {c.name for c in db.query(models.Clinic).all()}
    for data in CLINICS:
        if data["name"] in existing_clinics:
            continue
        clinic = models.Clinic(name=data["name"], address=data["address"])
        clinic.veterinarians = [models.Veterinarian(name=name, specialty=specialty)
                                for name, specialty in data["vets"]]
        db.add(clinic)

    existing_vaccines = {v.name for v in db.query(models.VaccineType).all()}
    for name, validity_days in VACCINE_TYPES:
        if name not in existing_vaccines:
            db.add(models.VaccineType(name=name, validity_days=validity_days))

    existing_exams = {e.name for e in db.query(models.ExamType).all()}
    for name in EXAM_TYPES:
        if name not in existing_exams:
            db.add(models.ExamType(name=name))

    db.commit()
    logger.info("Dados de referência verificados")


def seed_demo_data(db: Session, tutors: int = 5, fake: Faker = None) -> dict:
    """
    Cria tutores verificados (PIN 123456) com animais, consultas futuras,
    vacinas agendadas e exames. Devolve as contagens criadas.
    """
    fake = fake or Faker("pt_PT")
    pin_hash = auth.get_pin_hash(DEMO_PIN)
    vets = db.query(models.Veterinarian).all()
    vaccine_types = db.query(models.VaccineType).all()
    exam_types = db.query(models.ExamType).all()

    counts = {"tutors": 0, "animals": 0, "appointments": 0, "vaccines": 0, "exams": 0}
    used_slots = set()

    for _ in range(tutors):
        user = models.User(
            name=fake.name(),
            email=fake.unique.email(),
            phone=fake.unique.numerify("9########"),
            user_type='tutor',
            address=fake.address().replace("\n", ", "),
            is_verified=True,
            pin_hash=pin_hash,
        )
        db.add(user)
        db.flush()
        counts["tutors"] += 1

        for _ in range(random.randint(1, 3)):
            animal = models.Animal(
                owner_id=user.id,
                name=fake.first_name(),
                species=random.choice(["Cão", "Gato", "Coelho", "Ave"]),
                breed=random.choice(["Labrador", "Siamês", "Rafeiro", "Persa", None]),
                birth_date=fake.date_between(start_date="-12y", end_date="-3m"),
                weight=Decimal(random.uniform(0.5, 40.0)).quantize(Decimal("0.01")),
                chip_number=fake.unique.numerify("###############"),
                code=auth.generate_animal_code(),
            )
            db.add(animal)
            db.flush()
            counts["animals"] += 1

            vet = random.choice(vets)
            # Vagas de 30 minutos entre as 9h e as 18h, sem repetir (vet, dia, hora)
            while True:
                day = date.today() + timedelta(days=random.randint(1, 30))
                slot = time(random.randint(9, 17), random.choice([0, 30]))
                if (vet.id, day, slot) not in used_slots:
                    used_slots.add((vet.id, day, slot))
                    break
            db.add(models.Appointment(
                user_id=user.id, animal_id=animal.id, clinic_id=vet.clinic_id, vet_id=vet.id,
                date=day, time=slot, reason=fake.sentence(nb_words=5), status='agendada',
            ))
            counts["appointments"] += 1

            if vaccine_types:
                db.add(models.VaccineRecord(
                    animal_id=animal.id,
                    vaccine_type_id=random.choice(vaccine_types).id,
                    scheduled_date=date.today() + timedelta(days=random.randint(1, 60)),
                    status='agendada',
                ))
                counts["vaccines"] += 1

            if exam_types and random.choice([True, False]):
                db.add(models.ExamRecord(
                    animal_id=animal.id,
                    exam_type_id=random.choice(exam_types).id,
                    date=fake.date_between(start_date="-1y", end_date="today"),
                    result=fake.sentence(nb_words=6),
                ))
                counts["exams"] += 1

    db.commit()
    logger.info(f"População de demonstração criada: {counts}")
    return counts


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Povoa a base de dados da clínica")
    parser.add_argument("--demo", action="store_true", help="cria também dados de demonstração")
    parser.add_argument("--tutors", type=int, default=10)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_reference_data(db)
        if args.demo:
            seed_demo_data(db, tutors=args.tutors)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
