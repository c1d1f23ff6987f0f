from sqlalchemy.orm import Session, joinedload
from sqlalchemy import or_, and_
from . import models, schemas, auth
from datetime import date, datetime, time, timezone
from typing import Optional

# --- Utils ---
def update_db_item(db_item, update_data):
    """Atualiza um item da BD com os dados de um schema Update."""
    update_data_dict = update_data.model_dump(exclude_unset=True)
    for key, value in update_data_dict.items():
        setattr(db_item, key, value)
    return db_item

def utcnow() -> datetime:
    # As colunas TIMESTAMP guardam UTC sem fuso
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- CRUD Users ---
def get_user(db: Session, user_id: int):
    return db.query(models.User).filter(models.User.id == user_id).first()

def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email.lower()).first()

def get_user_by_phone(db: Session, phone: str):
    return db.query(models.User).filter(models.User.phone == phone).first()

def create_user(db: Session, user: schemas.UserCreate, verification_code: str):
    data = user.model_dump()
    data["email"] = data["email"].lower()
    data["user_type"] = user.user_type.value
    db_user = models.User(**data, is_verified=False, verification_code=verification_code)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def update_user(db: Session, db_user: models.User, user_update: schemas.UserUpdate):
    db_user = update_db_item(db_user, user_update)
    db.commit()
    db.refresh(db_user)
    return db_user

def delete_user(db: Session, db_user: models.User):
    # animais, consultas e tokens caem em cascata
    db.delete(db_user)
    db.commit()

def set_verification_code(db: Session, db_user: models.User, code: str):
    db_user.verification_code = code
    db.commit()
    db.refresh(db_user)
    return db_user

def mark_user_verified(db: Session, db_user: models.User):
    db_user.is_verified = True
    db_user.verification_code = None
    db.commit()
    db.refresh(db_user)
    return db_user

def set_user_pin(db: Session, db_user: models.User, pin: str):
    db_user.pin_hash = auth.get_pin_hash(pin)
    db.commit()
    db.refresh(db_user)
    return db_user


# --- Tokens invalidados (logout) ---
def is_token_invalidated(db: Session, token: str) -> bool:
    return db.query(models.InvalidatedToken.id).filter(models.InvalidatedToken.token == token).first() is not None

def invalidate_token(db: Session, token: str, expires_at: datetime, user_id: int):
    db_token = models.InvalidatedToken(token=token, expires_at=expires_at, user_id=user_id)
    db.add(db_token)
    db.commit()
    return db_token

def purge_expired_tokens(db: Session, now: Optional[datetime] = None) -> int:
    """Apaga da lista negra os tokens que já expiraram. Devolve quantos."""
    now = now or utcnow()
    deleted = db.query(models.InvalidatedToken).filter(
        models.InvalidatedToken.expires_at < now
    ).delete(synchronize_session=False)
    db.commit()
    return deleted


# --- CRUD Clinics / Veterinarians ---
def get_clinics(db: Session):
    return db.query(models.Clinic).order_by(models.Clinic.name).all()

def get_clinic(db: Session, clinic_id: int):
    return db.query(models.Clinic).filter(models.Clinic.id == clinic_id).first()

def get_veterinarians(db: Session, clinic_id: Optional[int] = None):
    query = db.query(models.Veterinarian)
    if clinic_id is not None:
        query = query.filter(models.Veterinarian.clinic_id == clinic_id)
    return query.order_by(models.Veterinarian.name).all()

def get_veterinarian(db: Session, vet_id: int):
    return db.query(models.Veterinarian).filter(models.Veterinarian.id == vet_id).first()


# --- CRUD Animals ---
def get_animal(db: Session, animal_id: int):
    return db.query(models.Animal).filter(models.Animal.id == animal_id).first()

def get_animal_by_code(db: Session, code: str):
    return db.query(models.Animal).filter(models.Animal.code == code.upper()).first()

def get_animal_by_chip(db: Session, chip_number: str):
    return db.query(models.Animal).filter(models.Animal.chip_number == chip_number).first()

def get_animals(db: Session, owner_id: Optional[int] = None, skip: int = 0, limit: int = 100):
    query = db.query(models.Animal)
    if owner_id is not None:
        query = query.filter(models.Animal.owner_id == owner_id)
    return query.order_by(models.Animal.name).offset(skip).limit(limit).all()

def _unique_animal_code(db: Session) -> str:
    while True:
        code = auth.generate_animal_code()
        if not get_animal_by_code(db, code):
            return code

def create_animal(db: Session, animal: schemas.AnimalCreate, owner_id: int):
    db_animal = models.Animal(**animal.model_dump(), owner_id=owner_id, code=_unique_animal_code(db))
    db.add(db_animal)
    db.commit()
    db.refresh(db_animal)
    return db_animal

def update_animal(db: Session, db_animal: models.Animal, animal_update: schemas.AnimalUpdate):
    db_animal = update_db_item(db_animal, animal_update)
    db.commit()
    db.refresh(db_animal)
    return db_animal

def delete_animal(db: Session, db_animal: models.Animal):
    db.delete(db_animal)
    db.commit()

def set_animal_photo(db: Session, db_animal: models.Animal, photo_url: str):
    db_animal.photo_url = photo_url
    db.commit()
    db.refresh(db_animal)
    return db_animal


# --- CRUD Appointments (consultas) ---
def _appointment_query(db: Session):
    return db.query(models.Appointment).options(
        joinedload(models.Appointment.animal),
        joinedload(models.Appointment.veterinarian)
    )

def get_appointment(db: Session, appt_id: int):
    return _appointment_query(db).filter(models.Appointment.id == appt_id).first()

def get_appointments(db: Session, user_id: Optional[int] = None, status: Optional[str] = None,
                     day: Optional[date] = None, vet_id: Optional[int] = None,
                     animal_id: Optional[int] = None, skip: int = 0, limit: int = 100):
    query = _appointment_query(db)
    if user_id is not None:
        query = query.filter(models.Appointment.user_id == user_id)
    if status:
        query = query.filter(models.Appointment.status == status)
    if day:
        query = query.filter(models.Appointment.date == day)
    if vet_id is not None:
        query = query.filter(models.Appointment.vet_id == vet_id)
    if animal_id is not None:
        query = query.filter(models.Appointment.animal_id == animal_id)
    return query.order_by(models.Appointment.date, models.Appointment.time).offset(skip).limit(limit).all()

def find_conflicting_appointment(db: Session, vet_id: int, day: date, slot: time,
                                 exclude_id: Optional[int] = None):
    """Consulta não cancelada do mesmo veterinário no mesmo dia e hora."""
    query = db.query(models.Appointment).filter(
        models.Appointment.vet_id == vet_id,
        models.Appointment.date == day,
        models.Appointment.time == slot,
        models.Appointment.status != 'cancelada'
    )
    if exclude_id is not None:
        query = query.filter(models.Appointment.id != exclude_id)
    return query.first()

def get_occupied_times(db: Session, vet_id: int, day: date):
    rows = db.query(models.Appointment.time).filter(
        models.Appointment.vet_id == vet_id,
        models.Appointment.date == day,
        models.Appointment.status != 'cancelada'
    ).order_by(models.Appointment.time).all()
    return [row.time for row in rows]

def create_appointment(db: Session, appt: schemas.AppointmentCreate, user_id: int):
    db_appt = models.Appointment(**appt.model_dump(), user_id=user_id, status='agendada')
    db.add(db_appt)
    db.commit()
    db.refresh(db_appt)
    return db_appt

def update_appointment(db: Session, db_appt: models.Appointment, appt_update: schemas.AppointmentUpdate):
    db_appt = update_db_item(db_appt, appt_update)
    db.commit()
    db.refresh(db_appt)
    return db_appt

def cancel_appointment(db: Session, db_appt: models.Appointment):
    db_appt.status = 'cancelada'
    db.commit()
    db.refresh(db_appt)
    return db_appt

def complete_appointment(db: Session, db_appt: models.Appointment, record: schemas.AppointmentComplete):
    db_appt = update_db_item(db_appt, record)
    db_appt.status = 'realizada'
    db.commit()
    db.refresh(db_appt)
    return db_appt

def delete_appointment(db: Session, db_appt: models.Appointment):
    db.delete(db_appt)
    db.commit()


# --- CRUD Vaccines ---
def get_vaccine_types(db: Session):
    return db.query(models.VaccineType).order_by(models.VaccineType.name).all()

def get_vaccine_type(db: Session, vaccine_type_id: int):
    return db.query(models.VaccineType).filter(models.VaccineType.id == vaccine_type_id).first()

def _vaccine_query(db: Session):
    return db.query(models.VaccineRecord).options(joinedload(models.VaccineRecord.vaccine_type))

def get_vaccine_record(db: Session, record_id: int):
    return _vaccine_query(db).filter(models.VaccineRecord.id == record_id).first()

def get_vaccine_records(db: Session, owner_id: Optional[int] = None, animal_id: Optional[int] = None,
                        status: Optional[str] = None):
    query = _vaccine_query(db)
    if owner_id is not None:
        query = query.join(models.Animal).filter(models.Animal.owner_id == owner_id)
    if animal_id is not None:
        query = query.filter(models.VaccineRecord.animal_id == animal_id)
    if status:
        query = query.filter(models.VaccineRecord.status == status)
    return query.order_by(models.VaccineRecord.scheduled_date.desc()).all()

def find_duplicate_vaccine_schedule(db: Session, animal_id: int, vaccine_type_id: int, day: date):
    return db.query(models.VaccineRecord).filter(
        models.VaccineRecord.animal_id == animal_id,
        models.VaccineRecord.vaccine_type_id == vaccine_type_id,
        models.VaccineRecord.scheduled_date == day,
        models.VaccineRecord.status != 'cancelada'
    ).first()

def create_vaccine_record(db: Session, record: schemas.VaccineRecordCreate):
    db_record = models.VaccineRecord(**record.model_dump(), status='agendada', notified=False)
    db.add(db_record)
    db.commit()
    db.refresh(db_record)
    return db_record

def apply_vaccine(db: Session, db_record: models.VaccineRecord, applied_date: date, next_due_date: Optional[date]):
    db_record.applied_date = applied_date
    db_record.next_due_date = next_due_date
    db_record.status = 'aplicada'
    db.commit()
    db.refresh(db_record)
    return db_record

def cancel_vaccine_record(db: Session, db_record: models.VaccineRecord):
    db_record.status = 'cancelada'
    db.commit()
    db.refresh(db_record)
    return db_record

def delete_vaccine_record(db: Session, db_record: models.VaccineRecord):
    db.delete(db_record)
    db.commit()

def get_pending_vaccines(db: Session, start: date, end: date, owner_id: Optional[int] = None):
    """
    Vacinas agendadas dentro da janela [start, end] e reforços
    (next_due_date) de vacinas já aplicadas que vencem na mesma janela.
    """
    query = _vaccine_query(db).filter(or_(
        and_(models.VaccineRecord.status == 'agendada',
             models.VaccineRecord.scheduled_date.between(start, end)),
        and_(models.VaccineRecord.status == 'aplicada',
             models.VaccineRecord.next_due_date.between(start, end)),
    ))
    if owner_id is not None:
        query = query.join(models.Animal).filter(models.Animal.owner_id == owner_id)
    return query.order_by(models.VaccineRecord.scheduled_date).all()

def get_unnotified_vaccines(db: Session, start: date, end: date):
    return db.query(models.VaccineRecord).options(
        joinedload(models.VaccineRecord.vaccine_type),
        joinedload(models.VaccineRecord.animal).joinedload(models.Animal.owner)
    ).filter(
        models.VaccineRecord.status == 'agendada',
        models.VaccineRecord.notified.is_(False),
        models.VaccineRecord.scheduled_date.between(start, end)
    ).all()


# --- CRUD Exams ---
def get_exam_types(db: Session):
    return db.query(models.ExamType).order_by(models.ExamType.name).all()

def get_exam_type(db: Session, exam_type_id: int):
    return db.query(models.ExamType).filter(models.ExamType.id == exam_type_id).first()

def _exam_query(db: Session):
    return db.query(models.ExamRecord).options(joinedload(models.ExamRecord.exam_type))

def get_exam_record(db: Session, record_id: int):
    return _exam_query(db).filter(models.ExamRecord.id == record_id).first()

def get_exam_records(db: Session, owner_id: Optional[int] = None, animal_id: Optional[int] = None):
    query = _exam_query(db)
    if owner_id is not None:
        query = query.join(models.Animal).filter(models.Animal.owner_id == owner_id)
    if animal_id is not None:
        query = query.filter(models.ExamRecord.animal_id == animal_id)
    return query.order_by(models.ExamRecord.date.desc()).all()

def create_exam_record(db: Session, record: schemas.ExamRecordCreate):
    db_record = models.ExamRecord(**record.model_dump())
    db.add(db_record)
    db.commit()
    db.refresh(db_record)
    return db_record

def update_exam_record(db: Session, db_record: models.ExamRecord, record_update: schemas.ExamRecordUpdate):
    db_record = update_db_item(db_record, record_update)
    db.commit()
    db.refresh(db_record)
    return db_record

def set_exam_photo(db: Session, db_record: models.ExamRecord, photo_url: str):
    db_record.photo_url = photo_url
    db.commit()
    db.refresh(db_record)
    return db_record

def delete_exam_record(db: Session, db_record: models.ExamRecord):
    db.delete(db_record)
    db.commit()
