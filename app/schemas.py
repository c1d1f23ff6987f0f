import datetime as dt
import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum

PHONE_PATTERN = re.compile(r"^\+?\d{9,15}$")
SIX_DIGITS = r"^\d{6}$"


def normalize_phone(value: str) -> str:
    """Remove espaços, hífens e parênteses e valida o formato do telefone."""
    cleaned = re.sub(r"[\s\-()]", "", value or "")
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError("Telefone inválido (9 a 15 dígitos, '+' opcional)")
    return cleaned


def not_null(value):
    # Campos opcionais num update, mas que não aceitam null explícito
    if value is None:
        raise ValueError("O campo não pode ser nulo")
    return value


def normalize_time(value: Optional[time]) -> Optional[time]:
    # As vagas são ao minuto; segundos e fuso são descartados
    if value is None:
        return None
    return value.replace(second=0, microsecond=0, tzinfo=None)


# --- Enums ---
class UserTypeEnum(str, Enum):
    tutor = 'tutor'
    veterinario = 'veterinario'

class AppointmentStatusEnum(str, Enum):
    agendada = 'agendada'
    realizada = 'realizada'
    cancelada = 'cancelada'

class VaccineStatusEnum(str, Enum):
    agendada = 'agendada'
    aplicada = 'aplicada'
    cancelada = 'cancelada'


# --- Users ---
class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    phone: str
    user_type: UserTypeEnum = UserTypeEnum.tutor
    address: Optional[str] = None

class UserCreate(UserBase):
    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return normalize_phone(v)

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name", "phone")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return normalize_phone(v)

class User(UserBase):
    id: int
    registered_at: Optional[datetime] = None
    is_verified: bool
    has_pin: bool
    class Config:
        from_attributes = True


# --- Auth ---
class VerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=SIX_DIGITS)

class ResendCodeRequest(BaseModel):
    email: EmailStr

class PinSetRequest(BaseModel):
    email: EmailStr
    pin: str = Field(..., pattern=SIX_DIGITS)

class PinChangeRequest(BaseModel):
    current_pin: str = Field(..., pattern=SIX_DIGITS)
    new_pin: str = Field(..., pattern=SIX_DIGITS)

class LoginRequest(BaseModel):
    """
    Body do /auth/login: email e PIN de 6 dígitos.
    """
    email: EmailStr
    pin: str = Field(..., pattern=SIX_DIGITS)

class Token(BaseModel):
    """
    Resposta de um login bem sucedido.
    """
    access_token: str
    token_type: str
    expires_in: int
    user: User

class Message(BaseModel):
    message: str


# --- Clinics / Veterinarians ---
class Clinic(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    class Config:
        from_attributes = True

class Veterinarian(BaseModel):
    id: int
    name: str
    specialty: Optional[str] = None
    clinic_id: int
    class Config:
        from_attributes = True


# --- Animals ---
class AnimalSimple(BaseModel):
    id: int
    name: str
    species: str
    code: str
    class Config:
        from_attributes = True

class AnimalBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    species: str = Field(..., min_length=1, max_length=50)
    breed: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[date] = None
    weight: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    medical_history: Optional[str] = None
    chip_number: Optional[str] = Field(None, max_length=50)

class AnimalCreate(AnimalBase):
    pass

class AnimalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    species: Optional[str] = Field(None, min_length=1, max_length=50)
    breed: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[date] = None
    weight: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    medical_history: Optional[str] = None
    chip_number: Optional[str] = Field(None, max_length=50)

    @field_validator("name", "species")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)

class Animal(AnimalBase):
    id: int
    owner_id: int
    code: str
    photo_url: Optional[str] = None
    registered_at: Optional[datetime] = None
    class Config:
        from_attributes = True


# --- Appointments (consultas) ---
class AppointmentCreate(BaseModel):
    animal_id: int
    clinic_id: int
    vet_id: int
    date: date
    time: time
    reason: Optional[str] = None

    @field_validator("time")
    @classmethod
    def strip_seconds(cls, v):
        return normalize_time(v)

class AppointmentUpdate(BaseModel):
    clinic_id: Optional[int] = None
    vet_id: Optional[int] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    reason: Optional[str] = None

    @field_validator("clinic_id", "vet_id", "date", "time")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)

    @field_validator("time")
    @classmethod
    def strip_seconds(cls, v):
        return normalize_time(v)

class AppointmentComplete(BaseModel):
    symptoms: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None

class Appointment(BaseModel):
    id: int
    user_id: int
    animal_id: int
    clinic_id: int
    vet_id: int
    date: date
    time: time
    reason: Optional[str] = None
    status: AppointmentStatusEnum
    symptoms: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    animal: AnimalSimple
    veterinarian: Veterinarian
    class Config:
        from_attributes = True

class Availability(BaseModel):
    vet_id: int
    date: date
    occupied: List[time]


# --- Vaccines ---
class VaccineType(BaseModel):
    id: int
    name: str
    validity_days: Optional[int] = None
    class Config:
        from_attributes = True

class VaccineRecordCreate(BaseModel):
    animal_id: int
    vaccine_type_id: int
    scheduled_date: date
    scheduled_time: Optional[time] = None

    @field_validator("scheduled_time")
    @classmethod
    def strip_seconds(cls, v):
        return normalize_time(v)

class VaccineApply(BaseModel):
    applied_date: Optional[date] = None
    next_due_date: Optional[date] = None

class VaccineRecord(BaseModel):
    id: int
    animal_id: int
    vaccine_type_id: int
    scheduled_date: date
    scheduled_time: Optional[time] = None
    applied_date: Optional[date] = None
    next_due_date: Optional[date] = None
    status: VaccineStatusEnum
    notified: bool
    vaccine_type: VaccineType
    class Config:
        from_attributes = True


# --- Exams ---
class ExamType(BaseModel):
    id: int
    name: str
    class Config:
        from_attributes = True

class ExamRecordCreate(BaseModel):
    animal_id: int
    exam_type_id: int
    date: date
    result: Optional[str] = None
    observations: Optional[str] = None

class ExamRecordUpdate(BaseModel):
    date: Optional[dt.date] = None
    result: Optional[str] = None
    observations: Optional[str] = None

    @field_validator("date")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)

class ExamRecord(BaseModel):
    id: int
    animal_id: int
    exam_type_id: int
    date: date
    result: Optional[str] = None
    observations: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    exam_type: ExamType
    class Config:
        from_attributes = True
