from sqlalchemy import (Column, Integer, String, Text, Date, Time, TIMESTAMP, Numeric,
                        Boolean, ForeignKey, Enum, Index, text)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    user_type = Column(Enum('tutor', 'veterinario', name='user_type_enum'), nullable=False, default='tutor')
    address = Column(Text, nullable=True)
    registered_at = Column(TIMESTAMP, server_default=func.now())

    # --- Verificação e PIN ---
    is_verified = Column(Boolean, nullable=False, default=False)
    verification_code = Column(String(6), nullable=True)
    pin_hash = Column(String(255), nullable=True)

    # Relação: um tutor tem muitos animais
    animals = relationship("Animal", back_populates="owner", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="user", cascade="all, delete-orphan")
    invalidated_tokens = relationship("InvalidatedToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def has_pin(self) -> bool:
        return self.pin_hash is not None

    @property
    def is_tutor(self) -> bool:
        return self.user_type == 'tutor'

    @property
    def is_veterinarian(self) -> bool:
        return self.user_type == 'veterinario'

class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), unique=True, nullable=False)
    address = Column(Text, nullable=True)

    veterinarians = relationship("Veterinarian", back_populates="clinic")

class Veterinarian(Base):
    """
    Veterinários de referência (dados estáticos, semeados no arranque).
    """
    __tablename__ = "veterinarians"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    specialty = Column(String(100), nullable=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)

    clinic = relationship("Clinic", back_populates="veterinarians")
    appointments = relationship("Appointment", back_populates="veterinarian")

class Animal(Base):
    __tablename__ = "animals"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    species = Column(String(50), nullable=False)
    breed = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    weight = Column(Numeric(6, 2), nullable=True)
    medical_history = Column(Text, nullable=True)
    photo_url = Column(String(255), nullable=True)
    chip_number = Column(String(50), unique=True, nullable=True, index=True)
    # Código gerado (ex. ANI-3F9A1C2B), usado pelos veterinários
    code = Column(String(20), unique=True, nullable=False, index=True)
    registered_at = Column(TIMESTAMP, server_default=func.now())

    owner = relationship("User", back_populates="animals")
    appointments = relationship("Appointment", back_populates="animal", cascade="all, delete-orphan")
    vaccine_records = relationship("VaccineRecord", back_populates="animal", cascade="all, delete-orphan")
    exam_records = relationship("ExamRecord", back_populates="animal", cascade="all, delete-orphan")

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Foreign Keys
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    vet_id = Column(Integer, ForeignKey("veterinarians.id"), nullable=False)

    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(Enum('agendada', 'realizada', 'cancelada', name='appointment_status_enum'), nullable=False, default='agendada')

    # Registo clínico, preenchido quando a consulta é concluída
    symptoms = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Um veterinário não pode ter duas consultas ativas na mesma hora
    __table_args__ = (
        Index(
            "uq_appointments_vet_slot", "vet_id", "date", "time",
            unique=True,
            sqlite_where=text("status != 'cancelada'"),
            postgresql_where=text("status != 'cancelada'"),
        ),
    )

    user = relationship("User", back_populates="appointments")
    animal = relationship("Animal", back_populates="appointments")
    clinic = relationship("Clinic")
    veterinarian = relationship("Veterinarian", back_populates="appointments")

class VaccineType(Base):
    """
    Tabela de tipos de vacina (ex. Raiva, Esgana)
    """
    __tablename__ = "vaccine_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), unique=True, nullable=False)
    # Dias até ao próximo reforço; nulo para doses únicas
    validity_days = Column(Integer, nullable=True)

class VaccineRecord(Base):
    __tablename__ = "vaccine_records"

    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False, index=True)
    vaccine_type_id = Column(Integer, ForeignKey("vaccine_types.id"), nullable=False)

    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(Time, nullable=True)
    applied_date = Column(Date, nullable=True)
    next_due_date = Column(Date, nullable=True)
    status = Column(Enum('agendada', 'aplicada', 'cancelada', name='vaccine_status_enum'), nullable=False, default='agendada')
    notified = Column(Boolean, nullable=False, default=False)

    animal = relationship("Animal", back_populates="vaccine_records")
    vaccine_type = relationship("VaccineType")

class ExamType(Base):
    __tablename__ = "exam_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), unique=True, nullable=False)

class ExamRecord(Base):
    __tablename__ = "exam_records"

    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_type_id = Column(Integer, ForeignKey("exam_types.id"), nullable=False)

    date = Column(Date, nullable=False)
    result = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)
    photo_url = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    animal = relationship("Animal", back_populates="exam_records")
    exam_type = relationship("ExamType")

class InvalidatedToken(Base):
    """
    Lista negra de tokens (logout). Cada linha vive até o token expirar.
    """
    __tablename__ = "invalidated_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(512), unique=True, nullable=False, index=True)
    expires_at = Column(TIMESTAMP, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    user = relationship("User", back_populates="invalidated_tokens")
