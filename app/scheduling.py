"""
Regras de agendamento partilhadas por consultas e vacinas.

A verificação de conflito é feita antes do INSERT, mas a garantia final é
o índice único parcial (vet_id, date, time) WHERE status != 'cancelada':
se dois pedidos passarem a verificação ao mesmo tempo, o segundo COMMIT
falha com IntegrityError e o handler global devolve 409.
"""
import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from . import crud, models

logger = logging.getLogger(__name__)


def ensure_not_in_past(day: date, slot: Optional[time] = None, label: str = "consulta"):
    now = datetime.now()
    if slot is None:
        in_past = day < now.date()
    else:
        in_past = datetime.combine(day, slot) <= now
    if in_past:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Não é possível agendar {label} no passado",
        )


def check_appointment_slot(db: Session, clinic_id: int, vet_id: int, day: date, slot: time,
                           exclude_id: Optional[int] = None) -> models.Veterinarian:
    """
    Guardas da marcação, por esta ordem:
    clínica existe (404), veterinário existe (404), veterinário pertence à
    clínica (400), data/hora no futuro (400), vaga livre (409).
    """
    clinic = crud.get_clinic(db, clinic_id=clinic_id)
    if clinic is None:
        raise HTTPException(status_code=404, detail="Clínica não encontrada")

    vet = crud.get_veterinarian(db, vet_id=vet_id)
    if vet is None:
        raise HTTPException(status_code=404, detail="Veterinário não encontrado")

    if vet.clinic_id != clinic.id:
        raise HTTPException(status_code=400, detail="O veterinário não pertence a esta clínica")

    ensure_not_in_past(day, slot)

    conflict = crud.find_conflicting_appointment(db, vet_id=vet_id, day=day, slot=slot, exclude_id=exclude_id)
    if conflict is not None:
        logger.info(f"Vaga ocupada: vet={vet_id} {day} {slot:%H:%M} (consulta {conflict.id})")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="O veterinário já tem uma consulta marcada nesta data e hora",
        )
    return vet


def check_vaccine_schedule(db: Session, animal_id: int, vaccine_type_id: int, day: date,
                           slot: Optional[time] = None) -> models.VaccineType:
    vaccine_type = crud.get_vaccine_type(db, vaccine_type_id=vaccine_type_id)
    if vaccine_type is None:
        raise HTTPException(status_code=404, detail="Tipo de vacina não encontrado")

    ensure_not_in_past(day, slot, label="vacinas")

    if crud.find_duplicate_vaccine_schedule(db, animal_id=animal_id, vaccine_type_id=vaccine_type_id, day=day):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Esta vacina já está agendada para o animal neste dia",
        )
    return vaccine_type
