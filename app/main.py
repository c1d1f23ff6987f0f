import asyncio
import logging
import os
import secrets
from contextlib import asynccontextmanager, suppress
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from fastapi import FastAPI, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
# ---  IMPORTS PARA RATE LIMITING ---
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request

# Importações locais
from . import crud, models, schemas, auth, security, scheduling, uploads
from .config import get_settings
from .database import Base, SessionLocal, engine, get_db, check_database
from .maintenance import maintenance_loop
from .seed import seed_reference_data

logger = logging.getLogger(__name__)

settings = get_settings()

# --- CONFIGURAÇÃO DO RATE LIMITER ---
# Em produção aponta para o Redis (RATE_LIMIT_STORAGE_URI=redis://localhost:6379)
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)
    if settings.seed_reference_data:
        db = SessionLocal()
        try:
            seed_reference_data(db)
        finally:
            db.close()

    sweep_task = None
    if settings.token_sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            maintenance_loop(settings.token_sweep_interval_seconds, settings.vaccine_reminder_days)
        )
    logger.info(f"{settings.app_name} iniciada")
    yield
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- GESTOR DE ERROS E ESTADO DO LIMITER ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Fotografias servidas em /uploads
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount(uploads.UPLOADS_URL_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Dados inválidos em {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    # Chega aqui quando dois pedidos concorrentes passam as verificações
    # (email, telefone, chip, vaga do veterinário) e a BD recusa o segundo
    logger.warning(f"Violação de integridade em {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "O pedido entra em conflito com dados existentes"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Erro não tratado em {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Erro interno do servidor"},
    )


# --- Aliases de Dependência ---
DbDep = Depends(get_db)

# O "guarda de segurança" que pomos em cada endpoint autenticado
CurrentUserDep = Depends(security.get_current_user)
TutorDep = Depends(security.get_current_tutor)
VetDep = Depends(security.get_current_veterinarian)


ENDPOINTS = {
    "auth": ["POST /auth/registo", "POST /auth/verificar", "POST /auth/reenviar-codigo",
             "POST /auth/pin", "PUT /auth/pin", "POST /auth/login", "POST /auth/logout"],
    "utilizadores": ["GET /utilizadores/me", "PUT /utilizadores/me", "DELETE /utilizadores/me"],
    "clinicas": ["GET /clinicas", "GET /clinicas/{id}", "GET /clinicas/{id}/veterinarios",
                 "GET /veterinarios", "GET /veterinarios/{id}"],
    "animais": ["POST /animais", "GET /animais", "GET /animais/codigo/{codigo}", "GET /animais/{id}",
                "PUT /animais/{id}", "DELETE /animais/{id}", "POST /animais/{id}/foto",
                "GET /animais/{id}/consultas", "GET /animais/{id}/vacinas", "GET /animais/{id}/exames"],
    "consultas": ["POST /consultas", "GET /consultas", "GET /consultas/disponibilidade",
                  "GET /consultas/{id}", "PUT /consultas/{id}", "PUT /consultas/{id}/cancelar",
                  "PUT /consultas/{id}/concluir", "DELETE /consultas/{id}"],
    "vacinas": ["GET /vacinas/tipos", "POST /vacinas", "GET /vacinas", "GET /vacinas/pendentes",
                "GET /vacinas/{id}", "PUT /vacinas/{id}/aplicar", "PUT /vacinas/{id}/cancelar",
                "DELETE /vacinas/{id}"],
    "exames": ["GET /exames/tipos", "POST /exames", "GET /exames", "GET /exames/{id}",
               "PUT /exames/{id}", "POST /exames/{id}/foto", "DELETE /exames/{id}"],
    "uploads": ["GET /uploads/{ficheiro}"],
}


# ==========================================
# === RAIZ E SAÚDE ===
# ==========================================

@app.get("/", tags=["Root"])
def root():
    """
    Auto-documentação da API. Se a BD não responder, o estado passa a
    'degradado' (a rota continua a responder 200).
    """
    db_ok = check_database()
    return {
        "api": settings.app_name,
        "versao": settings.app_version,
        "estado": "ok" if db_ok else "degradado",
        "base_dados": "ok" if db_ok else "indisponivel",
        "endpoints": ENDPOINTS,
    }

@app.get("/health", tags=["Root"])
def health():
    return {
        "status": "OK",
        "message": "API funcionando",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ==========================================
# === ENDPOINTS DE AUTENTICAÇÃO ===
# ==========================================

@app.post("/auth/registo", response_model=schemas.User, status_code=status.HTTP_201_CREATED, tags=["Auth"])
@limiter.limit("10/hour")
def register(request: Request, user: schemas.UserCreate, db: Session = DbDep):
    """
    Regista um utilizador (tutor ou veterinário) ainda por verificar.
    O código de verificação é "enviado" para o log do servidor.
    """
    if crud.get_user_by_email(db, email=user.email):
        raise HTTPException(status_code=409, detail="Email já registado")
    if crud.get_user_by_phone(db, phone=user.phone):
        raise HTTPException(status_code=409, detail="Telefone já registado")

    code = auth.generate_verification_code()
    db_user = crud.create_user(db, user=user, verification_code=code)
    logger.info(f"Novo utilizador {db_user.id} ({db_user.user_type})")
    logger.info(f"CÓDIGO DE VERIFICAÇÃO para {db_user.email}: {code}")
    return db_user

@app.post("/auth/verificar", response_model=schemas.User, tags=["Auth"])
def verify_account(data: schemas.VerifyRequest, db: Session = DbDep):
    user = crud.get_user_by_email(db, email=data.email)
    if user is None:
        raise HTTPException(status_code=404, detail="Utilizador não encontrado")
    if user.is_verified:
        raise HTTPException(status_code=400, detail="Conta já verificada")
    if not secrets.compare_digest(user.verification_code or "", data.code):
        raise HTTPException(status_code=400, detail="Código de verificação inválido")
    return crud.mark_user_verified(db, db_user=user)

@app.post("/auth/reenviar-codigo", response_model=schemas.Message, tags=["Auth"])
@limiter.limit("5/hour")
def resend_verification_code(request: Request, data: schemas.ResendCodeRequest, db: Session = DbDep):
    user = crud.get_user_by_email(db, email=data.email)
    if user is None:
        raise HTTPException(status_code=404, detail="Utilizador não encontrado")
    if user.is_verified:
        raise HTTPException(status_code=400, detail="Conta já verificada")

    code = auth.generate_verification_code()
    crud.set_verification_code(db, db_user=user, code=code)
    logger.info(f"CÓDIGO DE VERIFICAÇÃO para {user.email}: {code}")
    return {"message": "Novo código de verificação enviado"}

@app.post("/auth/pin", response_model=schemas.User, tags=["Auth"])
def set_pin(data: schemas.PinSetRequest, db: Session = DbDep):
    """
    Define o PIN de 6 dígitos de uma conta já verificada (só uma vez;
    depois usa-se PUT /auth/pin, autenticado).
    """
    user = crud.get_user_by_email(db, email=data.email)
    if user is None:
        raise HTTPException(status_code=404, detail="Utilizador não encontrado")
    if not user.is_verified:
        raise HTTPException(status_code=403, detail="Conta não verificada")
    if user.has_pin:
        raise HTTPException(status_code=409, detail="PIN já definido")
    return crud.set_user_pin(db, db_user=user, pin=data.pin)

@app.put("/auth/pin", response_model=schemas.Message, tags=["Auth"])
def change_pin(data: schemas.PinChangeRequest, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    if not auth.verify_pin(data.current_pin, current_user.pin_hash):
        raise HTTPException(status_code=401, detail="PIN atual incorreto")
    crud.set_user_pin(db, db_user=current_user, pin=data.new_pin)
    return {"message": "PIN alterado"}

@app.post("/auth/login", response_model=schemas.Token, tags=["Auth"])
@limiter.limit("5/minute")
def login(request: Request, credentials: schemas.LoginRequest, db: Session = DbDep):
    """
    Inicia sessão com email + PIN e devolve um token JWT de curta duração.
    """
    # 1. Procura o utilizador pelo email
    user = crud.get_user_by_email(db, email=credentials.email)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou PIN incorretos",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. A conta tem de estar verificada e com PIN definido
    if not user.is_verified:
        raise HTTPException(status_code=403, detail="Conta não verificada")
    if not user.has_pin:
        raise HTTPException(status_code=403, detail="PIN ainda não definido")

    # 3. Compara o PIN com o hash
    if not auth.verify_pin(credentials.pin, user.pin_hash):
        logger.info(f"Login falhado para o utilizador {user.id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou PIN incorretos",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 4. Cria o token ('sub' é o id do utilizador)
    access_token = auth.create_access_token(data={"sub": str(user.id), "tipo": user.user_type})
    logger.info(f"Login do utilizador {user.id}")
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": auth.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": schemas.User.model_validate(user),
    }

@app.post("/auth/logout", response_model=schemas.Message, tags=["Auth"])
def logout(
    token: str = Depends(security.get_current_token),
    db: Session = DbDep,
    current_user: models.User = CurrentUserDep,
):
    """
    Coloca o token na lista negra até à sua expiração natural.
    """
    payload = auth.decode_access_token(token)
    crud.invalidate_token(db, token=token, expires_at=auth.token_expiry(payload), user_id=current_user.id)
    logger.info(f"Logout do utilizador {current_user.id}")
    return {"message": "Sessão terminada"}


# ==========================================
# === ENDPOINTS UTILIZADORES ===
# ==========================================

@app.get("/utilizadores/me", response_model=schemas.User, tags=["Utilizadores"])
def read_me(current_user: models.User = CurrentUserDep):
    return current_user

@app.put("/utilizadores/me", response_model=schemas.User, tags=["Utilizadores"])
def update_me(user: schemas.UserUpdate, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    if user.phone and user.phone != current_user.phone and crud.get_user_by_phone(db, phone=user.phone):
        raise HTTPException(status_code=409, detail="Telefone já registado")
    return crud.update_user(db, db_user=current_user, user_update=user)

@app.delete("/utilizadores/me", status_code=status.HTTP_204_NO_CONTENT, tags=["Utilizadores"])
def delete_me(db: Session = DbDep, current_user: models.User = CurrentUserDep):
    """Apaga a conta; animais, consultas, vacinas e exames caem em cascata."""
    photos = []
    for animal in current_user.animals:
        photos.append(animal.photo_url)
        photos.extend(exam.photo_url for exam in animal.exam_records)
    user_id = current_user.id
    crud.delete_user(db, db_user=current_user)
    for photo_url in photos:
        uploads.remove_photo(photo_url)
    logger.info(f"Conta {user_id} apagada")


# ==========================================
# === ENDPOINTS CLÍNICAS / VETERINÁRIOS ===
# ==========================================

@app.get("/clinicas", response_model=List[schemas.Clinic], tags=["Clínicas"])
def read_clinics(db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return crud.get_clinics(db)

@app.get("/clinicas/{clinic_id}", response_model=schemas.Clinic, tags=["Clínicas"])
def read_clinic(clinic_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_clinic = crud.get_clinic(db, clinic_id=clinic_id)
    if db_clinic is None:
        raise HTTPException(status_code=404, detail="Clínica não encontrada")
    return db_clinic

@app.get("/clinicas/{clinic_id}/veterinarios", response_model=List[schemas.Veterinarian], tags=["Clínicas"])
def read_clinic_veterinarians(clinic_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    if not crud.get_clinic(db, clinic_id=clinic_id):
        raise HTTPException(status_code=404, detail="Clínica não encontrada")
    return crud.get_veterinarians(db, clinic_id=clinic_id)

@app.get("/veterinarios", response_model=List[schemas.Veterinarian], tags=["Clínicas"])
def read_veterinarians(clinic_id: Optional[int] = None, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return crud.get_veterinarians(db, clinic_id=clinic_id)

@app.get("/veterinarios/{vet_id}", response_model=schemas.Veterinarian, tags=["Clínicas"])
def read_veterinarian(vet_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_vet = crud.get_veterinarian(db, vet_id=vet_id)
    if db_vet is None:
        raise HTTPException(status_code=404, detail="Veterinário não encontrado")
    return db_vet


# ==========================================
# === ENDPOINTS ANIMAIS ===
# ==========================================

def _check_birth_date(birth_date: Optional[date]):
    if birth_date and birth_date > date.today():
        raise HTTPException(status_code=400, detail="A data de nascimento não pode ser no futuro")

@app.post("/animais", response_model=schemas.Animal, status_code=status.HTTP_201_CREATED, tags=["Animais"])
def create_animal(animal: schemas.AnimalCreate, db: Session = DbDep, current_user: models.User = TutorDep):
    _check_birth_date(animal.birth_date)
    if animal.chip_number and crud.get_animal_by_chip(db, chip_number=animal.chip_number):
        raise HTTPException(status_code=409, detail="Número de chip já registado")
    db_animal = crud.create_animal(db, animal=animal, owner_id=current_user.id)
    logger.info(f"Animal {db_animal.id} ({db_animal.code}) criado pelo tutor {current_user.id}")
    return db_animal

@app.get("/animais", response_model=List[schemas.Animal], tags=["Animais"])
def read_animals(owner_id: Optional[int] = None, skip: int = 0, limit: int = 100,
                 db: Session = DbDep, current_user: models.User = CurrentUserDep):
    # O tutor só vê os seus; o veterinário vê todos (ou os de um tutor)
    if current_user.is_tutor:
        owner_id = current_user.id
    return crud.get_animals(db, owner_id=owner_id, skip=skip, limit=limit)

@app.get("/animais/codigo/{code}", response_model=schemas.Animal, tags=["Animais"])
def read_animal_by_code(code: str, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_animal = crud.get_animal_by_code(db, code=code)
    if db_animal is None:
        raise HTTPException(status_code=404, detail="Animal não encontrado")
    if not security.can_read_animal(current_user, db_animal):
        raise HTTPException(status_code=403, detail="Sem acesso a este animal")
    return db_animal

@app.get("/animais/{animal_id}", response_model=schemas.Animal, tags=["Animais"])
def read_animal(animal_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return security.get_animal_for_user(db, animal_id, current_user)

@app.put("/animais/{animal_id}", response_model=schemas.Animal, tags=["Animais"])
def update_animal(animal_id: int, animal: schemas.AnimalUpdate, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_animal = security.get_animal_for_user(db, animal_id, current_user, write=True)
    _check_birth_date(animal.birth_date)
    if animal.chip_number and animal.chip_number != db_animal.chip_number \
            and crud.get_animal_by_chip(db, chip_number=animal.chip_number):
        raise HTTPException(status_code=409, detail="Número de chip já registado")
    return crud.update_animal(db, db_animal=db_animal, animal_update=animal)

@app.delete("/animais/{animal_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Animais"])
def delete_animal(animal_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_animal = security.get_animal_for_user(db, animal_id, current_user, write=True)
    photos = [db_animal.photo_url] + [exam.photo_url for exam in db_animal.exam_records]
    crud.delete_animal(db, db_animal=db_animal)
    for photo_url in photos:
        uploads.remove_photo(photo_url)
    logger.info(f"Animal {animal_id} apagado pelo tutor {current_user.id}")

@app.post("/animais/{animal_id}/foto", response_model=schemas.Animal, tags=["Animais"])
def upload_animal_photo(animal_id: int, foto: UploadFile = File(...), db: Session = DbDep,
                        current_user: models.User = CurrentUserDep):
    db_animal = security.get_animal_for_user(db, animal_id, current_user, write=True)
    old_photo = db_animal.photo_url
    photo_url = uploads.save_photo(foto)
    db_animal = crud.set_animal_photo(db, db_animal=db_animal, photo_url=photo_url)
    uploads.remove_photo(old_photo)
    return db_animal

@app.get("/animais/{animal_id}/consultas", response_model=List[schemas.Appointment], tags=["Animais"])
def read_animal_appointments(animal_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    security.get_animal_for_user(db, animal_id, current_user)
    return crud.get_appointments(db, animal_id=animal_id)

@app.get("/animais/{animal_id}/vacinas", response_model=List[schemas.VaccineRecord], tags=["Animais"])
def read_animal_vaccines(animal_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    security.get_animal_for_user(db, animal_id, current_user)
    return crud.get_vaccine_records(db, animal_id=animal_id)

@app.get("/animais/{animal_id}/exames", response_model=List[schemas.ExamRecord], tags=["Animais"])
def read_animal_exams(animal_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    security.get_animal_for_user(db, animal_id, current_user)
    return crud.get_exam_records(db, animal_id=animal_id)


# ==========================================
# === ENDPOINTS CONSULTAS ===
# ==========================================

def _get_appointment_for_user(db: Session, appt_id: int, user: models.User, owner_only: bool = False) -> models.Appointment:
    db_appt = crud.get_appointment(db, appt_id=appt_id)
    if db_appt is None:
        raise HTTPException(status_code=404, detail="Consulta não encontrada")
    if db_appt.user_id == user.id:
        return db_appt
    if user.is_veterinarian and not owner_only:
        return db_appt
    raise HTTPException(status_code=403, detail="Sem permissão para esta consulta")

def _ensure_scheduled(db_appt: models.Appointment):
    if db_appt.status != 'agendada':
        raise HTTPException(status_code=400, detail=f"A consulta está '{db_appt.status}' e não pode ser alterada")

@app.post("/consultas", response_model=schemas.Appointment, status_code=status.HTTP_201_CREATED, tags=["Consultas"])
@limiter.limit("30/minute")
def create_appointment(request: Request, appt: schemas.AppointmentCreate, db: Session = DbDep, current_user: models.User = TutorDep):
    """
    Marca uma consulta. Guardas: animal existe e é do tutor, clínica e
    veterinário existem e estão emparelhados, data no futuro, vaga livre.
    """
    security.get_animal_for_user(db, appt.animal_id, current_user, write=True)
    scheduling.check_appointment_slot(db, clinic_id=appt.clinic_id, vet_id=appt.vet_id, day=appt.date, slot=appt.time)

    created_appt = crud.create_appointment(db, appt=appt, user_id=current_user.id)
    logger.info(f"Consulta {created_appt.id} marcada: vet={appt.vet_id} {appt.date} {appt.time:%H:%M}")
    return crud.get_appointment(db, created_appt.id)

@app.get("/consultas", response_model=List[schemas.Appointment], tags=["Consultas"])
def read_appointments(
    status_filter: Optional[schemas.AppointmentStatusEnum] = Query(None, alias="status"),
    day: Optional[date] = Query(None, alias="date"),
    vet_id: Optional[int] = None,
    animal_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = DbDep,
    current_user: models.User = CurrentUserDep,
):
    user_id = current_user.id if current_user.is_tutor else None
    return crud.get_appointments(
        db, user_id=user_id, status=status_filter.value if status_filter else None,
        day=day, vet_id=vet_id, animal_id=animal_id, skip=skip, limit=limit,
    )

@app.get("/consultas/disponibilidade", response_model=schemas.Availability, tags=["Consultas"])
def read_availability(vet_id: int, day: date = Query(..., alias="date"), db: Session = DbDep,
                      current_user: models.User = CurrentUserDep):
    if not crud.get_veterinarian(db, vet_id=vet_id):
        raise HTTPException(status_code=404, detail="Veterinário não encontrado")
    return {"vet_id": vet_id, "date": day, "occupied": crud.get_occupied_times(db, vet_id=vet_id, day=day)}

@app.get("/consultas/{appt_id}", response_model=schemas.Appointment, tags=["Consultas"])
def read_appointment(appt_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return _get_appointment_for_user(db, appt_id, current_user)

@app.put("/consultas/{appt_id}", response_model=schemas.Appointment, tags=["Consultas"])
def update_appointment(appt_id: int, appt: schemas.AppointmentUpdate, db: Session = DbDep,
                       current_user: models.User = CurrentUserDep):
    """Remarcação pelo tutor. A própria consulta não conta como conflito."""
    db_appt = _get_appointment_for_user(db, appt_id, current_user, owner_only=True)
    _ensure_scheduled(db_appt)

    scheduling.check_appointment_slot(
        db,
        clinic_id=appt.clinic_id or db_appt.clinic_id,
        vet_id=appt.vet_id or db_appt.vet_id,
        day=appt.date or db_appt.date,
        slot=appt.time or db_appt.time,
        exclude_id=db_appt.id,
    )

    updated_appt = crud.update_appointment(db, db_appt=db_appt, appt_update=appt)
    return crud.get_appointment(db, updated_appt.id)  # Recarregar

@app.put("/consultas/{appt_id}/cancelar", response_model=schemas.Appointment, tags=["Consultas"])
def cancel_appointment(appt_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_appt = _get_appointment_for_user(db, appt_id, current_user)
    _ensure_scheduled(db_appt)
    logger.info(f"Consulta {appt_id} cancelada pelo utilizador {current_user.id}")
    return crud.cancel_appointment(db, db_appt=db_appt)

@app.put("/consultas/{appt_id}/concluir", response_model=schemas.Appointment, tags=["Consultas"])
def complete_appointment(appt_id: int, record: schemas.AppointmentComplete, db: Session = DbDep,
                         current_user: models.User = VetDep):
    db_appt = _get_appointment_for_user(db, appt_id, current_user)
    _ensure_scheduled(db_appt)
    return crud.complete_appointment(db, db_appt=db_appt, record=record)

@app.delete("/consultas/{appt_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Consultas"])
def delete_appointment(appt_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_appt = _get_appointment_for_user(db, appt_id, current_user, owner_only=True)
    crud.delete_appointment(db, db_appt=db_appt)


# ==========================================
# === ENDPOINTS VACINAS ===
# ==========================================

def _get_vaccine_for_user(db: Session, record_id: int, user: models.User, owner_only: bool = False) -> models.VaccineRecord:
    db_record = crud.get_vaccine_record(db, record_id=record_id)
    if db_record is None:
        raise HTTPException(status_code=404, detail="Registo de vacina não encontrado")
    security.ensure_record_access(user, db_record.animal, owner_only=owner_only)
    return db_record

@app.get("/vacinas/tipos", response_model=List[schemas.VaccineType], tags=["Vacinas"])
def read_vaccine_types(db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return crud.get_vaccine_types(db)

@app.post("/vacinas", response_model=schemas.VaccineRecord, status_code=status.HTTP_201_CREATED, tags=["Vacinas"])
def create_vaccine_record(record: schemas.VaccineRecordCreate, db: Session = DbDep,
                          current_user: models.User = CurrentUserDep):
    security.get_animal_for_user(db, record.animal_id, current_user)
    scheduling.check_vaccine_schedule(
        db, animal_id=record.animal_id, vaccine_type_id=record.vaccine_type_id,
        day=record.scheduled_date, slot=record.scheduled_time,
    )
    created_record = crud.create_vaccine_record(db, record=record)
    logger.info(f"Vacina {created_record.id} agendada para o animal {record.animal_id} em {record.scheduled_date}")
    return crud.get_vaccine_record(db, record_id=created_record.id)

@app.get("/vacinas", response_model=List[schemas.VaccineRecord], tags=["Vacinas"])
def read_vaccine_records(
    animal_id: Optional[int] = None,
    status_filter: Optional[schemas.VaccineStatusEnum] = Query(None, alias="status"),
    db: Session = DbDep,
    current_user: models.User = CurrentUserDep,
):
    if animal_id is not None:
        security.get_animal_for_user(db, animal_id, current_user)
    owner_id = current_user.id if current_user.is_tutor else None
    return crud.get_vaccine_records(
        db, owner_id=owner_id, animal_id=animal_id, status=status_filter.value if status_filter else None,
    )

@app.get("/vacinas/pendentes", response_model=List[schemas.VaccineRecord], tags=["Vacinas"])
def read_pending_vaccines(dias: int = Query(30, ge=0, le=365), db: Session = DbDep,
                          current_user: models.User = CurrentUserDep):
    """Vacinas agendadas e reforços a vencer nos próximos `dias` dias."""
    today = date.today()
    owner_id = current_user.id if current_user.is_tutor else None
    return crud.get_pending_vaccines(db, start=today, end=today + timedelta(days=dias), owner_id=owner_id)

@app.get("/vacinas/{record_id}", response_model=schemas.VaccineRecord, tags=["Vacinas"])
def read_vaccine_record(record_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return _get_vaccine_for_user(db, record_id, current_user)

@app.put("/vacinas/{record_id}/aplicar", response_model=schemas.VaccineRecord, tags=["Vacinas"])
def apply_vaccine(record_id: int, data: schemas.VaccineApply, db: Session = DbDep,
                  current_user: models.User = VetDep):
    db_record = _get_vaccine_for_user(db, record_id, current_user)
    if db_record.status != 'agendada':
        raise HTTPException(status_code=400, detail=f"A vacina está '{db_record.status}' e não pode ser aplicada")

    applied_date = data.applied_date or date.today()
    if applied_date > date.today():
        raise HTTPException(status_code=400, detail="A data de aplicação não pode ser no futuro")

    # Sem data de reforço explícita, usa a validade do tipo de vacina
    next_due_date = data.next_due_date
    if next_due_date is None and db_record.vaccine_type.validity_days:
        next_due_date = applied_date + timedelta(days=db_record.vaccine_type.validity_days)
    if next_due_date is not None and next_due_date <= applied_date:
        raise HTTPException(status_code=400, detail="O reforço tem de ser depois da aplicação")

    return crud.apply_vaccine(db, db_record=db_record, applied_date=applied_date, next_due_date=next_due_date)

@app.put("/vacinas/{record_id}/cancelar", response_model=schemas.VaccineRecord, tags=["Vacinas"])
def cancel_vaccine(record_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_record = _get_vaccine_for_user(db, record_id, current_user)
    if db_record.status != 'agendada':
        raise HTTPException(status_code=400, detail=f"A vacina está '{db_record.status}' e não pode ser cancelada")
    return crud.cancel_vaccine_record(db, db_record=db_record)

@app.delete("/vacinas/{record_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Vacinas"])
def delete_vaccine_record(record_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_record = _get_vaccine_for_user(db, record_id, current_user, owner_only=True)
    crud.delete_vaccine_record(db, db_record=db_record)


# ==========================================
# === ENDPOINTS EXAMES ===
# ==========================================

def _get_exam_for_user(db: Session, record_id: int, user: models.User, owner_only: bool = False) -> models.ExamRecord:
    db_record = crud.get_exam_record(db, record_id=record_id)
    if db_record is None:
        raise HTTPException(status_code=404, detail="Exame não encontrado")
    security.ensure_record_access(user, db_record.animal, owner_only=owner_only)
    return db_record

@app.get("/exames/tipos", response_model=List[schemas.ExamType], tags=["Exames"])
def read_exam_types(db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return crud.get_exam_types(db)

@app.post("/exames", response_model=schemas.ExamRecord, status_code=status.HTTP_201_CREATED, tags=["Exames"])
def create_exam_record(record: schemas.ExamRecordCreate, db: Session = DbDep,
                       current_user: models.User = CurrentUserDep):
    security.get_animal_for_user(db, record.animal_id, current_user)
    if not crud.get_exam_type(db, exam_type_id=record.exam_type_id):
        raise HTTPException(status_code=404, detail="Tipo de exame não encontrado")
    created_record = crud.create_exam_record(db, record=record)
    return crud.get_exam_record(db, record_id=created_record.id)

@app.get("/exames", response_model=List[schemas.ExamRecord], tags=["Exames"])
def read_exam_records(animal_id: Optional[int] = None, db: Session = DbDep,
                      current_user: models.User = CurrentUserDep):
    if animal_id is not None:
        security.get_animal_for_user(db, animal_id, current_user)
    owner_id = current_user.id if current_user.is_tutor else None
    return crud.get_exam_records(db, owner_id=owner_id, animal_id=animal_id)

@app.get("/exames/{record_id}", response_model=schemas.ExamRecord, tags=["Exames"])
def read_exam_record(record_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    return _get_exam_for_user(db, record_id, current_user)

@app.put("/exames/{record_id}", response_model=schemas.ExamRecord, tags=["Exames"])
def update_exam_record(record_id: int, record: schemas.ExamRecordUpdate, db: Session = DbDep,
                       current_user: models.User = CurrentUserDep):
    db_record = _get_exam_for_user(db, record_id, current_user)
    return crud.update_exam_record(db, db_record=db_record, record_update=record)

@app.post("/exames/{record_id}/foto", response_model=schemas.ExamRecord, tags=["Exames"])
def upload_exam_photo(record_id: int, foto: UploadFile = File(...), db: Session = DbDep,
                      current_user: models.User = CurrentUserDep):
    db_record = _get_exam_for_user(db, record_id, current_user)
    old_photo = db_record.photo_url
    photo_url = uploads.save_photo(foto)
    db_record = crud.set_exam_photo(db, db_record=db_record, photo_url=photo_url)
    uploads.remove_photo(old_photo)
    return db_record

@app.delete("/exames/{record_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Exames"])
def delete_exam_record(record_id: int, db: Session = DbDep, current_user: models.User = CurrentUserDep):
    db_record = _get_exam_for_user(db, record_id, current_user, owner_only=True)
    photo_url = db_record.photo_url
    crud.delete_exam_record(db, db_record=db_record)
    uploads.remove_photo(photo_url)
