from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from . import auth, models, crud, database

# Lê o cabeçalho "Authorization: Bearer <token>"
bearer_scheme = HTTPBearer(auto_error=False)

def get_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de autenticação em falta",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials

def get_current_user(
    db: Session = Depends(database.get_db),
    token: str = Depends(get_current_token)
) -> models.User:
    """
    Dependência do FastAPI que obtém o utilizador autenticado.
    1. O token não pode estar na lista negra (logout).
    2. A assinatura e a validade do token são verificadas.
    3. O utilizador tem de existir e estar verificado.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Não foi possível validar as credenciais",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if crud.is_token_invalidated(db, token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sessão terminada, faça login novamente",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = auth.decode_access_token(token)
    if payload is None:
        raise credentials_exception

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise credentials_exception

    user = crud.get_user(db, user_id=user_id)
    if user is None:
        raise credentials_exception
    if not user.is_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Conta não verificada")
    return user

def get_current_tutor(current_user: models.User = Depends(get_current_user)) -> models.User:
    if not current_user.is_tutor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operação reservada a tutores")
    return current_user

def get_current_veterinarian(current_user: models.User = Depends(get_current_user)) -> models.User:
    if not current_user.is_veterinarian:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operação reservada a veterinários")
    return current_user


# --- Regras de acesso a animais ---
# O tutor só vê e altera os seus animais; o veterinário lê qualquer animal.

def can_read_animal(user: models.User, animal: models.Animal) -> bool:
    return user.is_veterinarian or animal.owner_id == user.id

def get_animal_for_user(db: Session, animal_id: int, user: models.User, write: bool = False) -> models.Animal:
    """
    Carrega o animal e aplica as regras de acesso.
    404 se não existir; 403 se pertencer a outro tutor ou, em escrita,
    se o utilizador não for o dono.
    """
    animal = crud.get_animal(db, animal_id=animal_id)
    if animal is None:
        raise HTTPException(status_code=404, detail="Animal não encontrado")
    if write and animal.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Só o tutor do animal pode alterá-lo")
    if not can_read_animal(user, animal):
        raise HTTPException(status_code=403, detail="Sem acesso a este animal")
    return animal

def ensure_record_access(user: models.User, animal: models.Animal, owner_only: bool = False):
    """Acesso a registos (consultas, vacinas, exames) ligados a um animal."""
    if animal.owner_id == user.id:
        return
    if user.is_veterinarian and not owner_only:
        return
    raise HTTPException(status_code=403, detail="Sem permissão para este registo")
