import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from passlib.context import CryptContext
from jose import JWTError, jwt

from .config import get_settings

# --- Configuração de Segurança ---

settings = get_settings()

# 1. Hash do PIN
# bcrypt, com o custo vindo da configuração (os testes usam um custo baixo)
pin_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.pin_hash_rounds,
)

# 2. Tokens JWT
SECRET_KEY = settings.secret_key
ALGORITHM = settings.algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes

CODE_ALPHABET = string.ascii_uppercase + string.digits

# --- Funções utilitárias ---

def verify_pin(plain_pin: str, pin_hash: Optional[str]) -> bool:
    """
    Compara um PIN em texto simples com o hash guardado.
    Devolve False se o utilizador ainda não tem PIN.
    """
    if not pin_hash:
        return False
    return pin_context.verify(plain_pin, pin_hash)

def get_pin_hash(pin: str) -> str:
    return pin_context.hash(pin)

def generate_verification_code() -> str:
    """Código numérico de 6 dígitos (com zeros à esquerda)."""
    return f"{secrets.randbelow(10**6):06d}"

def generate_animal_code() -> str:
    """Código público do animal, ex. ANI-3F9A1C2B."""
    return "ANI-" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(8))

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Cria um novo token JWT.
    'data' leva o 'sub' (id do utilizador) e o tipo de conta.
    Cada token tem um 'jti' próprio, por isso dois logins seguidos nunca
    produzem o mesmo token (importante para a lista negra).
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

def decode_access_token(token: str) -> Optional[dict]:
    """
    Descodifica um token. Se for válido devolve o payload completo;
    se for inválido ou tiver expirado devolve None.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("sub") is None:
        return None
    return payload

def token_expiry(payload: dict) -> datetime:
    """Data de expiração do token (UTC, sem tzinfo, como é guardada na BD)."""
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None)
