from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuração da API, lida do ambiente (ou de um ficheiro .env).
    """
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    app_name: str = "API Clínica Veterinária"
    app_version: str = "1.0.0"

    # --- Base de dados ---
    database_url: str = "sqlite:///./clinica.db"

    # --- Tokens JWT ---
    secret_key: str = "muda-esta-chave-em-producao"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Custo do bcrypt para o hash do PIN
    pin_hash_rounds: int = 12

    # --- Uploads ---
    upload_dir: str = "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024

    # --- Rate limiting (slowapi) ---
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"

    # --- Tarefas periódicas ---
    # 0 desliga a limpeza em background
    token_sweep_interval_seconds: int = 600
    vaccine_reminder_days: int = 3

    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]
    seed_reference_data: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
