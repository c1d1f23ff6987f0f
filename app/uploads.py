import logging
import os
import uuid
from typing import Optional

from fastapi import HTTPException, UploadFile

from .config import get_settings

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"

# Tipos aceites e extensão com que são guardados
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def save_photo(photo: UploadFile) -> str:
    """
    Guarda a fotografia no diretório de uploads e devolve o URL público
    (/uploads/<nome>). O nome é sempre gerado, nunca o do cliente.
    """
    settings = get_settings()
    content_type = (photo.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="A fotografia tem de ser JPEG, PNG ou WEBP")

    filename = f"{uuid.uuid4().hex}{ALLOWED_IMAGE_TYPES[content_type]}"
    os.makedirs(settings.upload_dir, exist_ok=True)
    path = os.path.join(settings.upload_dir, filename)

    # Lê no máximo limite+1 bytes para detetar ficheiros grandes demais
    data = photo.file.read(settings.max_upload_bytes + 1)
    size = len(data)
    if size > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"A fotografia não pode exceder {limit_mb}MB")
    if size == 0:
        raise HTTPException(status_code=400, detail="Ficheiro vazio")

    with open(path, "wb") as out:
        out.write(data)

    logger.info(f"Fotografia guardada: {filename} ({size} bytes)")
    return f"{UPLOADS_URL_PREFIX}/{filename}"


def remove_photo(photo_url: Optional[str]) -> None:
    """Apaga do disco uma fotografia anterior (ignora URLs externos)."""
    if not photo_url or not photo_url.startswith(UPLOADS_URL_PREFIX + "/"):
        return
    filename = os.path.basename(photo_url)
    path = os.path.join(get_settings().upload_dir, filename)
    if os.path.exists(path):
        os.remove(path)
        logger.info(f"Fotografia removida: {filename}")
