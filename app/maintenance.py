import asyncio
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import crud
from .database import SessionLocal

logger = logging.getLogger(__name__)


def sweep_invalidated_tokens(db: Session) -> int:
    deleted = crud.purge_expired_tokens(db)
    if deleted:
        logger.info(f"Lista negra: {deleted} token(s) expirado(s) removido(s)")
    return deleted


def send_vaccine_reminders(db: Session, days_ahead: int, today: Optional[date] = None) -> int:
    """
    Lembretes de vacinação: cada vacina agendada nos próximos `days_ahead`
    dias é notificada uma única vez (flag `notified`). A notificação é um
    registo no log, não há transporte de email/SMS.
    """
    today = today or date.today()
    records = crud.get_unnotified_vaccines(db, start=today, end=today + timedelta(days=days_ahead))
    for record in records:
        owner = record.animal.owner
        logger.info(
            f"Lembrete de vacina para {owner.email}: {record.vaccine_type.name} "
            f"de {record.animal.name} em {record.scheduled_date.isoformat()}"
        )
        record.notified = True
    db.commit()
    return len(records)


def run_maintenance(days_ahead: int) -> None:
    db = SessionLocal()
    try:
        sweep_invalidated_tokens(db)
        send_vaccine_reminders(db, days_ahead)
    finally:
        db.close()


async def maintenance_loop(interval_seconds: int, days_ahead: int) -> None:
    """Corre a manutenção periodicamente; lançada no lifespan da aplicação."""
    while True:
        try:
            await asyncio.to_thread(run_maintenance, days_ahead)
        except Exception:
            logger.exception("Falha na tarefa de manutenção")
        await asyncio.sleep(interval_seconds)
