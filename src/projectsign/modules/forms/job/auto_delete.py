from apscheduler.schedulers.background import BackgroundScheduler
from projectsign.config import get_settings
from projectsign.database import SessionLocal
from projectsign.modules.forms.services.cleanup import delete_expired_tokens
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


def start_token_cleanup_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    retention_days = get_settings().token_retention_days

    def job():
        with SessionLocal() as session:
            try:
                delete_expired_tokens(session, retention_days)
            except Exception:
                session.rollback()
                logger.exception("token_cleanup_failed")

    scheduler.add_job(job, 'interval', days=1)  # cada 24 horas
    scheduler.start()
    return scheduler
