from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from projectsign.modules.forms.services.token_service import TokenService
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


def delete_expired_tokens(session: Session, retention_days: int = 30) -> int:
    cutoff_date = datetime.utcnow() - timedelta(days=retention_days)
    deleted = TokenService.purge_expired(session, cutoff_date)
    logger.info("expired_tokens_purged", deleted=deleted, cutoff=cutoff_date.isoformat())
    return deleted
