import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, joinedload

from projectsign.config import get_settings
from projectsign.errors import AlreadySigned, InvalidOrExpiredToken, NotFound
from projectsign.modules.forms.models.form import Form
from projectsign.modules.forms.models.signing_token import SigningToken
from projectsign.modules.projects.models.project import Project
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


def token_prefix(token: str) -> str:
    return (token or "")[:8]


class TokenService:

    @staticmethod
    def mint(session: Session, form_id: int, expiry_hours: Optional[int] = None) -> SigningToken:
        """
        Crea un token de firma de un solo uso para el formulario.

        Se niega a emitir tokens para formularios ya firmados.
        """
        form = session.get(Form, form_id)
        if form is None:
            raise NotFound("Form", form_id)
        if form.signed_at is not None:
            raise AlreadySigned(form_id)

        hours = expiry_hours if expiry_hours is not None else get_settings().signing_token_expiry_hours
        now = datetime.utcnow()
        signing_token = SigningToken(
            form_id=form_id,
            token=str(uuid.uuid4()),
            expires_at=now + timedelta(hours=hours),
            is_used=False,
            created_at=now,
        )
        session.add(signing_token)
        session.commit()
        session.refresh(signing_token)

        logger.info(
            "signing_token_minted",
            form_id=form_id,
            token_prefix=token_prefix(signing_token.token),
            expires_at=signing_token.expires_at.isoformat()
        )
        return signing_token

    @staticmethod
    def validate(session: Session, token: str) -> SigningToken:
        """
        Devuelve el token con su formulario, proyecto y contacto cargados.

        No modifica nada; el navegador del firmante puede llamarlo las veces
        que necesite.
        """
        signing_token = (
            session.query(SigningToken)
            .options(
                joinedload(SigningToken.form)
                .joinedload(Form.project)
                .joinedload(Project.contact)
            )
            .filter(
                SigningToken.token == token,
                SigningToken.is_used.is_(False),
                SigningToken.expires_at > datetime.utcnow(),
            )
            .populate_existing()
            .first()
        )
        if signing_token is None:
            logger.info("signing_token_rejected", token_prefix=token_prefix(token))
            raise InvalidOrExpiredToken()
        return signing_token

    @staticmethod
    def consume(
        session: Session,
        token: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Marca el token como usado con un UPDATE condicional.

        Si otra request lo consumió antes (o venció entre medio) no se
        actualiza ninguna fila y se lanza InvalidOrExpiredToken. No hace
        commit: la transacción pertenece a quien llama.
        """
        now = datetime.utcnow()
        result = session.execute(
            update(SigningToken)
            .where(
                SigningToken.token == token,
                SigningToken.is_used.is_(False),
                SigningToken.expires_at > now,
            )
            .values(
                is_used=True,
                used_at=now,
                used_ip=ip,
                used_user_agent=user_agent,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("signing_token_consume_lost", token_prefix=token_prefix(token))
            raise InvalidOrExpiredToken()

    @staticmethod
    def invalidate_for_form(session: Session, form_id: int, except_token: Optional[str] = None) -> int:
        """Borra los tokens del formulario (salvo ``except_token``). No hace commit."""
        stmt = delete(SigningToken).where(SigningToken.form_id == form_id)
        if except_token is not None:
            stmt = stmt.where(SigningToken.token != except_token)
        result = session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    @staticmethod
    def purge_expired(session: Session, older_than: datetime) -> int:
        """
        Borra tokens nunca usados que vencieron antes de ``older_than``.

        Los tokens consumidos se conservan como registro de auditoría.
        """
        result = session.execute(
            delete(SigningToken)
            .where(
                SigningToken.is_used.is_(False),
                SigningToken.expires_at < older_than,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount
