import secrets
import time
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from projectsign.errors import AlreadySigned, FormChanged, InvalidOrExpiredToken, ProjectSignError
from projectsign.modules.forms.models.form import Form
from projectsign.modules.forms.models.signing_token import SigningToken
from projectsign.modules.forms.repositories.form_repository import FormRepository
from projectsign.modules.forms.services.form_service import merge_amendments
from projectsign.modules.forms.services.integrity import compute_hash
from projectsign.modules.forms.services.signature_image import (
    decode_signature_image, validate_signer_name
)
from projectsign.modules.forms.services.token_service import TokenService, token_prefix
from projectsign.modules.storage.services.signature_storage import SignatureStorage
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


def signature_key(form_id: int) -> str:
    """Ruta de la imagen, única por intento: ``{form_id}/{ms}-{hex}.png``."""
    return f"{form_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.png"


class SignatureService:

    @staticmethod
    def get_signing_context(session: Session, token: str) -> Dict[str, Any]:
        """
        Datos que ve el firmante: contenido del formulario y nombres de
        proyecto y contacto, nada más.
        """
        signing_token = TokenService.validate(session, token)
        form = signing_token.form
        project = form.project
        contact = project.contact if project else None
        return {
            "id": form.id,
            "type": form.type,
            "data": form.data,
            "project_name": project.name if project else "",
            "contact_name": contact.name if contact else "",
        }

    @staticmethod
    def submit_signature(
        session: Session,
        storage: SignatureStorage,
        token: str,
        signer_name: str,
        signature_data: str,
        amended_fields: Optional[Dict[str, Any]] = None,
        signer_ip: Optional[str] = None,
        signer_user_agent: Optional[str] = None,
    ) -> None:
        """
        Única vía por la que un formulario pasa a firmado.

        1. valida nombre, imagen y enmiendas
        2. valida el token (sin consumirlo)
        3. combina las enmiendas con el contenido guardado
        4. calcula el hash sobre el contenido final
        5. sube la imagen (si falla, no se escribió nada)
        6. en una sola transacción: consume el token y firma el formulario,
           ambos con UPDATE condicional; si alguno no afecta filas se revierte
           todo y se borra la imagen subida

        Si el dueño editó el formulario después del paso 2 se lanza
        ``FormChanged`` y el token queda sin consumir para reintentar.
        """
        # 1) Validaciones de entrada
        name = validate_signer_name(signer_name)
        image_bytes = decode_signature_image(signature_data)

        # 2) Token vigente
        signing_token: SigningToken = TokenService.validate(session, token)
        form = signing_token.form
        form_id = form.id
        read_updated_at = form.updated_at

        # 3) Contenido final
        final_data = merge_amendments(form.type, form.data, amended_fields or {})

        # 4) Hash de integridad
        signature_hash = compute_hash(final_data)

        # Libera la transacción de lectura antes de la E/S externa
        session.rollback()

        # 5) Imagen de firma
        key = signature_key(form_id)
        signature_url = storage.upload(key, image_bytes, content_type="image/png")

        # 6) Consumo del token + firma, atómicos
        try:
            TokenService.consume(session, token, ip=signer_ip, user_agent=signer_user_agent)
            signed = FormRepository(session).mark_signed_if_unsigned(
                form_id,
                data=final_data,
                signature_url=signature_url,
                signature_hash=signature_hash,
                signed_by=name,
                signer_ip=signer_ip,
                signer_user_agent=signer_user_agent,
                signed_at=datetime.utcnow(),
                expected_updated_at=read_updated_at,
            )
            if not signed:
                raise SignatureService._write_conflict(session, form_id)
            TokenService.invalidate_for_form(session, form_id, except_token=token)
            session.commit()
        except ProjectSignError as e:
            session.rollback()
            SignatureService._discard_upload(storage, key)
            logger.info(
                "signature_rejected",
                form_id=form_id,
                token_prefix=token_prefix(token),
                reason=type(e).__name__
            )
            if isinstance(e, AlreadySigned):
                raise InvalidOrExpiredToken()
            raise
        except Exception:
            session.rollback()
            SignatureService._discard_upload(storage, key)
            raise

        logger.info(
            "form_signed",
            form_id=form_id,
            signature_hash=signature_hash,
            token_prefix=token_prefix(token)
        )

    @staticmethod
    def _discard_upload(storage: SignatureStorage, key: str) -> None:
        try:
            storage.delete(key)
        except OSError as e:
            logger.warning("signature_cleanup_failed", key=key, error=str(e))

    @staticmethod
    def _write_conflict(session: Session, form_id: int) -> ProjectSignError:
        """Distingue entre formulario ya firmado (o borrado) y formulario editado."""
        current = session.query(Form.signed_at).filter(Form.id == form_id).first()
        if current is None or current.signed_at is not None:
            return AlreadySigned(form_id)
        return FormChanged(form_id)
