from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from projectsign.config import get_settings
from projectsign.errors import AlreadySigned, ValidationError
from projectsign.modules.forms.models.form import FORM_TYPE_LABELS, FormType
from projectsign.modules.forms.repositories.form_repository import FormRepository
from projectsign.modules.forms.services.form_service import FormService
from projectsign.modules.forms.services.token_service import TokenService
from projectsign.modules.notifications.services.notification_service import NotificationService
from projectsign.modules.projects.services.project_service import ProjectService
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SendOutcome:
    signing_url: str
    token: str
    expires_at: datetime
    dispatched: Optional[bool] = None
    dispatch_error: Optional[str] = None


def build_signing_url(token: str, app_url: Optional[str] = None) -> str:
    base = (app_url or get_settings().app_url).rstrip("/")
    return f"{base}/sign/{token}"


class DispatchService:

    @staticmethod
    def send_form(
        session: Session,
        notifications: NotificationService,
        user_id: int,
        form_id: int,
        method: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> SendOutcome:
        """
        Genera un enlace de firma y, para email/sms, lo envía al cliente.

        Un fallo del proveedor no invalida el enlace: se informa por separado
        para que el propietario pueda compartirlo a mano.
        """
        form = FormService.get_form(session, user_id, form_id)
        if form.signed_at is not None:
            raise AlreadySigned(form_id)
        if method == "email" and not email:
            raise ValidationError("Email is required for method 'email'")
        if method == "sms" and not phone:
            raise ValidationError("Phone is required for method 'sms'")

        project = form.project
        project_name = project.name if project else ""
        contact_name = project.contact.name if project and project.contact else None
        form_type = form.type

        signing_token = TokenService.mint(session, form_id)
        outcome = SendOutcome(
            signing_url=build_signing_url(signing_token.token),
            token=signing_token.token,
            expires_at=signing_token.expires_at,
        )
        if method == "link":
            return outcome

        label = FORM_TYPE_LABELS[form_type]
        if method == "email":
            result = notifications.send_signing_link_email(
                email, label, project_name, outcome.signing_url, contact_name=contact_name
            )
        else:
            result = notifications.send_signing_link_sms(
                phone, label, project_name, outcome.signing_url
            )

        outcome.dispatched = result.success
        if not result.success:
            outcome.dispatch_error = result.error
            logger.warning("dispatch_failed", form_id=form_id, method=method, error=result.error)
            return outcome

        FormRepository(session).record_dispatch(form_id, method)
        if form_type == FormType.QUOTE:
            ProjectService.apply_quote_sent(session, FormService.get_form(session, user_id, form_id).project)
        logger.info("form_dispatched", form_id=form_id, method=method)
        return outcome
