from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from projectsign.errors import AlreadySigned, NotFound, ValidationError
from projectsign.modules.forms.models.form import Form, FormType
from projectsign.modules.forms.repositories.form_repository import FormRepository
from projectsign.modules.forms.schemas.payloads import AMENDMENT_SCHEMAS, PAYLOAD_SCHEMAS
from projectsign.modules.forms.services.token_service import TokenService
from projectsign.modules.projects.services.project_service import ProjectService
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


def _validation_details(exc: PydanticValidationError) -> list:
    return [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]


def validate_payload(form_type: FormType, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Valida el contenido contra el esquema del tipo y devuelve la versión
    normalizada que se guarda (y sobre la que se calcula el hash).
    """
    schema = PAYLOAD_SCHEMAS[form_type]
    try:
        return schema.model_validate(data).model_dump(mode="json")
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {form_type.value} data", _validation_details(e))


def merge_amendments(form_type: FormType, data: Dict[str, Any], amended: Dict[str, Any]) -> Dict[str, Any]:
    """
    Aplica los campos que el firmante puede modificar.

    Solo los tipos presentes en AMENDMENT_SCHEMAS aceptan enmiendas; el
    resultado se vuelve a validar con el esquema completo del tipo.
    """
    if not amended:
        return dict(data)
    schema = AMENDMENT_SCHEMAS.get(form_type)
    if schema is None:
        raise ValidationError(f"Form type {form_type.value} does not accept amended fields")
    try:
        changes = schema.model_validate(amended).model_dump(mode="json", exclude_none=True)
    except PydanticValidationError as e:
        raise ValidationError("Invalid amended fields", _validation_details(e))
    merged = dict(data)
    merged.update(changes)
    return validate_payload(form_type, merged)


class FormService:

    @staticmethod
    def create_form(session: Session, user_id: int, project_id: int,
                    form_type: FormType, data: Dict[str, Any]) -> Form:
        """
        Crea un formulario en borrador y aplica el cambio de estado del proyecto
        que corresponda al tipo
        """
        project = ProjectService.get_owned_project(session, project_id, user_id)
        payload = validate_payload(form_type, data)

        form = Form(project_id=project.id, type=form_type, data=payload)
        session.add(form)
        ProjectService.apply_form_created(session, project, form_type, payload)
        session.commit()
        session.refresh(form)

        logger.info("form_created", form_id=form.id, project_id=project.id, type=form_type.value)
        return form

    @staticmethod
    def get_form(session: Session, user_id: int, form_id: int) -> Form:
        form = FormRepository(session).find_owned(form_id, user_id)
        if form is None:
            raise NotFound("Form", form_id)
        return form

    @staticmethod
    def get_forms_by_project(session: Session, user_id: int, project_id: int) -> list[Form]:
        project = ProjectService.get_owned_project(session, project_id, user_id)
        return FormRepository(session).find_by_project(project.id)

    @staticmethod
    def update_form(session: Session, user_id: int, form_id: int, data: Dict[str, Any]) -> Form:
        """
        Edita el contenido de un formulario sin firmar.

        El chequeo de firma va dentro del UPDATE, así una firma que llega en
        paralelo no puede quedar con datos distintos a los firmados.
        """
        repo = FormRepository(session)
        form = FormService.get_form(session, user_id, form_id)
        if form.signed_at is not None:
            raise AlreadySigned(form_id)

        payload = validate_payload(form.type, data)
        if not repo.update_data_if_unsigned(form_id, payload):
            session.rollback()
            logger.info("form_edit_rejected_signed", form_id=form_id)
            raise AlreadySigned(form_id)
        session.commit()

        logger.info("form_updated", form_id=form_id)
        return FormService.get_form(session, user_id, form_id)

    @staticmethod
    def delete_form(session: Session, user_id: int, form_id: int) -> None:
        """
        Borra un formulario sin firmar junto con todos sus tokens de firma
        """
        repo = FormRepository(session)
        form = FormService.get_form(session, user_id, form_id)
        if form.signed_at is not None:
            raise AlreadySigned(form_id)

        TokenService.invalidate_for_form(session, form_id)
        if not repo.delete_if_unsigned(form_id):
            session.rollback()
            logger.info("form_delete_rejected_signed", form_id=form_id)
            raise AlreadySigned(form_id)
        session.commit()

        logger.info("form_deleted", form_id=form_id)
