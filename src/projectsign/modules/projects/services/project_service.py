from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload

from projectsign.errors import AlreadySigned, NotFound, ValidationError
from projectsign.modules.forms.models.form import Form, FormType
from projectsign.modules.forms.models.signing_token import SigningToken
from projectsign.modules.projects.models.project import (
    Contact, Project, ProjectStatus, STATUS_TRANSITIONS
)
from projectsign.modules.projects.schemas.project_schemas import ProjectCreate, ProjectUpdate
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)


class ProjectService:

    @staticmethod
    def create_project(session: Session, user_id: int, data: ProjectCreate) -> Project:
        """
        Crea un proyecto en estado borrador, con su contacto si se indica
        """
        project = Project(
            user_id=user_id,
            name=data.name,
            description=data.description or None,
            status=ProjectStatus.DRAFT,
        )
        if data.contact is not None:
            project.contact = Contact(**data.contact.model_dump())
        session.add(project)
        session.commit()
        session.refresh(project)
        logger.info("project_created", project_id=project.id, user_id=user_id)
        return project

    @staticmethod
    def get_projects_by_user(session: Session, user_id: int) -> list[Project]:
        return (
            session.query(Project)
            .options(joinedload(Project.contact))
            .filter(Project.user_id == user_id)
            .order_by(Project.created_at.desc(), Project.id.desc())
            .all()
        )

    @staticmethod
    def get_owned_project(session: Session, project_id: int, user_id: int) -> Project:
        """
        Obtiene un proyecto del usuario; los proyectos ajenos se reportan
        como inexistentes
        """
        project = (
            session.query(Project)
            .options(joinedload(Project.contact))
            .filter(Project.id == project_id, Project.user_id == user_id)
            .first()
        )
        if project is None:
            raise NotFound("Project", project_id)
        return project

    @staticmethod
    def update_project(session: Session, project_id: int, user_id: int, data: ProjectUpdate) -> Project:
        """
        Edita nombre y descripción; si viene ``contact`` actualiza el contacto
        existente o lo crea.
        """
        project = ProjectService.get_owned_project(session, project_id, user_id)
        if data.name is not None:
            project.name = data.name
        if "description" in data.model_fields_set:
            project.description = data.description or None

        if data.contact is not None:
            fields = data.contact.model_dump()
            if project.contact is None:
                project.contact = Contact(**fields)
            else:
                for key, value in fields.items():
                    setattr(project.contact, key, value)

        session.commit()
        session.refresh(project)
        logger.info("project_updated", project_id=project.id, user_id=user_id)
        return project

    @staticmethod
    def delete_project(session: Session, project_id: int, user_id: int) -> None:
        """
        Borra el proyecto con su contacto, sus formularios y los tokens de
        firma de esos formularios.

        Un proyecto con algún formulario firmado no se borra: el DELETE del
        proyecto está condicionado a que no exista ninguno, y si no afecta
        filas se revierte todo.
        """
        project = ProjectService.get_owned_project(session, project_id, user_id)
        project_id = project.id
        unsigned_forms = select(Form.id).where(Form.project_id == project_id, Form.signed_at.is_(None))
        signed_forms = select(Form.id).where(Form.project_id == project_id, Form.signed_at.isnot(None))

        session.execute(
            delete(SigningToken)
            .where(SigningToken.form_id.in_(unsigned_forms))
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(Form)
            .where(Form.project_id == project_id, Form.signed_at.is_(None))
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(Contact)
            .where(Contact.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(Project)
            .where(Project.id == project_id, Project.user_id == user_id, ~signed_forms.exists())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            signed_id = session.scalar(signed_forms.limit(1))
            if signed_id is None:
                raise NotFound("Project", project_id)
            logger.info("project_delete_rejected_signed", project_id=project_id, form_id=signed_id)
            raise AlreadySigned(signed_id)

        session.commit()
        logger.info("project_deleted", project_id=project_id, user_id=user_id)

    @staticmethod
    def can_change_status(current: ProjectStatus, new_status: ProjectStatus) -> bool:
        return new_status in STATUS_TRANSITIONS.get(current, [])

    @staticmethod
    def change_status(session: Session, project_id: int, user_id: int,
                      new_status: ProjectStatus) -> Project:
        """
        Manual status change, checked against STATUS_TRANSITIONS
        """
        project = ProjectService.get_owned_project(session, project_id, user_id)
        if not ProjectService.can_change_status(project.status, new_status):
            raise ValidationError(
                f"Project cannot change from {project.status.value} to {new_status.value}"
            )
        previous = project.status
        project.status = new_status
        session.commit()
        session.refresh(project)
        logger.info(
            "project_status_changed",
            project_id=project.id,
            previous=previous.value,
            new=new_status.value
        )
        return project

    @staticmethod
    def status_after_form_created(form_type: FormType, data: dict) -> Optional[ProjectStatus]:
        """Estado al que pasa el proyecto cuando se crea un formulario de este tipo."""
        if form_type == FormType.WORK_APPROVAL:
            return ProjectStatus.APPROVED
        if form_type == FormType.COMPLETION:
            return ProjectStatus.COMPLETED
        if form_type == FormType.PAYMENT and data.get("remaining_balance") == 0:
            return ProjectStatus.PAID
        return None

    @staticmethod
    def apply_form_created(session: Session, project: Project, form_type: FormType, data: dict) -> None:
        """Side effect of form creation. Does not commit."""
        new_status = ProjectService.status_after_form_created(form_type, data)
        if new_status is not None and project.status != new_status:
            logger.info(
                "project_status_changed",
                project_id=project.id,
                previous=project.status.value,
                new=new_status.value,
                reason=f"{form_type.value}_created"
            )
            project.status = new_status

    @staticmethod
    def apply_quote_sent(session: Session, project: Project) -> None:
        """Un proyecto en borrador pasa a 'quote_sent' cuando se envía su cotización."""
        if project.status == ProjectStatus.DRAFT:
            project.status = ProjectStatus.QUOTE_SENT
            session.commit()
            logger.info(
                "project_status_changed",
                project_id=project.id,
                previous=ProjectStatus.DRAFT.value,
                new=ProjectStatus.QUOTE_SENT.value,
                reason="quote_sent"
            )
