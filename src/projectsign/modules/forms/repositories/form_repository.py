from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, joinedload

from projectsign.modules.forms.models.form import Form
from projectsign.modules.projects.models.project import Project


class FormRepository:
    """
    Acceso a la tabla de formularios.

    Toda escritura sobre un formulario se hace con una única sentencia
    condicionada a ``signed_at IS NULL``; el número de filas afectadas indica
    si el formulario seguía sin firmar en ese instante.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_owned(self, form_id: int, user_id: int) -> Optional[Form]:
        return (
            self.db
            .query(Form)
            .join(Project, Form.project_id == Project.id)
            .options(joinedload(Form.project).joinedload(Project.contact))
            .filter(Form.id == form_id, Project.user_id == user_id)
            .populate_existing()
            .first()
        )

    def find_by_project(self, project_id: int) -> List[Form]:
        return (
            self.db
            .query(Form)
            .filter(Form.project_id == project_id)
            .order_by(Form.created_at.asc(), Form.id.asc())
            .all()
        )

    def update_data_if_unsigned(self, form_id: int, data: Dict[str, Any]) -> bool:
        result = self.db.execute(
            update(Form)
            .where(Form.id == form_id, Form.signed_at.is_(None))
            .values(data=data, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_signed_if_unsigned(
        self,
        form_id: int,
        data: Dict[str, Any],
        signature_url: str,
        signature_hash: str,
        signed_by: str,
        signer_ip: Optional[str],
        signer_user_agent: Optional[str],
        signed_at: datetime,
        expected_updated_at: Optional[datetime],
    ) -> bool:
        """
        Firma el formulario solo si sigue sin firmar y nadie lo editó desde
        que se leyó (``updated_at`` igual al leído).
        """
        if expected_updated_at is None:
            unchanged = Form.updated_at.is_(None)
        else:
            unchanged = Form.updated_at == expected_updated_at
        result = self.db.execute(
            update(Form)
            .where(Form.id == form_id, Form.signed_at.is_(None), unchanged)
            .values(
                data=data,
                signature_url=signature_url,
                signature_hash=signature_hash,
                signed_at=signed_at,
                signed_by=signed_by,
                signer_ip=signer_ip,
                signer_user_agent=signer_user_agent,
                updated_at=signed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete_if_unsigned(self, form_id: int) -> bool:
        result = self.db.execute(
            delete(Form)
            .where(Form.id == form_id, Form.signed_at.is_(None))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_dispatch(self, form_id: int, channel: str) -> None:
        self.db.execute(
            update(Form)
            .where(Form.id == form_id)
            .values(sent_at=datetime.utcnow(), sent_via=channel, updated_at=Form.updated_at)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
