from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from projectsign.database import get_db
from projectsign.modules.auth.dependencies import get_current_user_id
from projectsign.modules.forms.controllers.form_controller import form_response
from projectsign.modules.forms.schemas.form_schemas import (
    FormCreate, FormListResponse, FormResponse
)
from projectsign.modules.forms.services.form_service import FormService
from projectsign.modules.projects.schemas.project_schemas import (
    ProjectCreate, ProjectListResponse, ProjectResponse, ProjectStatusUpdate, ProjectUpdate
)
from projectsign.modules.projects.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=ProjectListResponse)
def list_projects(
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    projects = ProjectService.get_projects_by_user(db, current_user_id)
    return ProjectListResponse(projects=projects, total=len(projects))


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return ProjectService.create_project(db, current_user_id, payload)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return ProjectService.get_owned_project(db, project_id, current_user_id)


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return ProjectService.update_project(db, project_id, current_user_id, payload)


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Borra el proyecto; no se permite si tiene formularios firmados"""
    ProjectService.delete_project(db, project_id, current_user_id)
    return {"success": True}


@router.patch("/{project_id}/status", response_model=ProjectResponse)
def change_project_status(
    project_id: int,
    payload: ProjectStatusUpdate,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Cambio manual de estado según la tabla de transiciones"""
    return ProjectService.change_status(db, project_id, current_user_id, payload.status)


@router.get("/{project_id}/forms", response_model=FormListResponse)
def list_project_forms(
    project_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    forms = FormService.get_forms_by_project(db, current_user_id, project_id)
    return FormListResponse(forms=[form_response(f) for f in forms], total=len(forms))


@router.post("/{project_id}/forms", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
def create_form(
    project_id: int,
    payload: FormCreate,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    form = FormService.create_form(db, current_user_id, project_id, payload.type, payload.data)
    return form_response(form)
