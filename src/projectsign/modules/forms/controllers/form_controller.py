import asyncio
import contextvars
import functools

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from projectsign.config import get_settings
from projectsign.database import get_db
from projectsign.errors import DependencyFailure
from projectsign.modules.auth.dependencies import get_current_user_id
from projectsign.modules.forms.schemas.form_schemas import (
    FormResponse, FormUpdate, SendFormRequest, SendFormResponse
)
from projectsign.modules.forms.services.dispatch_service import DispatchService
from projectsign.modules.forms.services.form_service import FormService
from projectsign.modules.forms.services.integrity import integrity_status
from projectsign.modules.forms.services.pdf_service import PdfService
from projectsign.modules.notifications.services.notification_service import (
    NotificationService, get_notification_service
)
from projectsign.modules.storage.services.signature_storage import (
    SignatureStorage, get_signature_storage
)

router = APIRouter(prefix="/forms", tags=["forms"])


def form_response(form) -> FormResponse:
    response = FormResponse.model_validate(form)
    response.integrity_status = integrity_status(form)
    return response


@router.get("/{form_id}", response_model=FormResponse)
def get_form(
    form_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return form_response(FormService.get_form(db, current_user_id, form_id))


@router.patch("/{form_id}", response_model=FormResponse)
def update_form(
    form_id: int,
    payload: FormUpdate,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Edita un formulario; los formularios firmados no se pueden modificar"""
    form = FormService.update_form(db, current_user_id, form_id, payload.data)
    return form_response(form)


@router.delete("/{form_id}")
def delete_form(
    form_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Elimina un formulario sin firmar y sus enlaces de firma"""
    FormService.delete_form(db, current_user_id, form_id)
    return {"success": True}


@router.post("/{form_id}/send", response_model=SendFormResponse)
def send_form(
    form_id: int,
    payload: SendFormRequest,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service)
):
    outcome = DispatchService.send_form(
        db, notifications, current_user_id, form_id,
        payload.method, email=payload.email, phone=payload.phone
    )
    return SendFormResponse(
        signingUrl=outcome.signing_url,
        token=outcome.token,
        expiresAt=outcome.expires_at,
        dispatched=outcome.dispatched,
        dispatchError=outcome.dispatch_error,
    )


@router.get("/{form_id}/pdf")
async def download_pdf(
    form_id: int,
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: SignatureStorage = Depends(get_signature_storage)
):
    """
    Devuelve el PDF del formulario; el render tiene un tiempo máximo.

    La sesión solo se usa en ``prepare_export``; el render recibe valores
    ya cargados y corre en un hilo del executor.
    """
    job = await run_in_threadpool(PdfService.prepare_export, db, storage, current_user_id, form_id)

    timeout = get_settings().pdf_render_timeout_seconds
    loop = asyncio.get_running_loop()
    render = functools.partial(contextvars.copy_context().run, PdfService.render, job)
    try:
        document = await asyncio.wait_for(loop.run_in_executor(None, render), timeout=timeout)
    except asyncio.TimeoutError:
        raise DependencyFailure("pdf_renderer", f"PDF rendering timed out after {timeout:g}s")

    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'}
    )
