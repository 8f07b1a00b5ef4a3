from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from projectsign.database import get_db
from projectsign.modules.forms.schemas.form_schemas import (
    SignatureSubmission, SignatureSubmissionResponse, SigningFormResponse
)
from projectsign.modules.forms.services.signature_service import SignatureService
from projectsign.modules.storage.services.signature_storage import (
    SignatureStorage, get_signature_storage
)

# Rutas públicas: el token del enlace es la única credencial
router = APIRouter(prefix="/sign-api", tags=["signing"])


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


@router.get("/{token}", response_model=SigningFormResponse)
def get_signing_form(token: str, db: Session = Depends(get_db)):
    """Formulario a firmar; no consume el token"""
    return SignatureService.get_signing_context(db, token)


@router.post("/{token}", response_model=SignatureSubmissionResponse)
def submit_signature(
    token: str,
    payload: SignatureSubmission,
    request: Request,
    db: Session = Depends(get_db),
    storage: SignatureStorage = Depends(get_signature_storage)
):
    SignatureService.submit_signature(
        db,
        storage,
        token,
        signer_name=payload.signerName,
        signature_data=payload.signatureData,
        amended_fields=payload.amendedFields,
        signer_ip=client_ip(request),
        signer_user_agent=request.headers.get("user-agent"),
    )
    return SignatureSubmissionResponse(success=True)
