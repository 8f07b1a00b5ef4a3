from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from projectsign.modules.forms.models.form import FormType


class FormCreate(BaseModel):
    type: FormType
    data: Dict[str, Any]


class FormUpdate(BaseModel):
    data: Dict[str, Any]


class FormResponse(BaseModel):
    id: int
    project_id: int
    type: FormType
    data: Dict[str, Any]
    signature_url: Optional[str] = None
    signature_hash: Optional[str] = None
    signed_at: Optional[datetime] = None
    signed_by: Optional[str] = None
    signer_ip: Optional[str] = None
    signer_user_agent: Optional[str] = None
    sent_at: Optional[datetime] = None
    sent_via: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    integrity_status: Literal["unsigned", "valid", "tampered"] = "unsigned"

    model_config = {"from_attributes": True}


class FormListResponse(BaseModel):
    forms: List[FormResponse]
    total: int


class SendFormRequest(BaseModel):
    method: Literal["link", "email", "sms"]
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class SendFormResponse(BaseModel):
    signingUrl: str
    token: str
    expiresAt: datetime
    dispatched: Optional[bool] = None
    dispatchError: Optional[str] = None


class SigningFormResponse(BaseModel):
    id: int
    type: FormType
    data: Dict[str, Any]
    project_name: str
    contact_name: str


class SignatureSubmission(BaseModel):
    signerName: str = Field(max_length=100)
    signatureData: str = Field(min_length=1)
    amendedFields: Optional[Dict[str, Any]] = None


class SignatureSubmissionResponse(BaseModel):
    success: bool = True
