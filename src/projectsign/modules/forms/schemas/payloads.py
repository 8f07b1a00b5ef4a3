"""
Esquemas de contenido por tipo de formulario.

Cada tipo de documento tiene su propio modelo; ``PAYLOAD_SCHEMAS`` permite
validar el contenido a partir del discriminante ``type`` del formulario.
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from projectsign.modules.forms.models.form import FormType

ISRAELI_PHONE_RE = re.compile(r"^0(5[0-9]|[2-4]|[8-9]|7[0-9])-?\d{3}-?\d{4}$")

VAT_RATE = 0.17
FEEDBACK_MAX_LENGTH = 1000

Rating = int


class QuoteItem(BaseModel):
    id: str
    description: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit: str
    unit_price: float = Field(ge=0)
    total: float


class QuoteData(BaseModel):
    items: List[QuoteItem] = Field(min_length=1)
    subtotal: float
    vat_rate: float = VAT_RATE
    vat_amount: float
    total: float
    valid_until: str
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_terms: Optional[str] = None


class WorkApprovalData(BaseModel):
    site_name: str = Field(min_length=1)
    quote_reference: Optional[str] = None
    start_date: str = Field(min_length=1)
    work_details: str = Field(min_length=1)
    notes: Optional[str] = None
    additions: Optional[str] = None
    contact_name: str = Field(min_length=1)
    contact_phone: str
    infrastructure_declaration: bool

    @field_validator("contact_phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if not ISRAELI_PHONE_RE.match(value):
            raise ValueError("מספר טלפון לא תקין")
        return value

    @field_validator("infrastructure_declaration")
    @classmethod
    def must_accept_declaration(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("יש לאשר את ההצהרה לגבי תשתיות")
        return value


class CompletionData(BaseModel):
    site_name: str = Field(min_length=1)
    order_number: Optional[str] = None
    work_date: str = Field(min_length=1)
    satisfaction_overall: Rating = Field(default=5, ge=1, le=5)
    satisfaction_site_conduct: Rating = Field(default=5, ge=1, le=5)
    satisfaction_work_quality: Rating = Field(default=5, ge=1, le=5)
    satisfaction_appearance: Rating = Field(default=5, ge=1, le=5)
    satisfaction_worker_behavior: Rating = Field(default=5, ge=1, le=5)
    feedback_notes: Optional[str] = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)
    legal_disclaimer_accepted: bool

    @field_validator("legal_disclaimer_accepted")
    @classmethod
    def must_accept_disclaimer(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("יש לאשר את סעיף ההגנה והיעדר טענות עתידיות")
        return value


class PaymentData(BaseModel):
    completion_id: str
    amount_due: float = Field(gt=0)
    amount_paid: float = Field(gt=0)
    payment_method: Literal["cash", "check", "transfer", "credit", "bit"]
    reference_number: Optional[str] = None
    paid_at: str
    receipt_number: Optional[str] = None
    remaining_balance: float = Field(ge=0)
    notes: Optional[str] = None


class CompletionAmendments(BaseModel):
    """Campos que el firmante (no el propietario) puede fijar al firmar."""

    model_config = {"extra": "forbid"}

    satisfaction_overall: Optional[Rating] = Field(default=None, ge=1, le=5)
    satisfaction_site_conduct: Optional[Rating] = Field(default=None, ge=1, le=5)
    satisfaction_work_quality: Optional[Rating] = Field(default=None, ge=1, le=5)
    satisfaction_appearance: Optional[Rating] = Field(default=None, ge=1, le=5)
    satisfaction_worker_behavior: Optional[Rating] = Field(default=None, ge=1, le=5)
    feedback_notes: Optional[str] = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)


PAYLOAD_SCHEMAS = {
    FormType.QUOTE: QuoteData,
    FormType.WORK_APPROVAL: WorkApprovalData,
    FormType.COMPLETION: CompletionData,
    FormType.PAYMENT: PaymentData,
}

# Solo los tipos listados aceptan enmiendas del firmante
AMENDMENT_SCHEMAS = {
    FormType.COMPLETION: CompletionAmendments,
}
