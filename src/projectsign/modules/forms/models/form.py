from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from projectsign.database import Base


class FormType(PyEnum):
    QUOTE = "quote"
    WORK_APPROVAL = "work_approval"
    COMPLETION = "completion"
    PAYMENT = "payment"


FORM_TYPE_LABELS = {
    FormType.QUOTE: "הצעת מחיר",
    FormType.WORK_APPROVAL: "הזמנת עבודה",
    FormType.COMPLETION: "טופס הגשת עבודה",
    FormType.PAYMENT: "אישור תשלום",
}


class Form(Base):
    __tablename__ = 'forms'

    id = Column(Integer, primary_key=True)
    type = Column(
        Enum(FormType, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    data = Column(JSON, nullable=False)

    # Firma: se escriben juntos y una sola vez
    signature_url = Column(String, nullable=True)
    signature_hash = Column(String(64), nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signed_by = Column(String, nullable=True)
    signer_ip = Column(String, nullable=True)
    signer_user_agent = Column(String, nullable=True)

    # Envío (solo informativo)
    sent_at = Column(DateTime, nullable=True)
    sent_via = Column(String(16), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False)
    project = relationship("Project", back_populates="forms")

    signing_tokens = relationship(
        "SigningToken",
        back_populates="form",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
