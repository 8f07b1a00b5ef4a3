# src/projectsign/modules/forms/models/signing_token.py

from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from projectsign.database import Base


class SigningToken(Base):
    __tablename__ = "signing_tokens"

    id          = Column(Integer, primary_key=True)
    form_id     = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    token       = Column(String(64), unique=True, nullable=False, index=True)
    expires_at  = Column(DateTime, nullable=False)
    is_used     = Column(Boolean, default=False, nullable=False)
    used_at     = Column(DateTime, nullable=True)
    used_ip     = Column(String, nullable=True)
    used_user_agent = Column(String, nullable=True)
    created_at  = Column(DateTime, default=datetime.utcnow, nullable=False)

    form = relationship("Form", back_populates="signing_tokens")
