from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from projectsign.database import Base


class ProjectStatus(PyEnum):
    DRAFT = "draft"
    QUOTE_SENT = "quote_sent"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


# Estados a los que puede pasar cada estado mediante un cambio manual
STATUS_TRANSITIONS = {
    ProjectStatus.DRAFT: [ProjectStatus.QUOTE_SENT, ProjectStatus.CANCELLED],
    ProjectStatus.QUOTE_SENT: [ProjectStatus.APPROVED, ProjectStatus.CANCELLED],
    ProjectStatus.APPROVED: [ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED],
    ProjectStatus.IN_PROGRESS: [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED],
    ProjectStatus.COMPLETED: [ProjectStatus.PAID],
    ProjectStatus.PAID: [],
    ProjectStatus.CANCELLED: [ProjectStatus.DRAFT],
}


class Project(Base):
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(ProjectStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ProjectStatus.DRAFT
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    user = relationship("User", back_populates="projects")

    contact = relationship("Contact", back_populates="project", uselist=False, cascade="all, delete-orphan")
    forms = relationship("Form", back_populates="project", order_by="Form.created_at", cascade="all, delete-orphan")


class Contact(Base):
    __tablename__ = 'contacts'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, unique=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="contact")
