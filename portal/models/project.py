"""SQLAlchemy model for client projects."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..services.timecalc import utcnow


class Project(Base):
    """Unit of delivery work for a single client.

    ``current_phase_id`` is a plain pointer rather than a foreign key so a phase
    can be hard-deleted while the project row clears the reference itself.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="planning", index=True)
    start_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)
    current_phase_id = Column(Integer, nullable=True)
    phase_template_id = Column(Integer, ForeignKey("phase_templates.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    client = relationship("Client", back_populates="projects")
    phases = relationship(
        "ProjectPhase",
        back_populates="project",
        order_by="ProjectPhase.order_index",
        cascade="all, delete-orphan",
    )
    tickets = relationship("Ticket", back_populates="project")


__all__ = ["Project"]
