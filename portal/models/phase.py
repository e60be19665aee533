"""Roadmap models: per-project phases and reusable phase templates."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..services.timecalc import utcnow


class ProjectPhase(Base):
    """One ordered step of a project's roadmap. Removed with a hard delete."""

    __tablename__ = "project_phases"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    order_index = Column(Integer, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    project = relationship("Project", back_populates="phases")


class PhaseTemplate(Base):
    __tablename__ = "phase_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    phases = relationship(
        "TemplatePhase",
        back_populates="template",
        order_by="TemplatePhase.order_index",
        cascade="all, delete-orphan",
    )


class TemplatePhase(Base):
    __tablename__ = "template_phases"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("phase_templates.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False)
    estimated_days = Column(Integer, nullable=True)
    color = Column(String(7), nullable=True)

    template = relationship("PhaseTemplate", back_populates="phases")


__all__ = ["PhaseTemplate", "ProjectPhase", "TemplatePhase"]
