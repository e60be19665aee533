"""Pydantic schemas that describe project payloads for the API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.statuses import PROJECT_STATUS_CHOICES, choice_pattern
from .phase import PhaseOut

PROJECT_STATUS_PATTERN = choice_pattern(PROJECT_STATUS_CHOICES)


class ProjectCreate(BaseModel):
    client_id: int
    name: str
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=PROJECT_STATUS_PATTERN)
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=PROJECT_STATUS_PATTERN)
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class ProjectOut(BaseModel):
    id: int
    client_id: int
    name: str
    description: Optional[str] = None
    status: str
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    current_phase_id: Optional[int] = None
    phase_template_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    progress: int = 0

    class Config:
        from_attributes = True


class ProjectDetail(ProjectOut):
    phases: List[PhaseOut] = Field(default_factory=list)
