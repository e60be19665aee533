"""Schemas for project phases and reusable phase templates."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.statuses import PHASE_STATUS_CHOICES, choice_pattern

PHASE_STATUS_PATTERN = choice_pattern(PHASE_STATUS_CHOICES)
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class PhaseCreate(BaseModel):
    name: str
    order_index: int = Field(ge=0)
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=PHASE_STATUS_PATTERN)


class PhaseUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=PHASE_STATUS_PATTERN)
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PhaseOut(BaseModel):
    id: int
    project_id: int
    name: str
    description: Optional[str] = None
    status: str
    order_index: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ApplyTemplateRequest(BaseModel):
    template_id: int


class ReorderRequest(BaseModel):
    phase_ids: List[int]


class TemplatePhaseIn(BaseModel):
    name: str
    description: Optional[str] = None
    order_index: Optional[int] = Field(default=None, ge=0)
    estimated_days: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class TemplatePhaseOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    order_index: int
    estimated_days: Optional[int] = None
    color: Optional[str] = None

    class Config:
        from_attributes = True


class PhaseTemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_default: bool = False
    phases: List[TemplatePhaseIn] = Field(default_factory=list)


class PhaseTemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None
    # Omitted keeps the current phases; a list replaces them.
    phases: Optional[List[TemplatePhaseIn]] = None


class PhaseTemplateOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime
    phases: List[TemplatePhaseOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
