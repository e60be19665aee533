"""Schemas for tickets, their conversation and logged time."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.statuses import (
    TICKET_PRIORITY_CHOICES,
    TICKET_STATUS_CHOICES,
    TICKET_TYPE_CHOICES,
    choice_pattern,
)

TICKET_STATUS_PATTERN = choice_pattern(TICKET_STATUS_CHOICES)
TICKET_PRIORITY_PATTERN = choice_pattern(TICKET_PRIORITY_CHOICES)
TICKET_TYPE_PATTERN = choice_pattern(TICKET_TYPE_CHOICES)


class TicketCreate(BaseModel):
    title: str
    description: str
    type: Optional[str] = Field(default=None, pattern=TICKET_TYPE_PATTERN)
    priority: Optional[str] = Field(default=None, pattern=TICKET_PRIORITY_PATTERN)
    client_id: Optional[int] = None  # admins only; clients always file for their own tenant
    project_id: Optional[int] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0)


class TicketUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = Field(default=None, pattern=TICKET_TYPE_PATTERN)
    priority: Optional[str] = Field(default=None, pattern=TICKET_PRIORITY_PATTERN)
    status: Optional[str] = Field(default=None, pattern=TICKET_STATUS_PATTERN)
    estimated_minutes: Optional[int] = Field(default=None, ge=0)
    linear_issue_id: Optional[str] = None
    linear_issue_url: Optional[str] = None


class TicketOut(BaseModel):
    id: int
    client_id: int
    project_id: Optional[int] = None
    title: str
    description: str
    type: str
    priority: str
    status: str
    created_by: str
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    estimated_minutes: Optional[int] = None
    time_spent_minutes: int = 0
    linear_issue_id: Optional[str] = None
    linear_issue_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignRequest(BaseModel):
    assignee_id: str


class ResolveRequest(BaseModel):
    resolution: str
    close: bool = False


class StatusRequest(BaseModel):
    status: str = Field(pattern=TICKET_STATUS_PATTERN)


class CommentCreate(BaseModel):
    content: str
    is_internal: bool = False


class CommentOut(BaseModel):
    id: int
    ticket_id: int
    author_id: str
    author_role: str
    content: str
    is_internal: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TimeEntryCreate(BaseModel):
    # Range checks happen in the lifecycle layer so they surface as 400s.
    minutes: int
    description: Optional[str] = None
    count_towards_support_hours: bool = True


class TimeEntryUpdate(BaseModel):
    minutes: int
    description: Optional[str] = None


class TimeEntryOut(BaseModel):
    id: int
    ticket_id: int
    user_id: str
    minutes: int
    description: Optional[str] = None
    count_towards_support_hours: bool
    logged_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class TimeEntryList(BaseModel):
    entries: List[TimeEntryOut] = Field(default_factory=list)
    total_minutes: int = 0
    total_hours: float = 0.0
