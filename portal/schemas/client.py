"""Pydantic schemas for clients and their support-hour ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..core.statuses import CLIENT_STATUS_CHOICES, choice_pattern

CLIENT_STATUS_PATTERN = choice_pattern(CLIENT_STATUS_CHOICES)


class ClientCreate(BaseModel):
    company_name: str
    contact_email: str
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=CLIENT_STATUS_PATTERN)


class ClientUpdate(BaseModel):
    company_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=CLIENT_STATUS_PATTERN)


class ClientOut(BaseModel):
    id: int
    company_name: str
    contact_name: Optional[str] = None
    contact_email: str
    status: str
    notes: Optional[str] = None
    support_hours_per_month: int
    hours_used_this_month: int
    support_billing_cycle_start: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SupportHoursOut(BaseModel):
    client_id: int
    allocated_minutes: int
    used_minutes: int
    # May go negative when the client is over its allocation.
    remaining_minutes: int
    allocated_hours: float
    used_hours: float
    remaining_hours: float
    percentage_used: int
    over_allocation: bool
    billing_cycle_start: Optional[datetime] = None


class SupportAllocationUpdate(BaseModel):
    # Range is checked by the ledger so it surfaces as a 400.
    hours_per_month: float = Field(allow_inf_nan=False)


class RolloverRequest(BaseModel):
    notes: Optional[str] = None


class SupportHourLogOut(BaseModel):
    id: int
    client_id: int
    period_start: datetime
    period_end: datetime
    allocated_minutes: int
    used_minutes: int
    allocated_hours: float
    used_hours: float
    remaining_hours: float
    percentage_used: int
    notes: Optional[str] = None
