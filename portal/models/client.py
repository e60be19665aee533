"""SQLAlchemy model for tenant organisations and their support allowance."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..services.timecalc import utcnow


class Client(Base):
    """A tenant organisation served by the agency.

    ``support_hours_per_month`` and ``hours_used_this_month`` are both stored in
    minutes despite their names. ``hours_used_this_month`` is a running counter
    maintained by the support-hour ledger, not recomputed on read.
    """

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    notes = Column(Text, nullable=True)

    support_hours_per_month = Column(Integer, nullable=False, default=0)
    hours_used_this_month = Column(Integer, nullable=False, default=0)
    support_billing_cycle_start = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    projects = relationship("Project", back_populates="client")
    tickets = relationship("Ticket", back_populates="client")
    support_hour_logs = relationship(
        "SupportHourLog",
        back_populates="client",
        order_by="SupportHourLog.period_start.desc()",
    )


__all__ = ["Client"]
