"""Closed billing cycles of a client's support-hour allowance."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..services.timecalc import utcnow


class SupportHourLog(Base):
    __tablename__ = "support_hour_logs"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    allocated_minutes = Column(Integer, nullable=False)
    used_minutes = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    client = relationship("Client", back_populates="support_hour_logs")


__all__ = ["SupportHourLog"]
