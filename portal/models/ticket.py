"""SQLAlchemy models for support tickets, their comments and time entries."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..services.timecalc import utcnow


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="general_support")
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(30), nullable=False, default="open", index=True)

    created_by = Column(String(255), nullable=False)
    assigned_to = Column(String(255), nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(255), nullable=True)
    resolution = Column(Text, nullable=True)

    estimated_minutes = Column(Integer, nullable=True)
    # Running total of non-deleted time entries, kept by the ledger.
    time_spent_minutes = Column(Integer, nullable=False, default=0)

    linear_issue_id = Column(String(255), nullable=True)
    linear_issue_url = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    client = relationship("Client", back_populates="tickets")
    project = relationship("Project", back_populates="tickets")
    comments = relationship("TicketComment", back_populates="ticket", order_by="TicketComment.created_at")
    time_entries = relationship("TicketTimeEntry", back_populates="ticket")


class TicketComment(Base):
    """A reply on a ticket. Internal notes share the table and differ only by flag."""

    __tablename__ = "ticket_comments"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    author_id = Column(String(255), nullable=False, index=True)
    author_role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    ticket = relationship("Ticket", back_populates="comments")


class TicketTimeEntry(Base):
    __tablename__ = "ticket_time_entries"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    minutes = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    count_towards_support_hours = Column(Boolean, nullable=False, default=True)
    logged_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    ticket = relationship("Ticket", back_populates="time_entries")


__all__ = ["Ticket", "TicketComment", "TicketTimeEntry"]
