"""Time logged against tickets.

Every write here moves two counters along with the entry itself (see
``services.support_hours``): the ticket's ``time_spent_minutes`` and, for
entries that count toward support hours, the client's
``hours_used_this_month``. All three changes are committed together.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import Forbidden, NotFound, ValidationFailed
from ..core.security import Principal
from ..models.ticket import Ticket, TicketTimeEntry
from ..services import support_hours
from ..services.timecalc import utcnow
from .tickets import get_ticket

logger = logging.getLogger(__name__)

MIN_ENTRY_MINUTES = 1
MAX_ENTRY_MINUTES = 24 * 60
MAX_DESCRIPTION_LENGTH = 1000


def _minutes(value: object) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailed("Minutes must be a whole number")
    if value < MIN_ENTRY_MINUTES or value > MAX_ENTRY_MINUTES:
        raise ValidationFailed(
            f"Minutes must be between {MIN_ENTRY_MINUTES} and {MAX_ENTRY_MINUTES}",
            details={"minutes": value},
        )
    return value


def _description(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationFailed(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return value or None


def _require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise Forbidden("Only admins can log time")


def list_time_entries(db: Session, ticket_id: int, principal: Principal) -> tuple[list[TicketTimeEntry], int]:
    """Live entries on a ticket, newest first, plus their minute total."""
    ticket = get_ticket(db, ticket_id, principal)
    entries = db.execute(
        select(TicketTimeEntry)
        .where(TicketTimeEntry.ticket_id == ticket.id, TicketTimeEntry.deleted_at.is_(None))
        .order_by(TicketTimeEntry.logged_at.desc(), TicketTimeEntry.id.desc())
    ).scalars().all()
    return entries, sum(entry.minutes for entry in entries)


def get_time_entry(db: Session, entry_id: int, *, ticket_id: int | None = None) -> TicketTimeEntry:
    stmt = select(TicketTimeEntry).where(
        TicketTimeEntry.id == entry_id,
        TicketTimeEntry.deleted_at.is_(None),
    )
    if ticket_id is not None:
        stmt = stmt.where(TicketTimeEntry.ticket_id == ticket_id)
    entry = db.execute(stmt).scalars().first()
    if entry is None:
        raise NotFound("Time entry not found")
    return entry


def log_time(
    db: Session,
    ticket_id: int,
    principal: Principal,
    minutes: object,
    description: str | None = None,
    count_towards_support_hours: bool = True,
) -> TicketTimeEntry:
    _require_admin(principal)
    minutes = _minutes(minutes)
    description = _description(description)
    ticket = get_ticket(db, ticket_id, principal)
    entry = TicketTimeEntry(
        ticket_id=ticket.id,
        user_id=principal.user_id,
        minutes=minutes,
        description=description,
        count_towards_support_hours=bool(count_towards_support_hours),
        logged_at=utcnow(),
    )
    db.add(entry)
    db.flush()
    support_hours.apply_entry_created(db, ticket, entry)
    db.commit()
    db.refresh(entry)
    logger.info(
        "time_entry.logged",
        extra={
            "extra_data": {
                "ticket_id": ticket.id,
                "client_id": ticket.client_id,
                "entry_id": entry.id,
                "minutes": entry.minutes,
                "counted": entry.count_towards_support_hours,
            }
        },
    )
    return entry


def update_time_entry(
    db: Session,
    entry_id: int,
    principal: Principal,
    minutes: object,
    description: str | None = None,
    *,
    ticket_id: int | None = None,
) -> TicketTimeEntry:
    """Change an entry's minutes; only the difference reaches the counters."""
    _require_admin(principal)
    minutes = _minutes(minutes)
    description = _description(description)
    entry = get_time_entry(db, entry_id, ticket_id=ticket_id)
    ticket: Ticket = get_ticket(db, entry.ticket_id, principal)
    old_minutes = entry.minutes
    entry.minutes = minutes
    # An omitted description keeps the current text; it is not cleared.
    if description is not None:
        entry.description = description
    db.flush()
    delta = support_hours.apply_entry_updated(db, ticket, entry, old_minutes)
    db.commit()
    db.refresh(entry)
    logger.info(
        "time_entry.updated",
        extra={"extra_data": {"ticket_id": ticket.id, "entry_id": entry.id, "delta": delta}},
    )
    return entry


def delete_time_entry(db: Session, entry_id: int, principal: Principal, *, ticket_id: int | None = None) -> None:
    """Soft-delete an entry and take its minutes back off the counters."""
    _require_admin(principal)
    entry = get_time_entry(db, entry_id, ticket_id=ticket_id)
    ticket = get_ticket(db, entry.ticket_id, principal)
    entry.deleted_at = utcnow()
    db.flush()
    support_hours.apply_entry_deleted(db, ticket, entry)
    db.commit()
    logger.info(
        "time_entry.deleted",
        extra={"extra_data": {"ticket_id": ticket.id, "entry_id": entry.id, "minutes": entry.minutes}},
    )
