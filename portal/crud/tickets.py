"""Ticket lifecycle: creation, assignment, resolution and status changes.

Statuses are ``open``, ``in_progress``, ``waiting_on_client``, ``resolved`` and
``closed``. Admins may set any of them directly; the portal does not impose a
transition graph. The rules that *are* enforced live here:

* claiming needs an unassigned ``open`` ticket and never changes the status;
* only the current assignee can unclaim, and not once the ticket is resolved
  or closed;
* resolving needs a resolution summary and stamps ``resolved_at``/``resolved_by``;
* a client reply on a ``waiting_on_client`` ticket moves it back to
  ``in_progress`` (see ``crud.comments``).

Every function takes the calling ``Principal`` and checks role and tenant
before touching the row.
"""

from __future__ import annotations

import logging

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session

from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.security import Principal
from ..core.statuses import (
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_TYPE,
    TICKET_PRIORITY_CHOICES,
    TICKET_STATUS_CHOICES,
    TICKET_STATUS_CLOSED,
    TICKET_STATUS_OPEN,
    TICKET_STATUS_RESOLVED,
    TICKET_TERMINAL_STATUSES,
    TICKET_TYPE_CHOICES,
    normalize_choice,
)
from ..models.ticket import Ticket
from ..services.timecalc import utcnow
from .clients import get_client
from .projects import get_project

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255


def _log(event: str, ticket: Ticket, principal: Principal, **fields: object) -> None:
    data = {"ticket_id": ticket.id, "client_id": ticket.client_id, "actor": principal.user_id}
    data.update(fields)
    logger.info(event, extra={"extra_data": data})


def _choice(value: str | None, choices: tuple[str, ...], field: str) -> str:
    try:
        return normalize_choice(value, choices, field=field)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc


def _require_admin(principal: Principal, action: str) -> None:
    if not principal.is_admin:
        raise Forbidden(f"Only admins can {action}")


def list_tickets(
    db: Session,
    principal: Principal,
    *,
    status: str | None = None,
    priority: str | None = None,
    client_id: int | None = None,
    project_id: int | None = None,
    assigned_to: str | None = None,
    limit: int = 100,
    offset: int = 0,
):
    stmt = select(Ticket).where(Ticket.deleted_at.is_(None))
    if principal.is_client:
        stmt = stmt.where(Ticket.client_id == principal.client_id)
    elif client_id is not None:
        stmt = stmt.where(Ticket.client_id == client_id)
    if status:
        stmt = stmt.where(Ticket.status == _choice(status, TICKET_STATUS_CHOICES, "ticket status"))
    if priority:
        stmt = stmt.where(Ticket.priority == _choice(priority, TICKET_PRIORITY_CHOICES, "ticket priority"))
    if project_id is not None:
        stmt = stmt.where(Ticket.project_id == project_id)
    if assigned_to:
        stmt = stmt.where(Ticket.assigned_to == assigned_to)
    stmt = stmt.order_by(desc(Ticket.created_at), desc(Ticket.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_ticket(db: Session, ticket_id: int, principal: Principal | None = None) -> Ticket:
    ticket = db.execute(
        select(Ticket).where(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
    ).scalars().first()
    if ticket is None:
        raise NotFound("Ticket not found")
    if principal is not None and not principal.can_access_client(ticket.client_id):
        raise Forbidden("You do not have access to this ticket")
    return ticket


def _resolve_ticket_client(db: Session, principal: Principal, payload: dict) -> tuple[int, int | None]:
    project_id = payload.get("project_id")
    if project_id is not None:
        project = get_project(db, int(project_id), principal)
        return project.client_id, project.id
    if principal.is_client:
        return principal.client_id, None
    if payload.get("client_id") is None:
        raise ValidationFailed("client_id or project_id is required")
    client = get_client(db, int(payload["client_id"]))
    return client.id, None


def create_ticket(db: Session, principal: Principal, payload: dict) -> Ticket:
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    if not title or not description:
        raise ValidationFailed("Title and description are required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationFailed(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    client_id, project_id = _resolve_ticket_client(db, principal, payload)
    ticket = Ticket(
        client_id=client_id,
        project_id=project_id,
        title=title,
        description=description,
        type=_choice(payload.get("type") or DEFAULT_TICKET_TYPE, TICKET_TYPE_CHOICES, "ticket type"),
        priority=_choice(payload.get("priority") or DEFAULT_TICKET_PRIORITY, TICKET_PRIORITY_CHOICES, "ticket priority"),
        status=TICKET_STATUS_OPEN,
        created_by=principal.user_id,
        estimated_minutes=payload.get("estimated_minutes"),
        time_spent_minutes=0,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    _log("ticket.created", ticket, principal, priority=ticket.priority)
    return ticket


def update_ticket(db: Session, ticket_id: int, principal: Principal, payload: dict) -> Ticket:
    _require_admin(principal, "update tickets")
    ticket = get_ticket(db, ticket_id, principal)
    if payload.get("title"):
        title = payload["title"].strip()
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationFailed(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        ticket.title = title
    if payload.get("description"):
        ticket.description = payload["description"]
    if payload.get("type"):
        ticket.type = _choice(payload["type"], TICKET_TYPE_CHOICES, "ticket type")
    if payload.get("priority"):
        ticket.priority = _choice(payload["priority"], TICKET_PRIORITY_CHOICES, "ticket priority")
    if payload.get("status"):
        ticket.status = _choice(payload["status"], TICKET_STATUS_CHOICES, "ticket status")
    for field in ("linear_issue_id", "linear_issue_url", "estimated_minutes"):
        if field in payload:
            setattr(ticket, field, payload.get(field))
    db.commit()
    db.refresh(ticket)
    return ticket


def delete_ticket(db: Session, ticket_id: int, principal: Principal) -> None:
    _require_admin(principal, "delete tickets")
    ticket = get_ticket(db, ticket_id, principal)
    ticket.deleted_at = utcnow()
    db.commit()
    _log("ticket.deleted", ticket, principal)


def claim_ticket(db: Session, ticket_id: int, principal: Principal) -> Ticket:
    """Assign an unassigned ``open`` ticket to the caller.

    The guard is part of the UPDATE itself, so two admins racing for the same
    ticket cannot both win.
    """
    _require_admin(principal, "claim tickets")
    ticket = get_ticket(db, ticket_id, principal)
    now = utcnow()
    result = db.execute(
        update(Ticket)
        .where(
            Ticket.id == ticket.id,
            Ticket.deleted_at.is_(None),
            Ticket.assigned_to.is_(None),
            Ticket.status == TICKET_STATUS_OPEN,
        )
        .values(assigned_to=principal.user_id, assigned_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(ticket)
    if result.rowcount == 0:
        if ticket.assigned_to is not None:
            raise Conflict("Ticket is already assigned", details={"assigned_to": ticket.assigned_to})
        raise Conflict(f"Only open tickets can be claimed (status is '{ticket.status}')")
    _log("ticket.claimed", ticket, principal)
    return ticket


def unclaim_ticket(db: Session, ticket_id: int, principal: Principal) -> Ticket:
    ticket = get_ticket(db, ticket_id, principal)
    if ticket.assigned_to != principal.user_id:
        raise Forbidden("Only the current assignee can unclaim this ticket")
    if ticket.status in TICKET_TERMINAL_STATUSES:
        raise Conflict(f"Cannot unclaim a {ticket.status} ticket")
    ticket.assigned_to = None
    ticket.assigned_at = None
    db.commit()
    db.refresh(ticket)
    _log("ticket.unclaimed", ticket, principal)
    return ticket


def assign_ticket(db: Session, ticket_id: int, principal: Principal, assignee_id: str) -> Ticket:
    """Admin hand-off to a named admin, regardless of the current assignee."""
    _require_admin(principal, "assign tickets")
    assignee_id = (assignee_id or "").strip()
    if not assignee_id:
        raise ValidationFailed("assignee_id is required")
    ticket = get_ticket(db, ticket_id, principal)
    if ticket.status in TICKET_TERMINAL_STATUSES:
        raise Conflict(f"Cannot assign a {ticket.status} ticket")
    ticket.assigned_to = assignee_id
    ticket.assigned_at = utcnow()
    db.commit()
    db.refresh(ticket)
    _log("ticket.assigned", ticket, principal, assignee=assignee_id)
    return ticket


def resolve_ticket(
    db: Session,
    ticket_id: int,
    principal: Principal,
    resolution: str | None,
    close: bool = False,
) -> Ticket:
    """Mark a ticket resolved (or closed) with a summary. There is no reopen."""
    _require_admin(principal, "resolve tickets")
    resolution = (resolution or "").strip()
    if not resolution:
        raise ValidationFailed("Resolution summary is required")
    ticket = get_ticket(db, ticket_id, principal)
    if ticket.status == TICKET_STATUS_CLOSED:
        raise Conflict("Ticket is already closed")
    ticket.status = TICKET_STATUS_CLOSED if close else TICKET_STATUS_RESOLVED
    ticket.resolved_at = utcnow()
    ticket.resolved_by = principal.user_id
    ticket.resolution = resolution
    db.commit()
    db.refresh(ticket)
    _log("ticket.resolved", ticket, principal, status=ticket.status)
    return ticket


def set_ticket_status(db: Session, ticket_id: int, principal: Principal, status: str) -> Ticket:
    """Admin override: any status may follow any other."""
    _require_admin(principal, "change ticket status")
    new_status = _choice(status, TICKET_STATUS_CHOICES, "ticket status")
    ticket = get_ticket(db, ticket_id, principal)
    previous = ticket.status
    ticket.status = new_status
    db.commit()
    db.refresh(ticket)
    _log("ticket.status_changed", ticket, principal, from_status=previous, to_status=new_status)
    return ticket
