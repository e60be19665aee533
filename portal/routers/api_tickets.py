from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.security import Principal
from ..crud.comments import add_comment, list_comments
from ..crud.tickets import (
    assign_ticket,
    claim_ticket,
    create_ticket,
    delete_ticket,
    get_ticket,
    list_tickets,
    resolve_ticket,
    set_ticket_status,
    unclaim_ticket,
    update_ticket,
)
from ..crud.time_entries import delete_time_entry, list_time_entries, log_time, update_time_entry
from ..db.session import get_db
from ..deps.auth import get_principal, require_admin
from ..schemas.ticket import (
    AssignRequest,
    CommentCreate,
    CommentOut,
    ResolveRequest,
    StatusRequest,
    TicketCreate,
    TicketOut,
    TicketUpdate,
    TimeEntryCreate,
    TimeEntryList,
    TimeEntryOut,
    TimeEntryUpdate,
)
from ..services.notifications import Notifier, get_notifier, ticket_notice
from ..services.timecalc import minutes_to_hours

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"])


@router.get("", response_model=list[TicketOut])
def api_list(
    status: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    client_id: int | None = Query(default=None),
    project_id: int | None = Query(default=None),
    assigned_to: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return list_tickets(
        db,
        principal,
        status=status,
        priority=priority,
        client_id=client_id,
        project_id=project_id,
        assigned_to=assigned_to,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TicketOut, status_code=201)
def api_create(
    payload: TicketCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    ticket = create_ticket(db, principal, payload.model_dump(exclude_unset=True))
    background_tasks.add_task(notifier.ticket_created, ticket_notice(ticket))
    return ticket


@router.get("/{ticket_id}", response_model=TicketOut)
def api_get(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return get_ticket(db, ticket_id, principal)


@router.patch("/{ticket_id}", response_model=TicketOut)
def api_update(
    ticket_id: int,
    payload: TicketUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    return update_ticket(db, ticket_id, principal, payload.model_dump(exclude_unset=True))


@router.delete("/{ticket_id}", status_code=204)
def api_delete(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    delete_ticket(db, ticket_id, principal)
    return Response(status_code=204)


@router.post("/{ticket_id}/claim", response_model=TicketOut)
def api_claim(
    ticket_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    ticket = claim_ticket(db, ticket_id, principal)
    background_tasks.add_task(notifier.ticket_assigned, ticket_notice(ticket))
    return ticket


@router.post("/{ticket_id}/unclaim", response_model=TicketOut)
def api_unclaim(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return unclaim_ticket(db, ticket_id, principal)


@router.post("/{ticket_id}/assign", response_model=TicketOut)
def api_assign(
    ticket_id: int,
    payload: AssignRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    ticket = assign_ticket(db, ticket_id, principal, payload.assignee_id)
    background_tasks.add_task(notifier.ticket_assigned, ticket_notice(ticket))
    return ticket


@router.post("/{ticket_id}/resolve", response_model=TicketOut)
def api_resolve(
    ticket_id: int,
    payload: ResolveRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    ticket = resolve_ticket(db, ticket_id, principal, payload.resolution, close=payload.close)
    background_tasks.add_task(notifier.ticket_resolved, ticket_notice(ticket))
    return ticket


@router.put("/{ticket_id}/status", response_model=TicketOut)
def api_set_status(
    ticket_id: int,
    payload: StatusRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return set_ticket_status(db, ticket_id, principal, payload.status)


@router.get("/{ticket_id}/comments", response_model=list[CommentOut])
def api_list_comments(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return list_comments(db, ticket_id, principal)


@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=201)
def api_add_comment(
    ticket_id: int,
    payload: CommentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    ticket, comment = add_comment(db, ticket_id, principal, payload.content, is_internal=payload.is_internal)
    background_tasks.add_task(
        notifier.ticket_reply,
        ticket_notice(ticket),
        comment.author_role,
        comment.content,
        comment.is_internal,
    )
    return comment


@router.get("/{ticket_id}/time", response_model=TimeEntryList)
def api_list_time(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    entries, total = list_time_entries(db, ticket_id, principal)
    return TimeEntryList(
        entries=[TimeEntryOut.model_validate(entry, from_attributes=True) for entry in entries],
        total_minutes=total,
        total_hours=minutes_to_hours(total),
    )


@router.post("/{ticket_id}/time", response_model=TimeEntryOut, status_code=201)
def api_log_time(
    ticket_id: int,
    payload: TimeEntryCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return log_time(
        db,
        ticket_id,
        principal,
        payload.minutes,
        payload.description,
        count_towards_support_hours=payload.count_towards_support_hours,
    )


@router.put("/{ticket_id}/time/{entry_id}", response_model=TimeEntryOut)
def api_update_time(
    ticket_id: int,
    entry_id: int,
    payload: TimeEntryUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return update_time_entry(db, entry_id, principal, payload.minutes, payload.description, ticket_id=ticket_id)


@router.delete("/{ticket_id}/time/{entry_id}", status_code=204)
def api_delete_time(
    ticket_id: int,
    entry_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    delete_time_entry(db, entry_id, principal, ticket_id=ticket_id)
    return Response(status_code=204)
