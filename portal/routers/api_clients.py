from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.errors import Forbidden
from ..core.security import Principal
from ..crud.clients import create_client, delete_client, get_client, list_clients, update_client
from ..db.session import get_db
from ..deps.auth import get_principal, require_admin
from ..schemas.client import (
    ClientCreate,
    ClientOut,
    ClientUpdate,
    RolloverRequest,
    SupportAllocationUpdate,
    SupportHourLogOut,
    SupportHoursOut,
)
from ..services import support_hours

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])


def _client_for(db: Session, client_id: int, principal: Principal):
    if not principal.can_access_client(client_id):
        raise Forbidden("You do not have access to this client")
    return get_client(db, client_id)


@router.get("", response_model=list[ClientOut])
def api_list_clients(
    status: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return list_clients(db, status=status, limit=limit, offset=offset)


@router.post("", response_model=ClientOut, status_code=201)
def api_create_client(payload: ClientCreate, db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    return create_client(db, payload.model_dump(exclude_unset=True))


@router.get("/{client_id}", response_model=ClientOut)
def api_get_client(client_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return _client_for(db, client_id, principal)


@router.patch("/{client_id}", response_model=ClientOut)
def api_update_client(
    client_id: int,
    payload: ClientUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return update_client(db, get_client(db, client_id), payload.model_dump(exclude_unset=True))


@router.delete("/{client_id}", status_code=204)
def api_delete_client(client_id: int, db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    delete_client(db, get_client(db, client_id))
    return Response(status_code=204)


@router.get("/{client_id}/support-hours", response_model=SupportHoursOut)
def api_support_hours(client_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return support_hours.support_summary(_client_for(db, client_id, principal))


@router.patch("/{client_id}/support-hours", response_model=SupportHoursOut)
def api_set_support_hours(
    client_id: int,
    payload: SupportAllocationUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    client = support_hours.set_monthly_allocation(db, get_client(db, client_id), payload.hours_per_month)
    return support_hours.support_summary(client)


@router.post("/{client_id}/support-hours/rollover", response_model=SupportHourLogOut, status_code=201)
def api_rollover(
    client_id: int,
    payload: RolloverRequest | None = None,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    notes = payload.notes if payload is not None else None
    log = support_hours.rollover_billing_cycle(db, get_client(db, client_id), notes=notes)
    return support_hours.support_log_summary(log)


@router.get("/{client_id}/support-hours/logs", response_model=list[SupportHourLogOut])
def api_support_logs(client_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    logs = support_hours.list_support_logs(db, _client_for(db, client_id, principal))
    return [support_hours.support_log_summary(log) for log in logs]
