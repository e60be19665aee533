"""CRUD helpers for client organisations."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import NotFound, ValidationFailed
from ..core.statuses import CLIENT_STATUS_CHOICES, normalize_choice
from ..models.client import Client
from ..services.timecalc import utcnow


def list_clients(db: Session, *, status: str | None = None, limit: int = 200, offset: int = 0):
    stmt = select(Client).where(Client.deleted_at.is_(None))
    if status:
        stmt = stmt.where(Client.status == status)
    stmt = stmt.order_by(Client.company_name).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_client(db: Session, client_id: int) -> Client:
    client = db.execute(
        select(Client).where(Client.id == client_id, Client.deleted_at.is_(None))
    ).scalars().first()
    if client is None:
        raise NotFound("Client not found")
    return client


def _clean_text(payload: dict, field: str) -> str:
    value = (payload.get(field) or "").strip()
    if not value:
        raise ValidationFailed(f"{field} is required")
    return value


def create_client(db: Session, payload: dict) -> Client:
    client = Client(
        company_name=_clean_text(payload, "company_name"),
        contact_email=_clean_text(payload, "contact_email"),
        contact_name=(payload.get("contact_name") or None),
        notes=(payload.get("notes") or None),
        status=CLIENT_STATUS_CHOICES[0],
        support_hours_per_month=0,
        hours_used_this_month=0,
    )
    if payload.get("status"):
        try:
            client.status = normalize_choice(payload["status"], CLIENT_STATUS_CHOICES, field="client status")
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def update_client(db: Session, client: Client, payload: dict) -> Client:
    for field in ("company_name", "contact_email"):
        if field in payload:
            setattr(client, field, _clean_text(payload, field))
    for field in ("contact_name", "notes"):
        if field in payload:
            setattr(client, field, payload.get(field) or None)
    if payload.get("status"):
        try:
            client.status = normalize_choice(payload["status"], CLIENT_STATUS_CHOICES, field="client status")
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc
    db.commit()
    db.refresh(client)
    return client


def delete_client(db: Session, client: Client) -> None:
    client.deleted_at = utcnow()
    db.commit()
