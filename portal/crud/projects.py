"""CRUD helpers for projects. Project status is free-form within its enum."""

from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session, selectinload

from ..core.errors import Forbidden, NotFound, ValidationFailed
from ..core.security import Principal
from ..core.statuses import PROJECT_STATUS_CHOICES, normalize_choice
from ..models.project import Project
from ..services.timecalc import parse_datetime, utcnow
from .clients import get_client


def list_projects(
    db: Session,
    principal: Principal,
    *,
    client_id: int | None = None,
    limit: int = 200,
    offset: int = 0,
):
    stmt = select(Project).options(selectinload(Project.phases)).where(Project.deleted_at.is_(None))
    if principal.is_client:
        stmt = stmt.where(Project.client_id == principal.client_id)
    elif client_id is not None:
        stmt = stmt.where(Project.client_id == client_id)
    stmt = stmt.order_by(desc(Project.created_at), desc(Project.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_project(db: Session, project_id: int, principal: Principal | None = None) -> Project:
    project = db.execute(
        select(Project)
        .options(selectinload(Project.phases))
        .where(Project.id == project_id, Project.deleted_at.is_(None))
    ).scalars().first()
    if project is None:
        raise NotFound("Project not found")
    if principal is not None and not principal.can_access_client(project.client_id):
        raise Forbidden("You do not have access to this project")
    return project


def _status(value: str | None) -> str:
    try:
        return normalize_choice(value, PROJECT_STATUS_CHOICES, field="project status")
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc


def create_project(db: Session, payload: dict) -> Project:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationFailed("name is required")
    if payload.get("client_id") is None:
        raise ValidationFailed("client_id is required")
    client = get_client(db, int(payload["client_id"]))
    project = Project(
        client_id=client.id,
        name=name,
        description=payload.get("description") or None,
        status=_status(payload.get("status") or PROJECT_STATUS_CHOICES[0]),
        start_date=parse_datetime(payload.get("start_date")),
        due_date=parse_datetime(payload.get("due_date")),
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def update_project(db: Session, project: Project, payload: dict) -> Project:
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationFailed("name is required")
        project.name = name
    if "description" in payload:
        project.description = payload.get("description") or None
    if payload.get("status"):
        project.status = _status(payload["status"])
    for field in ("start_date", "due_date"):
        if field in payload:
            setattr(project, field, parse_datetime(payload.get(field)))
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, project: Project) -> None:
    project.deleted_at = utcnow()
    db.commit()
