"""CRUD helpers for reusable phase templates.

At most one live template carries ``is_default``; writing a new default first
clears the flag everywhere else.
"""

from __future__ import annotations

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session, selectinload

from ..core.errors import NotFound, ValidationFailed
from ..models.phase import PhaseTemplate, TemplatePhase
from ..services.timecalc import utcnow


def list_templates(db: Session):
    stmt = (
        select(PhaseTemplate)
        .options(selectinload(PhaseTemplate.phases))
        .where(PhaseTemplate.deleted_at.is_(None))
        .order_by(desc(PhaseTemplate.is_default), desc(PhaseTemplate.created_at), desc(PhaseTemplate.id))
    )
    return db.execute(stmt).scalars().all()


def get_template(db: Session, template_id: int) -> PhaseTemplate:
    template = db.execute(
        select(PhaseTemplate)
        .options(selectinload(PhaseTemplate.phases))
        .where(PhaseTemplate.id == template_id, PhaseTemplate.deleted_at.is_(None))
    ).scalars().first()
    if template is None:
        raise NotFound("Phase template not found")
    return template


def _clear_defaults(db: Session, *, keep_id: int | None = None) -> None:
    stmt = update(PhaseTemplate).where(
        PhaseTemplate.deleted_at.is_(None),
        PhaseTemplate.is_default.is_(True),
    )
    if keep_id is not None:
        stmt = stmt.where(PhaseTemplate.id != keep_id)
    db.execute(stmt.values(is_default=False, updated_at=utcnow()).execution_options(synchronize_session="fetch"))


def _build_phases(raw_phases: list[dict]) -> list[TemplatePhase]:
    phases: list[TemplatePhase] = []
    for index, raw in enumerate(raw_phases):
        name = (raw.get("name") or "").strip()
        if not name:
            raise ValidationFailed(f"Phase {index + 1} needs a name")
        order_index = raw.get("order_index")
        phases.append(
            TemplatePhase(
                name=name,
                description=raw.get("description") or None,
                order_index=index if order_index is None else int(order_index),
                estimated_days=raw.get("estimated_days") or None,
                color=raw.get("color") or None,
            )
        )
    return phases


def create_template(db: Session, payload: dict) -> PhaseTemplate:
    name = (payload.get("name") or "").strip()
    raw_phases = payload.get("phases") or []
    if not name or not raw_phases:
        raise ValidationFailed("Name and phases are required")
    is_default = bool(payload.get("is_default"))
    if is_default:
        _clear_defaults(db)
    template = PhaseTemplate(
        name=name,
        description=payload.get("description") or None,
        is_default=is_default,
    )
    template.phases = _build_phases(raw_phases)
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_template(db: Session, template: PhaseTemplate, payload: dict) -> PhaseTemplate:
    new_phases = None
    if payload.get("phases") is not None:
        if not payload["phases"]:
            raise ValidationFailed("A template needs at least one phase")
        new_phases = _build_phases(payload["phases"])
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationFailed("Name is required")
        template.name = name
    if "description" in payload:
        template.description = payload.get("description") or None
    if "is_default" in payload:
        is_default = bool(payload.get("is_default"))
        if is_default:
            _clear_defaults(db, keep_id=template.id)
        template.is_default = is_default
    if new_phases is not None:
        # delete-orphan cascade removes the old rows on flush
        template.phases = new_phases
    db.commit()
    db.refresh(template)
    return template


def delete_template(db: Session, template: PhaseTemplate) -> None:
    template.deleted_at = utcnow()
    template.is_default = False
    db.commit()
