"""Project roadmap lifecycle: phase status, ordering and template application.

Phase statuses move ``pending -> in_progress -> completed`` with ``skipped``
available along the way. Nothing forces earlier phases to finish first; an
admin may set any status at any time. Only two side effects are automatic:

* the first move into ``in_progress``/``completed`` stamps ``started_at`` /
  ``completed_at`` (later moves keep the original stamp);
* moving into ``in_progress`` points ``Project.current_phase_id`` at the phase.

Whether several phases may be active at once is left to configuration
(``PHASE_SINGLE_ACTIVE``); by default the pointer simply moves and any other
active phase keeps its status.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import NotFound, ValidationFailed
from ..core.statuses import (
    PHASE_STATUS_CHOICES,
    PHASE_STATUS_COMPLETED,
    PHASE_STATUS_IN_PROGRESS,
    PHASE_STATUS_PENDING,
    normalize_choice,
)
from ..models.phase import ProjectPhase
from ..models.project import Project
from ..services.timecalc import parse_datetime, utcnow
from .phase_templates import get_template

logger = logging.getLogger(__name__)

MAX_PHASE_NAME = 255
MAX_PHASE_NOTES = 2000


def list_phases(db: Session, project: Project) -> list[ProjectPhase]:
    return db.execute(
        select(ProjectPhase)
        .where(ProjectPhase.project_id == project.id)
        .order_by(ProjectPhase.order_index, ProjectPhase.id)
    ).scalars().all()


def get_phase(db: Session, project: Project, phase_id: int) -> ProjectPhase:
    phase = db.execute(
        select(ProjectPhase).where(ProjectPhase.id == phase_id, ProjectPhase.project_id == project.id)
    ).scalars().first()
    if phase is None:
        raise NotFound("Phase not found")
    return phase


def roadmap_progress(phases: Sequence[ProjectPhase]) -> int:
    """Percentage of phases completed; a project without phases is at 0."""
    total = len(phases)
    if total == 0:
        return 0
    completed = sum(1 for phase in phases if phase.status == PHASE_STATUS_COMPLETED)
    return round(completed / total * 100)


def _status(value: str | None) -> str:
    try:
        return normalize_choice(value, PHASE_STATUS_CHOICES, field="phase status")
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc


def _validate_name(name: object) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationFailed("Phase name is required")
    if len(name) > MAX_PHASE_NAME:
        raise ValidationFailed(f"Phase name must be at most {MAX_PHASE_NAME} characters")
    return name.strip()


def _validate_notes(notes: object) -> str | None:
    if notes is None:
        return None
    if len(str(notes)) > MAX_PHASE_NOTES:
        raise ValidationFailed(f"Phase notes must be less than {MAX_PHASE_NOTES} characters")
    return str(notes)


def create_phase(db: Session, project: Project, payload: dict) -> ProjectPhase:
    if payload.get("order_index") is None:
        raise ValidationFailed("Name and order_index are required")
    phase = ProjectPhase(
        project_id=project.id,
        name=_validate_name(payload.get("name")),
        description=payload.get("description") or None,
        order_index=int(payload["order_index"]),
        status=PHASE_STATUS_PENDING,
    )
    db.add(phase)
    db.flush()
    if payload.get("status"):
        _apply_status(db, project, phase, _status(payload["status"]))
    db.commit()
    db.refresh(phase)
    return phase


def _demote_other_active_phases(db: Session, project: Project, phase: ProjectPhase) -> None:
    db.execute(
        update(ProjectPhase)
        .where(
            ProjectPhase.project_id == project.id,
            ProjectPhase.id != phase.id,
            ProjectPhase.status == PHASE_STATUS_IN_PROGRESS,
        )
        .values(status=PHASE_STATUS_PENDING)
        .execution_options(synchronize_session="fetch")
    )


def _apply_status(db: Session, project: Project, phase: ProjectPhase, status: str) -> None:
    now = utcnow()
    phase.status = status
    if status == PHASE_STATUS_IN_PROGRESS:
        if phase.started_at is None:
            phase.started_at = now
        if settings.PHASE_SINGLE_ACTIVE:
            _demote_other_active_phases(db, project, phase)
        project.current_phase_id = phase.id
    elif status == PHASE_STATUS_COMPLETED and phase.completed_at is None:
        phase.completed_at = now


def set_phase_status(
    db: Session,
    project: Project,
    phase: ProjectPhase,
    status: str,
    notes: str | None = None,
) -> ProjectPhase:
    previous = phase.status
    _apply_status(db, project, phase, _status(status))
    if notes is not None:
        phase.notes = _validate_notes(notes)
    db.commit()
    db.refresh(phase)
    logger.info(
        "phase.status_changed",
        extra={
            "extra_data": {
                "project_id": project.id,
                "phase_id": phase.id,
                "from_status": previous,
                "to_status": phase.status,
            }
        },
    )
    return phase


def update_phase(db: Session, project: Project, phase: ProjectPhase, payload: dict) -> ProjectPhase:
    """General admin edit; a ``status`` key is handed to ``set_phase_status``.

    Explicit ``started_at``/``completed_at`` values are written first, so the
    automatic stamps only fill a field that is still empty.
    """
    status = _status(payload["status"]) if payload.get("status") is not None else None
    if "name" in payload:
        phase.name = _validate_name(payload.get("name"))
    if "description" in payload:
        phase.description = payload.get("description")
    if "notes" in payload:
        phase.notes = _validate_notes(payload.get("notes"))
    if "started_at" in payload:
        phase.started_at = parse_datetime(payload.get("started_at"))
    if "completed_at" in payload:
        phase.completed_at = parse_datetime(payload.get("completed_at"))
    if status is not None:
        return set_phase_status(db, project, phase, status)
    db.commit()
    db.refresh(phase)
    return phase


def apply_phase_template(db: Session, project: Project, template_id: int) -> list[ProjectPhase]:
    """Copy a template's phases onto the project as new ``pending`` phases.

    Existing phases are left in place, so applying twice yields duplicates.
    """
    template = get_template(db, template_id)
    if not template.phases:
        raise ValidationFailed("Template has no phases")
    created: list[ProjectPhase] = []
    for template_phase in sorted(template.phases, key=lambda p: p.order_index):
        phase = ProjectPhase(
            project_id=project.id,
            name=template_phase.name,
            description=template_phase.description,
            order_index=template_phase.order_index,
            status=PHASE_STATUS_PENDING,
        )
        db.add(phase)
        created.append(phase)
    project.phase_template_id = template.id
    db.commit()
    for phase in created:
        db.refresh(phase)
    logger.info(
        "phase.template_applied",
        extra={"extra_data": {"project_id": project.id, "template_id": template.id, "phases": len(created)}},
    )
    return created


def reorder_phases(db: Session, project: Project, ordered_phase_ids: Iterable[int]) -> list[ProjectPhase]:
    """Give each listed phase its 0-based position as ``order_index``."""
    ordered = [int(phase_id) for phase_id in ordered_phase_ids]
    if len(set(ordered)) != len(ordered):
        raise ValidationFailed("phase_ids must not contain duplicates")
    phases = {phase.id: phase for phase in list_phases(db, project)}
    unknown = [phase_id for phase_id in ordered if phase_id not in phases]
    if unknown:
        raise ValidationFailed("Phases do not belong to this project", details={"phase_ids": unknown})
    for index, phase_id in enumerate(ordered):
        phases[phase_id].order_index = index
    db.commit()
    return list_phases(db, project)


def delete_phase(db: Session, project: Project, phase: ProjectPhase) -> None:
    """Hard-delete a phase and clear the project's pointer if it was current."""
    phase_id = phase.id
    db.delete(phase)
    if project.current_phase_id == phase_id:
        project.current_phase_id = None
    db.commit()
