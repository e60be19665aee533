from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.security import Principal
from ..crud.phases import (
    apply_phase_template,
    create_phase,
    delete_phase,
    get_phase,
    list_phases,
    reorder_phases,
    roadmap_progress,
    update_phase,
)
from ..crud.projects import create_project, delete_project, get_project, list_projects, update_project
from ..db.session import get_db
from ..deps.auth import get_principal, require_admin
from ..schemas.phase import ApplyTemplateRequest, PhaseCreate, PhaseOut, PhaseUpdate, ReorderRequest
from ..schemas.project import ProjectCreate, ProjectDetail, ProjectOut, ProjectUpdate
from ..services.notifications import Notifier, get_notifier, phase_notice

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


def _project_to_schema(project, *, include_phases: bool = False) -> ProjectOut | ProjectDetail:
    phases = list(project.phases or [])
    base = ProjectOut.model_validate(project, from_attributes=True).model_copy(
        update={"progress": roadmap_progress(phases)}
    )
    if not include_phases:
        return base
    detail = ProjectDetail(**base.model_dump())
    detail.phases = [PhaseOut.model_validate(phase, from_attributes=True) for phase in phases]
    return detail


@router.get("", response_model=list[ProjectOut])
def api_list_projects(
    client_id: int | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    projects = list_projects(db, principal, client_id=client_id, limit=limit, offset=offset)
    return [_project_to_schema(project) for project in projects]


@router.post("", response_model=ProjectOut, status_code=201)
def api_create_project(payload: ProjectCreate, db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    project = create_project(db, payload.model_dump(exclude_unset=True))
    return _project_to_schema(project)


@router.get("/{project_id}", response_model=ProjectDetail)
def api_get_project(project_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return _project_to_schema(get_project(db, project_id, principal), include_phases=True)


@router.patch("/{project_id}", response_model=ProjectOut)
def api_update_project(
    project_id: int,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    project = update_project(db, get_project(db, project_id), payload.model_dump(exclude_unset=True))
    return _project_to_schema(project)


@router.delete("/{project_id}", status_code=204)
def api_delete_project(project_id: int, db: Session = Depends(get_db), _: Principal = Depends(require_admin)):
    delete_project(db, get_project(db, project_id))
    return Response(status_code=204)


@router.get("/{project_id}/phases", response_model=list[PhaseOut])
def api_list_phases(project_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return list_phases(db, get_project(db, project_id, principal))


@router.post("/{project_id}/phases", response_model=PhaseOut, status_code=201)
def api_create_phase(
    project_id: int,
    payload: PhaseCreate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return create_phase(db, get_project(db, project_id), payload.model_dump(exclude_unset=True))


@router.post("/{project_id}/phases/apply-template", response_model=list[PhaseOut], status_code=201)
def api_apply_template(
    project_id: int,
    payload: ApplyTemplateRequest,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return apply_phase_template(db, get_project(db, project_id), payload.template_id)


# Declared before "/{phase_id}" so "reorder" is not parsed as a phase id.
@router.put("/{project_id}/phases/reorder", response_model=list[PhaseOut])
def api_reorder_phases(
    project_id: int,
    payload: ReorderRequest,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return reorder_phases(db, get_project(db, project_id), payload.phase_ids)


@router.put("/{project_id}/phases/{phase_id}", response_model=PhaseOut)
def api_update_phase(
    project_id: int,
    phase_id: int,
    payload: PhaseUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    project = get_project(db, project_id)
    phase = get_phase(db, project, phase_id)
    previous = phase.status
    phase = update_phase(db, project, phase, payload.model_dump(exclude_unset=True))
    if phase.status != previous:
        background_tasks.add_task(notifier.phase_status_changed, phase_notice(project, phase, previous))
    return phase


@router.delete("/{project_id}/phases/{phase_id}", status_code=204)
def api_delete_phase(
    project_id: int,
    phase_id: int,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    project = get_project(db, project_id)
    delete_phase(db, project, get_phase(db, project, phase_id))
    return Response(status_code=204)
