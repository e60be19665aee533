from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..crud.phase_templates import create_template, delete_template, get_template, list_templates, update_template
from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.phase import PhaseTemplateCreate, PhaseTemplateOut, PhaseTemplateUpdate

router = APIRouter(prefix="/api/v1/phase-templates", tags=["phase-templates"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[PhaseTemplateOut])
def api_list_templates(db: Session = Depends(get_db)):
    return list_templates(db)


@router.post("", response_model=PhaseTemplateOut, status_code=201)
def api_create_template(payload: PhaseTemplateCreate, db: Session = Depends(get_db)):
    return create_template(db, payload.model_dump(exclude_unset=True))


@router.get("/{template_id}", response_model=PhaseTemplateOut)
def api_get_template(template_id: int, db: Session = Depends(get_db)):
    return get_template(db, template_id)


@router.put("/{template_id}", response_model=PhaseTemplateOut)
def api_update_template(template_id: int, payload: PhaseTemplateUpdate, db: Session = Depends(get_db)):
    return update_template(db, get_template(db, template_id), payload.model_dump(exclude_unset=True))


@router.delete("/{template_id}", status_code=204)
def api_delete_template(template_id: int, db: Session = Depends(get_db)):
    delete_template(db, get_template(db, template_id))
    return Response(status_code=204)
