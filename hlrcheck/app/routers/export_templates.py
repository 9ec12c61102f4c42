# hlrcheck/app/routers/export_templates.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from hlrcheck.app.db import get_db
from hlrcheck.app.models import User, ExportTemplate
from hlrcheck.app.repositories.export_template_repository import ExportTemplateRepository
from hlrcheck.app.schemas.export_template import (
    ExportTemplateCreate,
    ExportTemplateUpdate,
    ExportTemplateResponse,
)
from hlrcheck.app.services.auth_service import get_current_user
from hlrcheck.app.services.export_service import EXPORT_FIELDS, PRESETS, unknown_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export-templates", tags=["export"])


def _out(t: ExportTemplate) -> dict:
    return ExportTemplateResponse.model_validate(t).model_dump()


def _owned(db: Session, user: User, template_id: int) -> ExportTemplate:
    template = ExportTemplateRepository(db).get(template_id)
    if template is None or template.user_id != user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Template not found")
    return template


def _check_fields(kind: str, fields) -> None:
    bad = unknown_fields(kind, fields)
    if bad:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown export fields: {', '.join(bad)}")


# -------------------------------------------------------
# GET /export-templates/fields  → selectable columns + presets
# -------------------------------------------------------
@router.get("/fields")
def available_fields(kind: str = Query("hlr", pattern="^(hlr|email)$"), current_user: User = Depends(get_current_user)):
    return {"fields": EXPORT_FIELDS[kind], "presets": PRESETS[kind]}


@router.get("")
def list_templates(
    kind: Optional[str] = Query(None, pattern="^(hlr|email)$"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [_out(t) for t in ExportTemplateRepository(db).list_user_templates(current_user.id, kind)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_template(
    payload: ExportTemplateCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_fields(payload.kind, payload.fields)
    repo = ExportTemplateRepository(db)
    if payload.is_default:
        repo.clear_default(current_user.id, payload.kind)
    template = repo.create({
        "user_id": current_user.id,
        "kind": payload.kind,
        "name": payload.name.strip(),
        "fields": list(dict.fromkeys(payload.fields)),
        "is_default": payload.is_default,
    })
    return _out(template)


@router.patch("/{template_id}")
def update_template(
    template_id: int,
    payload: ExportTemplateUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    repo = ExportTemplateRepository(db)
    template = _owned(db, current_user, template_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("fields") is not None:
        _check_fields(template.kind, data["fields"])
        data["fields"] = list(dict.fromkeys(data["fields"]))
    elif "fields" in data:
        del data["fields"]
    if data.get("is_default"):
        repo.clear_default(current_user.id, template.kind)
    if data.get("name"):
        data["name"] = data["name"].strip()

    return _out(repo.update(template, data))


@router.post("/{template_id}/default")
def set_default_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    repo = ExportTemplateRepository(db)
    template = _owned(db, current_user, template_id)
    repo.clear_default(current_user.id, template.kind)
    return _out(repo.update(template, {"is_default": True}))


@router.delete("/{template_id}")
def delete_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ExportTemplateRepository(db).delete(_owned(db, current_user, template_id))
    return {"success": True}
