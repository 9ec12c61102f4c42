# hlrcheck/app/routers/batches.py
"""
Routes shared by the HLR and email surfaces:

    POST   /{kind}/check
    POST   /{kind}/upload
    POST   /{kind}/batches
    GET    /{kind}/batches
    GET    /{kind}/batches/incomplete
    GET    /{kind}/batches/{batch_id}
    GET    /{kind}/batches/{batch_id}/results
    POST   /{kind}/batches/{batch_id}/resume
    DELETE /{kind}/batches/{batch_id}
    GET    /{kind}/batches/{batch_id}/export
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, File, Query, Response, status
from sqlalchemy.orm import Session

from hlrcheck.app.db import get_db
from hlrcheck.app.models import User
from hlrcheck.app.repositories.batch_repository import batch_repository_for
from hlrcheck.app.repositories.export_template_repository import ExportTemplateRepository
from hlrcheck.app.schemas.batch import (
    SingleCheckRequest,
    BatchCreateRequest,
    ResumeRequest,
    HlrBatchResponse,
    EmailBatchResponse,
    HlrResultResponse,
    EmailResultResponse,
)
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.auth_service import require_permission
from hlrcheck.app.services.batch_processor import (
    BatchNotFound,
    BatchPausedError,
    EmptyBatchError,
    create_batch,
    get_owned_batch,
    get_incomplete_batches,
    resume_batch,
    resume_and_run,
)
from hlrcheck.app.services.csv_parser import extract_values
from hlrcheck.app.services import export_service
from hlrcheck.app.services.lookup_service import InvalidInputError, check_single, get_kind
from hlrcheck.app.services.user_limits import LimitExceededError
from hlrcheck.app.tasks.batch_tasks import enqueue_batch

logger = logging.getLogger(__name__)

BATCH_SCHEMAS = {"hlr": HlrBatchResponse, "email": EmailBatchResponse}
RESULT_SCHEMAS = {"hlr": HlrResultResponse, "email": EmailResultResponse}

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def batch_out(kind: str, batch) -> dict:
    return BATCH_SCHEMAS[kind].model_validate(batch).model_dump()


def result_out(kind: str, row) -> dict:
    return RESULT_SCHEMAS[kind].model_validate(row).model_dump()


def not_found(e: BatchNotFound):
    return HTTPException(status.HTTP_404_NOT_FOUND, str(e) or "Batch not found")


def build_router(kind: str) -> APIRouter:
    router = APIRouter(prefix=f"/{kind}", tags=[kind])
    lookup_kind = get_kind(kind)

    # -------------------------------------------------------
    # POST /{kind}/check  → single lookup
    # -------------------------------------------------------
    @router.post("/check")
    def check(
        payload: SingleCheckRequest,
        request: Request,
        current_user: User = Depends(require_permission(f"{kind}.single")),
        db: Session = Depends(get_db),
    ):
        try:
            row, from_cache = check_single(db, current_user, kind, payload.value, request)
        except InvalidInputError as e:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, {"message": "Invalid input", "reason": e.reason})
        except LimitExceededError as e:
            raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(e))
        except lookup_kind.provider_error as e:
            raise HTTPException(status.HTTP_502_BAD_GATEWAY, str(e))

        out = result_out(kind, row)
        out["from_cache"] = from_cache
        return out

    # -------------------------------------------------------
    # POST /{kind}/upload  → parse CSV / TXT / XLSX
    # -------------------------------------------------------
    @router.post("/upload")
    async def upload(
        file: UploadFile = File(...),
        current_user: User = Depends(require_permission(f"{kind}.batch")),
    ):
        content = await file.read()
        if len(content) > MAX_UPLOAD_BYTES:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "File too large")
        try:
            values = extract_values(content, file.filename, kind)
        except ValueError as e:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
        return {"filename": file.filename, "count": len(values), "items": values}

    # -------------------------------------------------------
    # POST /{kind}/batches  → store + enqueue
    # -------------------------------------------------------
    @router.post("/batches", status_code=status.HTTP_201_CREATED)
    def create(
        payload: BatchCreateRequest,
        request: Request,
        current_user: User = Depends(require_permission(f"{kind}.batch")),
        db: Session = Depends(get_db),
    ):
        try:
            batch, report = create_batch(db, current_user, kind, payload.items, payload.name, request)
        except EmptyBatchError as e:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
        except LimitExceededError as e:
            raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(e))

        queued = enqueue_batch(kind, batch.id)
        db.refresh(batch)
        report.pop("valid", None)
        return {"batch": batch_out(kind, batch), "report": report, "queued": queued}

    # -------------------------------------------------------
    # GET /{kind}/batches  → history
    # -------------------------------------------------------
    @router.get("/batches")
    def list_batches(
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=500),
        current_user: User = Depends(require_permission(f"{kind}.history")),
        db: Session = Depends(get_db),
    ):
        repo = batch_repository_for(kind, db)
        rows = repo.list_user_batches(current_user.id, skip=skip, limit=limit)
        total = repo.count(repo.model.user_id == current_user.id)
        return {"items": [batch_out(kind, b) for b in rows], "total": total}

    @router.get("/batches/incomplete")
    def list_incomplete(
        current_user: User = Depends(require_permission(f"{kind}.history")),
        db: Session = Depends(get_db),
    ):
        rows = get_incomplete_batches(db, kind, current_user.id)
        return [batch_out(kind, b) for b in rows]

    @router.get("/batches/{batch_id}")
    def get_batch(
        batch_id: int,
        current_user: User = Depends(require_permission(f"{kind}.history")),
        db: Session = Depends(get_db),
    ):
        try:
            batch = get_owned_batch(db, current_user, kind, batch_id)
        except BatchNotFound as e:
            raise not_found(e)
        return batch_out(kind, batch)

    @router.get("/batches/{batch_id}/results")
    def get_results(
        batch_id: int,
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        current_user: User = Depends(require_permission(f"{kind}.history")),
        db: Session = Depends(get_db),
    ):
        try:
            batch = get_owned_batch(db, current_user, kind, batch_id)
        except BatchNotFound as e:
            raise not_found(e)
        repo = batch_repository_for(kind, db)
        rows = repo.list_results(batch.id, skip=skip, limit=limit)
        return {"items": [result_out(kind, r) for r in rows], "total": repo.count_results(batch.id)}

    # -------------------------------------------------------
    # POST /{kind}/batches/{id}/resume
    # -------------------------------------------------------
    @router.post("/batches/{batch_id}/resume")
    def resume(
        batch_id: int,
        request: Request,
        payload: Optional[ResumeRequest] = None,
        wait: bool = Query(False),
        current_user: User = Depends(require_permission(f"{kind}.batch")),
        db: Session = Depends(get_db),
    ):
        candidates = payload.items if payload is not None else None
        try:
            if wait:
                result = resume_and_run(db, current_user, kind, batch_id, candidates, request)
            else:
                result = resume_batch(db, current_user, kind, batch_id, candidates, request)
                result["queued"] = enqueue_batch(kind, batch_id, result["items"]) if result["resumed"] else False
        except BatchNotFound as e:
            raise not_found(e)
        except BatchPausedError as e:
            raise HTTPException(status.HTTP_409_CONFLICT, str(e))
        except LimitExceededError as e:
            raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(e))

        result.pop("items", None)
        return result

    # -------------------------------------------------------
    # DELETE /{kind}/batches/{id}
    # -------------------------------------------------------
    @router.delete("/batches/{batch_id}")
    def delete(
        batch_id: int,
        request: Request,
        current_user: User = Depends(require_permission(f"{kind}.delete")),
        db: Session = Depends(get_db),
    ):
        try:
            batch = get_owned_batch(db, current_user, kind, batch_id)
        except BatchNotFound as e:
            raise not_found(e)
        batch_repository_for(kind, db).delete_with_results(batch)
        log_action(db, current_user.id, "delete_batch", f"{kind} batch #{batch_id} deleted", request)
        return {"success": True}

    # -------------------------------------------------------
    # GET /{kind}/batches/{id}/export
    # -------------------------------------------------------
    @router.get("/batches/{batch_id}/export")
    def export(
        batch_id: int,
        request: Request,
        format: str = Query("csv", pattern="^(csv|xlsx)$"),
        template_id: Optional[int] = None,
        fields: Optional[str] = None,
        preset: Optional[str] = None,
        filter: str = Query("all", pattern="^(all|valid|invalid)$"),
        current_user: User = Depends(require_permission(f"{kind}.export")),
        db: Session = Depends(get_db),
    ):
        try:
            batch = get_owned_batch(db, current_user, kind, batch_id)
        except BatchNotFound as e:
            raise not_found(e)

        field_list = None
        if template_id is not None:
            template = ExportTemplateRepository(db).get(template_id)
            if template is None or template.user_id != current_user.id or template.kind != kind:
                raise HTTPException(status.HTTP_404_NOT_FOUND, "Template not found")
            field_list = list(template.fields)
        elif fields:
            field_list = [f.strip() for f in fields.split(",") if f.strip()]

        try:
            resolved = export_service.resolve_fields(kind, field_list, preset)
        except ValueError as e:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

        rows = batch_repository_for(kind, db).list_results(batch.id)
        rows = export_service.filter_results(rows, filter)
        content = export_service.render(rows, kind, resolved, format)

        log_action(
            db, current_user.id, "export",
            f"{kind} batch #{batch.id}: {len(rows)} rows as {format}",
            request,
            meta={"kind": kind, "batch_id": batch.id, "format": format, "filter": filter},
        )

        filename = f"{kind}_batch_{batch.id}.{format}"
        return Response(
            content=content,
            media_type=export_service.MEDIA_TYPES[format],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return router
