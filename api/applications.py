from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from config import settings
from database import get_db, get_session_factory
from models import Application, Document, ExpectedDocument
from schemas.application import ApplicationFinalize, ApplicationStatusUpdate, DocumentCreate, DocumentUpdate
from services.intake import persist_submission
from services.intake_normalizer import IntakeError, is_valid_uuid, normalize_submission
from services.notifier import dispatch_in_background
from services.status import FINALIZABLE_STATUSES, PIPELINE_STAGES, can_transition, is_known_status
from utils.case import dict_keys_to_camel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["applications"])

MSG_APPLICATION_NOT_FOUND = "Application not found"
MSG_DOCUMENT_NOT_FOUND = "Document not found"

_TEST_PREFIX = re.compile(r"^test-")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _app_to_response(app: Application, include_form_data: bool = False) -> dict[str, Any]:
    """Serialize application to dict with camelCase for frontend."""
    out = {
        "id": app.id,
        "businessId": app.business_id,
        "status": app.status,
        "stage": app.stage,
        "requestedAmount": app.requested_amount,
        "useOfFunds": app.use_of_funds,
        "productCategory": app.product_category,
        "country": app.country,
        "contactFirstName": app.contact_first_name,
        "contactLastName": app.contact_last_name,
        "contactEmail": app.contact_email,
        "contactPhone": app.contact_phone,
        "source": app.source,
        "isReadyForLenders": app.is_ready_for_lenders,
        "createdAt": _iso(app.created_at),
        "updatedAt": _iso(app.updated_at),
        "submittedAt": _iso(app.submitted_at),
    }
    if include_form_data:
        out["formData"] = app.form_data
    return out


def _document_to_response(doc: Document) -> dict[str, Any]:
    return {
        "id": doc.id,
        "applicationId": doc.application_id,
        "documentType": doc.document_type,
        "fileName": doc.file_name,
        "storageKey": doc.storage_key,
        "fileSize": doc.file_size,
        "mimeType": doc.mime_type,
        "status": doc.status,
        "verifiedAt": _iso(doc.verified_at),
        "createdAt": _iso(doc.created_at),
        "updatedAt": _iso(doc.updated_at),
    }


def _expected_to_response(expected: ExpectedDocument, documents: list[Document]) -> dict[str, Any]:
    matching = [d for d in documents if d.document_type == expected.document_type and d.status != "rejected"]
    return {
        "id": expected.id,
        "documentType": expected.document_type,
        "label": expected.label,
        "required": expected.is_required,
        "months": expected.months,
        "meta": dict_keys_to_camel(expected.meta) if expected.meta else None,
        "satisfied": bool(matching),
        "documentIds": [d.id for d in matching],
    }


async def _get_application_or_404(db: AsyncSession, application_id: str, *options) -> Application:
    result = await db.execute(select(Application).options(*options).where(Application.id == application_id))
    app = result.scalar_one_or_none()
    if not app:
        raise HTTPException(status_code=404, detail=MSG_APPLICATION_NOT_FOUND)
    return app


@router.post("")
async def create_application(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Public intake endpoint. Accepts step-keyed, formData-wrapped or mixed bodies; see
    services.intake_normalizer for the gates applied before anything is written.
    """
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Request body must be valid JSON"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})

    logger.info("Application submission received; keys=%s", list(payload))
    try:
        submission = normalize_submission(payload, request.headers.get("x-client-version"))
    except IntakeError as e:
        return JSONResponse(status_code=e.status_code, content=e.body)

    try:
        result = await persist_submission(db, submission)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Application creation failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "message": "Application creation failed",
                "details": str(e),
                "timestamp": _now_iso(),
                "errorType": type(e).__name__,
            },
        )

    if settings.outbox_dispatch_inline:
        background_tasks.add_task(dispatch_in_background, session_factory)

    app = result.application
    return {
        "success": True,
        "applicationId": app.id,
        "externalId": f"app_prod_{app.id}",
        "status": app.status,
        "message": "Application created successfully" if result.created else "Application already received",
        "timestamp": _now_iso(),
        "business": {"id": result.business.id, "businessName": result.business.business_name},
    }


@router.get("")
async def list_applications(
    status: Optional[str] = Query(None),
    stage: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    query = select(Application)
    if status:
        query = query.where(Application.status == status)
    if stage:
        query = query.where(Application.stage == stage)
    result = await db.execute(query.order_by(Application.created_at.desc(), Application.id).limit(limit).offset(offset))
    apps = result.scalars().all()
    return [_app_to_response(a) for a in apps]


@router.get("/{application_id}")
async def get_application(application_id: str, db: AsyncSession = Depends(get_db)):
    app = await _get_application_or_404(
        db,
        application_id,
        selectinload(Application.business),
        selectinload(Application.documents),
        selectinload(Application.expected_documents),
    )
    out = _app_to_response(app, include_form_data=True)
    out["business"] = {
        "id": app.business.id,
        "businessName": app.business.business_name,
        "legalBusinessName": app.business.legal_business_name,
        "industry": app.business.industry,
        "businessType": app.business.business_type,
    }
    out["documentsCount"] = len(app.documents)
    out["expectedDocumentsCount"] = len(app.expected_documents)
    return out


@router.patch("/{application_id}")
async def finalize_application(
    application_id: str,
    body: Optional[ApplicationFinalize] = None,
    db: AsyncSession = Depends(get_db),
):
    """Client finalize step: moves a draft to submitted and records any last form changes."""
    actual_id = _TEST_PREFIX.sub("", application_id).lower()
    if not is_valid_uuid(actual_id):
        return JSONResponse(status_code=400, content={"error": "Invalid application ID format"})

    result = await db.execute(select(Application).where(Application.id == actual_id))
    app = result.scalar_one_or_none()
    if not app:
        return JSONResponse(status_code=404, content={"error": MSG_APPLICATION_NOT_FOUND})

    if app.status not in FINALIZABLE_STATUSES:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Application cannot be finalized",
                "message": f"Application status is '{app.status}', only draft applications can be finalized",
                "currentStatus": app.status,
            },
        )

    body = body or ApplicationFinalize()
    final_status = body.status or "submitted"
    if not can_transition(app.status, final_status):
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid status '{final_status}'", "currentStatus": app.status},
        )

    now = datetime.now(timezone.utc)
    if body.form_data:
        # The original submission is kept; later edits are appended
        form_data = dict(app.form_data or {})
        form_data["updates"] = list(form_data.get("updates") or []) + [
            {"receivedAt": now.isoformat(), "formData": body.form_data}
        ]
        app.form_data = form_data
    app.status = final_status
    app.stage = "In Review"
    if final_status == "submitted" and app.submitted_at is None:
        app.submitted_at = now
    app.updated_at = now

    documents_count = (
        await db.execute(select(func.count(Document.id)).where(Document.application_id == actual_id))
    ).scalar_one()
    expected_count = (
        await db.execute(select(func.count(ExpectedDocument.id)).where(ExpectedDocument.application_id == actual_id))
    ).scalar_one()
    is_ready = documents_count >= expected_count
    if is_ready and final_status == "submitted":
        app.is_ready_for_lenders = True
    await db.flush()
    logger.info("Application %s finalized as %s (ready=%s)", actual_id, final_status, is_ready)

    return {
        "success": True,
        "message": "Application finalized successfully",
        "application": {
            "id": app.id,
            "status": app.status,
            "stage": app.stage,
            "updatedAt": _iso(app.updated_at),
            "submittedAt": _iso(app.submitted_at),
            "isReadyForLenders": is_ready,
        },
    }


@router.patch("/{application_id}/status")
async def update_application_status(
    application_id: str, body: ApplicationStatusUpdate, db: AsyncSession = Depends(get_db)
):
    """Staff update of status and/or pipeline stage. Backwards moves need override."""
    app = await _get_application_or_404(db, application_id)
    if body.status is None and body.stage is None:
        raise HTTPException(status_code=400, detail="Provide status and/or stage")
    if body.stage is not None and body.stage not in PIPELINE_STAGES:
        raise HTTPException(status_code=400, detail=f"Unknown stage '{body.stage}'")
    if body.status is not None:
        if not is_known_status(body.status):
            raise HTTPException(status_code=400, detail=f"Unknown status '{body.status}'")
        if not can_transition(app.status, body.status, override=body.override):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot move application from '{app.status}' back to '{body.status}' without override",
            )
        if body.override and app.status != body.status:
            logger.warning(
                "Status override on %s: %s -> %s (%s)", app.id, app.status, body.status, body.note or "no note"
            )
        app.status = body.status
    if body.stage is not None:
        app.stage = body.stage
    app.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _app_to_response(app)


@router.post("/{application_id}/documents", status_code=201)
async def register_document(application_id: str, body: DocumentCreate, db: AsyncSession = Depends(get_db)):
    await _get_application_or_404(db, application_id)
    now = datetime.now(timezone.utc)
    doc = Document(
        id=str(uuid.uuid4()),
        application_id=application_id,
        document_type=body.document_type.strip(),
        file_name=body.file_name,
        storage_key=body.storage_key,
        file_size=body.file_size,
        mime_type=body.mime_type,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(doc)
    await db.flush()
    logger.info("Document %s (%s) registered for application %s", doc.id, doc.document_type, application_id)
    return _document_to_response(doc)


@router.get("/{application_id}/documents")
async def list_documents(application_id: str, db: AsyncSession = Depends(get_db)):
    await _get_application_or_404(db, application_id)
    result = await db.execute(
        select(Document).where(Document.application_id == application_id).order_by(Document.created_at, Document.id)
    )
    return [_document_to_response(d) for d in result.scalars().all()]


@router.patch("/{application_id}/documents/{document_id}")
async def update_document(
    application_id: str, document_id: str, body: DocumentUpdate, db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Document).where(Document.id == document_id, Document.application_id == application_id)
    )
    doc = result.scalar_one_or_none()
    if not doc:
        raise HTTPException(status_code=404, detail=MSG_DOCUMENT_NOT_FOUND)
    now = datetime.now(timezone.utc)
    doc.status = body.status
    doc.verified_at = now if body.status != "pending" else None
    doc.updated_at = now
    await db.flush()
    return _document_to_response(doc)


@router.get("/{application_id}/expected-documents")
async def list_expected_documents(application_id: str, db: AsyncSession = Depends(get_db)):
    app = await _get_application_or_404(
        db, application_id, selectinload(Application.expected_documents), selectinload(Application.documents)
    )
    documents = list(app.documents)
    return [_expected_to_response(e, documents) for e in app.expected_documents]
