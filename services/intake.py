"""
Persists a normalized submission: business get-or-create, application insert,
expected-document checklist and outbox rows, all in the caller's transaction.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Application, Business, Document, ExpectedDocument
from services.document_requirements import build_expected_documents, resolve_requirements
from services.intake_normalizer import MIN_BUSINESS_NAME_LENGTH, NormalizedSubmission, is_valid_uuid
from services.notifier import enqueue_intake_notifications

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"


@dataclass
class IntakeResult:
    application: Application
    business: Business
    expected_documents: list[ExpectedDocument] = field(default_factory=list)
    created: bool = True


def is_unique_violation(exc: BaseException) -> bool:
    """True for a duplicate-key error from PostgreSQL (SQLSTATE 23505) or SQLite."""
    orig = getattr(exc, "orig", exc)
    for attr in ("pgcode", "sqlstate"):
        if getattr(orig, attr, None) == UNIQUE_VIOLATION_SQLSTATE:
            return True
    cause = getattr(orig, "__cause__", None)
    if cause is not None and getattr(cause, "sqlstate", None) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    text = str(orig)
    return "UNIQUE constraint failed" in text or "duplicate key value" in text


def resolve_application_id(client_id: Optional[str]) -> str:
    """Client id is used only in canonical hyphenated UUID form, stored lower-case."""
    if client_id and is_valid_uuid(client_id):
        return client_id.lower()
    if client_id:
        logger.info("Ignoring client applicationId %r (not a UUID)", client_id)
    return str(uuid.uuid4())


async def _find_business(session: AsyncSession, name: str) -> Optional[Business]:
    result = await session.execute(select(Business).where(Business.business_name == name))
    return result.scalar_one_or_none()


def _business_attrs(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        "legal_business_name": fields.get("legal_business_name"),
        "business_type": fields.get("business_type"),
        "industry": fields.get("industry"),
        "year_established": fields.get("year_established"),
        "ein": fields.get("ein"),
        "address": fields.get("address"),
        "phone": fields.get("business_phone"),
        "website": fields.get("website"),
        "description": fields.get("description"),
        "number_of_employees": fields.get("number_of_employees"),
    }


async def get_or_create_business(session: AsyncSession, name: str, fields: Optional[dict[str, Any]] = None) -> Business:
    """
    Find a business by exact trimmed name or create it. Concurrent creators race on the
    unique name; the loser rolls back its savepoint and reads the winner's row.
    """
    name = (name or "").strip()
    if len(name) < MIN_BUSINESS_NAME_LENGTH:
        raise ValueError(f"Business name must be at least {MIN_BUSINESS_NAME_LENGTH} characters")

    existing = await _find_business(session, name)
    if existing is not None:
        logger.info("Reusing business %s (%r)", existing.id, name)
        return existing

    now = datetime.now(timezone.utc)
    business = Business(
        id=str(uuid.uuid4()),
        business_name=name,
        created_at=now,
        updated_at=now,
        **_business_attrs(fields or {}),
    )
    try:
        async with session.begin_nested():
            session.add(business)
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        winner = await _find_business(session, name)
        if winner is None:
            raise
        logger.info("Business %r created concurrently; using %s", name, winner.id)
        return winner
    logger.info("Created business %s (%r)", business.id, name)
    return business


async def _load_expected_documents(session: AsyncSession, application_id: str) -> list[ExpectedDocument]:
    result = await session.execute(
        select(ExpectedDocument).where(ExpectedDocument.application_id == application_id).order_by(ExpectedDocument.created_at)
    )
    return list(result.scalars().all())


async def count_documents(session: AsyncSession, application_id: str) -> int:
    result = await session.execute(select(func.count(Document.id)).where(Document.application_id == application_id))
    return result.scalar_one()


async def _existing_result(session: AsyncSession, application: Application) -> IntakeResult:
    return IntakeResult(
        application=application,
        business=await session.get(Business, application.business_id),
        expected_documents=await _load_expected_documents(session, application.id),
        created=False,
    )


async def persist_submission(
    session: AsyncSession,
    submission: NormalizedSubmission,
    now: Optional[datetime] = None,
) -> IntakeResult:
    """
    Write the business, application, expected documents and outbox rows. Does not commit.
    A duplicate application id is not an error: the existing row is returned unchanged
    and nothing new is written, not even the business.
    """
    now = now or datetime.now(timezone.utc)
    fields = submission.canonical_fields()
    app_id = resolve_application_id(submission.client_application_id)

    existing = await session.get(Application, app_id)
    if existing is not None:
        logger.info("Application %s already exists; treating as a client retry", app_id)
        return await _existing_result(session, existing)

    form_data = submission.form_data()
    form_data["receivedAt"] = now.isoformat()

    # Business and application commit or roll back together
    try:
        async with session.begin_nested():
            business = await get_or_create_business(session, fields["business_name"] or submission.business_name, fields)
            application = Application(
                id=app_id,
                business_id=business.id,
                status="draft",
                stage="New",
                requested_amount=fields["requested_amount"],
                use_of_funds=fields["use_of_funds"],
                product_category=fields["category"],
                country=fields["country"],
                contact_first_name=fields["first_name"],
                contact_last_name=fields["last_name"],
                contact_email=fields["email"],
                contact_phone=fields["phone"],
                source=submission.source,
                form_data=form_data,
                is_ready_for_lenders=False,
                created_at=now,
                updated_at=now,
            )
            session.add(application)
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        logger.warning("Duplicate application id %s; treating as a client retry", app_id)
        existing = await session.get(Application, app_id)
        if existing is None:
            raise
        return await _existing_result(session, existing)

    requirements = await resolve_requirements(session, fields["category"])
    expected = build_expected_documents(app_id, requirements)
    session.add_all(expected)

    enqueue_intake_notifications(
        session,
        application_id=app_id,
        business_id=business.id,
        fields=fields,
        has_documents=await count_documents(session, app_id) > 0,
    )
    await session.flush()
    logger.info(
        "Application %s persisted for business %s with %s expected documents",
        app_id,
        business.id,
        len(expected),
    )
    return IntakeResult(application=application, business=business, expected_documents=expected, created=True)
