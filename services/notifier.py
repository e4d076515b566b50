"""
Outbound notifications through a transactional outbox.

Intake writes OutboxMessage rows in the same transaction as the application. Delivery
happens later: a background task right after the response and a periodic worker both
call dispatch_pending(), which claims due rows with a conditional UPDATE so a row is
delivered by one caller only. Failures are recorded on the row and retried with
exponential backoff until the attempt limit, then the row is marked dead.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models import OutboxMessage
from services.crm import contacts_from_fields, merge_contacts
from services.sms import SmsSender, get_sms_sender, normalize_phone, render_template

logger = logging.getLogger(__name__)

KIND_CRM_CONTACTS = "crm.contacts"
KIND_SMS_MISSING_DOCUMENTS = "sms.missing_documents"

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_DEAD = "dead"

MAX_ERROR_LENGTH = 2000


@dataclass
class DispatchContext:
    sms_sender: SmsSender


Handler = Callable[[AsyncSession, OutboxMessage, DispatchContext], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enqueue(
    session: AsyncSession,
    kind: str,
    payload: dict[str, Any],
    application_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OutboxMessage:
    message = OutboxMessage(
        id=str(uuid.uuid4()),
        kind=kind,
        application_id=application_id,
        payload=payload,
        status=STATUS_PENDING,
        attempts=0,
        next_attempt_at=now or _utcnow(),
    )
    session.add(message)
    return message


def upload_url(application_id: str) -> str:
    return f"{settings.client_portal_url.rstrip('/')}/upload-documents?app={application_id}"


def enqueue_intake_notifications(
    session: AsyncSession,
    application_id: str,
    business_id: str,
    fields: dict[str, Any],
    has_documents: bool,
) -> list[OutboxMessage]:
    """Queue the CRM contact sync and, when no documents arrived yet, the missing-documents SMS."""
    messages: list[OutboxMessage] = []
    contacts = contacts_from_fields(fields)
    if contacts:
        messages.append(
            enqueue(
                session,
                KIND_CRM_CONTACTS,
                {"business_id": business_id, "contacts": contacts},
                application_id=application_id,
            )
        )

    phone = normalize_phone(fields.get("phone"))
    if not has_documents and phone:
        messages.append(
            enqueue(
                session,
                KIND_SMS_MISSING_DOCUMENTS,
                {
                    "to": phone,
                    "template": "submission_no_docs",
                    "values": {
                        "first_name": fields.get("first_name") or "there",
                        "business_name": fields.get("business_name") or "your business",
                        "upload_url": upload_url(application_id),
                    },
                },
                application_id=application_id,
            )
        )
    elif not has_documents:
        logger.info("No usable phone for application %s; skipping missing-documents SMS", application_id)
    return messages


async def _deliver_contacts(session: AsyncSession, message: OutboxMessage, context: DispatchContext) -> None:
    payload = message.payload or {}
    await merge_contacts(session, message.application_id, payload.get("business_id"), payload.get("contacts") or [])


async def _deliver_sms(session: AsyncSession, message: OutboxMessage, context: DispatchContext) -> None:
    payload = message.payload or {}
    body = render_template(payload["template"], **(payload.get("values") or {}))
    await context.sms_sender.send(payload["to"], body)


HANDLERS: dict[str, Handler] = {
    KIND_CRM_CONTACTS: _deliver_contacts,
    KIND_SMS_MISSING_DOCUMENTS: _deliver_sms,
}


def _due_condition(now: datetime, lock_cutoff: datetime):
    return or_(
        and_(OutboxMessage.status == STATUS_PENDING, OutboxMessage.next_attempt_at <= now),
        and_(OutboxMessage.status == STATUS_PROCESSING, OutboxMessage.locked_at <= lock_cutoff),
    )


async def _claim(session_factory: async_sessionmaker[AsyncSession], limit: int, now: datetime) -> list[str]:
    lock_cutoff = now - timedelta(seconds=settings.outbox_lock_timeout_seconds)
    claimed: list[str] = []
    async with session_factory() as session:
        result = await session.execute(
            select(OutboxMessage.id)
            .where(_due_condition(now, lock_cutoff))
            .order_by(OutboxMessage.next_attempt_at, OutboxMessage.id)
            .limit(limit)
        )
        for message_id in result.scalars().all():
            # Another dispatcher may have claimed it since the SELECT
            claim = await session.execute(
                update(OutboxMessage)
                .where(OutboxMessage.id == message_id, _due_condition(now, lock_cutoff))
                .values(status=STATUS_PROCESSING, locked_at=now)
                .execution_options(synchronize_session=False)
            )
            if claim.rowcount == 1:
                claimed.append(message_id)
        await session.commit()
    return claimed


async def _record_failure(
    session_factory: async_sessionmaker[AsyncSession],
    message_id: str,
    error: str,
    now: datetime,
) -> str:
    async with session_factory() as session:
        message = await session.get(OutboxMessage, message_id)
        if message is None:
            return STATUS_DEAD
        message.attempts = (message.attempts or 0) + 1
        message.last_error = error[:MAX_ERROR_LENGTH]
        message.locked_at = None
        if message.attempts >= settings.outbox_max_attempts:
            message.status = STATUS_DEAD
            logger.error(
                "Outbox message %s (%s) dead after %s attempts: %s", message.id, message.kind, message.attempts, error
            )
        else:
            delay = settings.outbox_backoff_seconds * (2 ** (message.attempts - 1))
            message.status = STATUS_PENDING
            message.next_attempt_at = now + timedelta(seconds=delay)
            logger.warning(
                "Outbox message %s (%s) failed attempt %s, retrying in %ss: %s",
                message.id,
                message.kind,
                message.attempts,
                delay,
                error,
            )
        status = message.status
        await session.commit()
    return status


async def _deliver_one(
    session_factory: async_sessionmaker[AsyncSession],
    message_id: str,
    context: DispatchContext,
    handlers: dict[str, Handler],
    now: datetime,
) -> str:
    try:
        async with session_factory() as session:
            message = await session.get(OutboxMessage, message_id)
            if message is None:
                return STATUS_DEAD
            handler = handlers.get(message.kind)
            if handler is None:
                raise LookupError(f"No handler for outbox kind {message.kind!r}")
            await handler(session, message, context)
            message.status = STATUS_SENT
            message.sent_at = _utcnow()
            message.locked_at = None
            message.last_error = None
            await session.commit()
            logger.info("Delivered outbox message %s (%s)", message.id, message.kind)
            return STATUS_SENT
    except Exception as e:
        return await _record_failure(session_factory, message_id, f"{type(e).__name__}: {e}", now)


async def dispatch_pending(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    sms_sender: Optional[SmsSender] = None,
    handlers: Optional[dict[str, Handler]] = None,
) -> dict[str, int]:
    """
    Claim and deliver due outbox rows. Never raises for delivery failures.
    Returns counts: claimed, sent, retrying, dead.
    """
    now = now or _utcnow()
    context = DispatchContext(sms_sender=sms_sender or get_sms_sender())
    handlers = handlers or HANDLERS
    summary = {"claimed": 0, "sent": 0, "retrying": 0, "dead": 0}

    claimed = await _claim(session_factory, limit or settings.outbox_batch_size, now)
    summary["claimed"] = len(claimed)
    for message_id in claimed:
        status = await _deliver_one(session_factory, message_id, context, handlers, now)
        if status == STATUS_SENT:
            summary["sent"] += 1
        elif status == STATUS_DEAD:
            summary["dead"] += 1
        else:
            summary["retrying"] += 1
    if claimed:
        logger.info("Outbox dispatch: %s", summary)
    return summary


async def dispatch_in_background(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Entry point for FastAPI background tasks; errors are logged, never raised."""
    try:
        await dispatch_pending(session_factory)
    except Exception:
        logger.exception("Outbox dispatch after request failed")


async def run_outbox_worker(
    session_factory: async_sessionmaker[AsyncSession],
    interval: Optional[float] = None,
) -> None:
    """Periodic delivery loop, started from the app lifespan and cancelled on shutdown."""
    interval = interval or settings.outbox_poll_seconds
    logger.info("Outbox worker started (every %ss)", interval)
    while True:
        try:
            await dispatch_pending(session_factory)
        except Exception:
            logger.exception("Outbox worker pass failed")
        await asyncio.sleep(interval)
