"""CRM contacts created from applications, merged by (email, application)."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Contact

logger = logging.getLogger(__name__)

ROLE_APPLICANT = "Applicant"
ROLE_PARTNER = "Partner"


def contacts_from_fields(fields: dict[str, Any]) -> list[dict[str, Any]]:
    """Applicant, plus the partner when a partner first name and email are present."""
    contacts: list[dict[str, Any]] = []
    if fields.get("email"):
        contacts.append(
            {
                "full_name": " ".join(p for p in (fields.get("first_name"), fields.get("last_name")) if p)
                or fields["email"],
                "email": fields["email"],
                "phone": fields.get("phone"),
                "role": ROLE_APPLICANT,
                "company_name": fields.get("business_name"),
            }
        )
    if fields.get("partner_first_name") and fields.get("partner_email"):
        contacts.append(
            {
                "full_name": " ".join(
                    p for p in (fields.get("partner_first_name"), fields.get("partner_last_name")) if p
                ),
                "email": fields["partner_email"],
                "phone": fields.get("partner_phone"),
                "role": ROLE_PARTNER,
                "company_name": fields.get("business_name"),
            }
        )
    return contacts


async def _find_contact(session: AsyncSession, email: str, application_id: Optional[str]) -> Optional[Contact]:
    result = await session.execute(
        select(Contact).where(Contact.email == email, Contact.application_id == application_id)
    )
    return result.scalar_one_or_none()


def _merge_into(contact: Contact, data: dict[str, Any]) -> None:
    for attr in ("full_name", "phone", "company_name", "role"):
        value = data.get(attr)
        if value:
            setattr(contact, attr, value)


async def merge_contacts(
    session: AsyncSession,
    application_id: Optional[str],
    business_id: Optional[str],
    contacts: list[dict[str, Any]],
) -> list[Contact]:
    """Create or update one Contact per entry. A concurrent insert of the same pair is merged, not duplicated."""
    saved: list[Contact] = []
    for data in contacts:
        email = (data.get("email") or "").strip().lower()
        if not email:
            continue
        contact = await _find_contact(session, email, application_id)
        if contact is not None:
            _merge_into(contact, data)
            logger.debug("Merged contact %s into %s", email, contact.id)
        else:
            contact = Contact(
                id=str(uuid.uuid4()),
                application_id=application_id,
                business_id=business_id,
                email=email,
                full_name=data.get("full_name") or email,
                phone=data.get("phone"),
                role=data.get("role") or ROLE_APPLICANT,
                company_name=data.get("company_name"),
            )
            try:
                async with session.begin_nested():
                    session.add(contact)
            except IntegrityError:
                contact = await _find_contact(session, email, application_id)
                if contact is None:
                    raise
                _merge_into(contact, data)
            else:
                logger.info("Created %s contact %s for application %s", contact.role, email, application_id)
        saved.append(contact)
    await session.flush()
    return saved
