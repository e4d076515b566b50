"""
Loads a persisted application and the active product catalog for the scorer,
and records explicit "send to lender" transmissions.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import Application, Document, LenderProduct, Transmission
from services.intake_normalizer import canonical_fields
from services.matching_engine import rank_products
from services.status import is_backwards

logger = logging.getLogger(__name__)


class MatchingError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def application_profile(application: Application) -> dict[str, Any]:
    """Scorer input: stored columns win over the form data they were derived from."""
    fields = canonical_fields(application.form_data or {})
    business = application.business
    return {
        "requested_amount": application.requested_amount,
        "country": application.country or fields.get("country"),
        "category": application.product_category or fields.get("category"),
        "use_of_funds": application.use_of_funds or fields.get("use_of_funds"),
        "industry": (business.industry if business else None) or fields.get("industry"),
        "annual_revenue": fields.get("annual_revenue"),
        "credit_score": fields.get("credit_score"),
        "province": fields.get("province"),
    }


def product_profile(product: LenderProduct) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "lender_id": product.lender_id,
        "lender_name": product.lender.name if product.lender else "",
        "category": product.category,
        "country": product.country,
        "min_amount": product.min_amount,
        "max_amount": product.max_amount,
        "min_credit_score": product.min_credit_score,
        "min_annual_revenue": product.min_annual_revenue,
        "industries": product.industries or [],
        "interest_rate": product.interest_rate,
        "term_length": product.term_length,
    }


def documents_status(documents: list[Document]) -> dict[str, Any]:
    total = len(documents)
    accepted = sum(1 for d in documents if d.status == "accepted")
    rejected = sum(1 for d in documents if d.status == "rejected")
    pending = total - accepted - rejected
    return {
        "total": total,
        "accepted": accepted,
        "pending": pending,
        "rejected": rejected,
        "allAccepted": total > 0 and accepted == total,
    }


async def load_application(session: AsyncSession, application_id: str) -> Optional[Application]:
    result = await session.execute(
        select(Application)
        .options(selectinload(Application.business), selectinload(Application.documents))
        .where(Application.id == application_id)
    )
    return result.scalar_one_or_none()


async def load_active_products(session: AsyncSession) -> list[LenderProduct]:
    result = await session.execute(
        select(LenderProduct).options(selectinload(LenderProduct.lender)).where(LenderProduct.is_active.is_(True))
    )
    return list(result.scalars().all())


async def match_application(
    session: AsyncSession,
    application_id: str,
    limit: int = 10,
    include_ineligible: bool = False,
) -> dict[str, Any]:
    """Rank active products for an application. Read-only."""
    application = await load_application(session, application_id)
    if application is None:
        raise MatchingError(404, "Application not found")

    products = await load_active_products(session)
    eligible, ineligible = rank_products(application_profile(application), [product_profile(p) for p in products])
    docs = documents_status(list(application.documents))
    logger.info(
        "Matched application %s: %s eligible of %s products", application_id, len(eligible), len(products)
    )
    out: dict[str, Any] = {
        "success": True,
        "applicationId": application.id,
        "matches": [m.model_dump(by_alias=False) for m in eligible[:limit]],
        "totalMatches": len(eligible),
        "documentsStatus": docs,
        "canSendToLenders": docs["allAccepted"],
    }
    if include_ineligible:
        out["ineligible"] = [m.model_dump(by_alias=False) for m in ineligible]
    return out


async def transmit_application(session: AsyncSession, application_id: str, product_id: str) -> Transmission:
    """Record a send-to-lender action. Requires every uploaded document to be accepted."""
    application = await load_application(session, application_id)
    if application is None:
        raise MatchingError(404, "Application not found")
    result = await session.execute(
        select(LenderProduct).options(selectinload(LenderProduct.lender)).where(LenderProduct.id == product_id)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise MatchingError(404, "Lender product not found")

    docs = documents_status(list(application.documents))
    if not docs["allAccepted"]:
        raise MatchingError(
            400,
            f"All documents must be accepted before sending to a lender "
            f"({docs['accepted']}/{docs['total']} accepted)",
        )

    transmission = Transmission(
        id=str(uuid.uuid4()),
        application_id=application.id,
        lender_product_id=product.id,
        status="sent",
        payload={
            "application": application_profile(application),
            "businessName": application.business.business_name if application.business else None,
            "product": {"id": product.id, "name": product.name, "lender": product_profile(product)["lender_name"]},
            "documents": [d.document_type for d in application.documents],
        },
    )
    session.add(transmission)
    if not is_backwards(application.status, "sent_to_lender"):
        application.status = "sent_to_lender"
        application.stage = "Sent to Lender"
    await session.flush()
    logger.info("Application %s sent to product %s", application.id, product.id)
    return transmission
